"""
opsdeck.db.init_db

Create tables for local development and tests. Production runs Alembic migrations.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine

from opsdeck.db import models  # noqa: F401  (register tables on Base.metadata)
from opsdeck.db.base import Base


async def init_db(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
