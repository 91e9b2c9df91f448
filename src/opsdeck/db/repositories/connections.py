"""
opsdeck.db.repositories.connections

Repository for `ConnectionProfile` entities.
"""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from opsdeck.db.models import ConnectionKind, ConnectionProfile


class ConnectionRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, kind: ConnectionKind, profile_id: str) -> ConnectionProfile | None:
        stmt = select(ConnectionProfile).where(
            ConnectionProfile.kind == kind, ConnectionProfile.id == profile_id
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def list(self, kind: ConnectionKind) -> list[ConnectionProfile]:
        stmt = (
            select(ConnectionProfile)
            .where(ConnectionProfile.kind == kind)
            .order_by(func.lower(ConnectionProfile.name), ConnectionProfile.id)
        )
        return list((await self._session.execute(stmt)).scalars().all())

    async def upsert(
        self, *, kind: ConnectionKind, profile_id: str, name: str, payload: str
    ) -> ConnectionProfile:
        existing = await self.get(kind, profile_id)
        if existing is not None:
            existing.name = name
            existing.payload = payload
            await self._session.flush()
            return existing

        profile = ConnectionProfile(id=profile_id, kind=kind, name=name, payload=payload)
        self._session.add(profile)
        await self._session.flush()
        return profile

    async def delete(self, kind: ConnectionKind, profile_id: str) -> bool:
        existing = await self.get(kind, profile_id)
        if existing is None:
            return False
        await self._session.delete(existing)
        await self._session.flush()
        return True
