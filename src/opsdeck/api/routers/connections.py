"""
opsdeck.api.routers.connections

Saved connection profiles (`/api/connections/{kind}`).
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from opsdeck.api.deps import cipher_dep, db_session
from opsdeck.db.models import ConnectionKind
from opsdeck.security.crypto import ProfileCipher
from opsdeck.services.connection_service import ConnectionService

router = APIRouter(prefix="/api/connections", tags=["connections"])


def _service(
    session: AsyncSession = Depends(db_session),
    cipher: ProfileCipher = Depends(cipher_dep),
) -> ConnectionService:
    return ConnectionService(session=session, cipher=cipher)


@router.get("/{kind}")
async def list_connections(
    kind: ConnectionKind, svc: ConnectionService = Depends(_service)
) -> dict[str, Any]:
    return {"connections": await svc.list(kind)}


@router.get("/{kind}/{profile_id}")
async def get_connection(
    kind: ConnectionKind, profile_id: str, svc: ConnectionService = Depends(_service)
) -> dict[str, Any]:
    return await svc.get(kind, profile_id)


@router.put("/{kind}/{profile_id}")
async def put_connection(
    kind: ConnectionKind,
    profile_id: str,
    body: dict[str, Any] = Body(...),
    svc: ConnectionService = Depends(_service),
) -> dict[str, Any]:
    return await svc.put(kind, profile_id, body)


@router.delete("/{kind}/{profile_id}")
async def delete_connection(
    kind: ConnectionKind, profile_id: str, svc: ConnectionService = Depends(_service)
) -> dict[str, Any]:
    await svc.delete(kind, profile_id)
    return {"success": True}
