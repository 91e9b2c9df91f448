"""
opsdeck.services.connection_service

Saved connection profiles (Oracle, S3, Git hosts).

Responsibilities:
- Validate a profile against its kind's model.
- Encrypt the whole profile before it reaches the database; only id/kind/name stay clear.
- Skip (and log) profiles that no longer decrypt, e.g. after a key rotation.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from opsdeck.clients.git_host import GitConnection
from opsdeck.clients.s3 import S3ConnectionProfile
from opsdeck.db.models import ConnectionKind
from opsdeck.db.repositories.connections import ConnectionRepo
from opsdeck.errors import InvalidRequest, NotFound
from opsdeck.observability.logging import get_logger
from opsdeck.oracle.models import OracleConnection
from opsdeck.security.crypto import DecryptionFailed, ProfileCipher

log = get_logger(__name__)

PROFILE_MODELS: dict[ConnectionKind, type[BaseModel]] = {
    ConnectionKind.oracle: OracleConnection,
    ConnectionKind.s3: S3ConnectionProfile,
    ConnectionKind.gitea: GitConnection,
}


class ConnectionService:
    def __init__(self, *, session: AsyncSession, cipher: ProfileCipher) -> None:
        self._session = session
        self._cipher = cipher
        self._repo = ConnectionRepo(session)

    async def list(self, kind: ConnectionKind) -> list[dict[str, Any]]:
        out: list[dict[str, Any]] = []
        for row in await self._repo.list(kind):
            try:
                out.append(self._cipher.decrypt(row.payload))
            except DecryptionFailed:
                log.warning("connection_profile_undecryptable", kind=kind.value, profile_id=row.id)
        return out

    async def get(self, kind: ConnectionKind, profile_id: str) -> dict[str, Any]:
        row = await self._repo.get(kind, profile_id)
        if row is None:
            raise NotFound("Connection not found")
        return self._cipher.decrypt(row.payload)

    async def put(self, kind: ConnectionKind, profile_id: str, body: dict[str, Any]) -> dict[str, Any]:
        try:
            profile = PROFILE_MODELS[kind].model_validate({**body, "id": profile_id})
        except ValidationError as e:
            details = e.errors(include_url=False, include_context=False)
            raise InvalidRequest("Invalid connection profile", details=details) from e

        document = profile.model_dump(by_alias=True)
        name = str(document.get("name") or profile_id)
        await self._repo.upsert(
            kind=kind, profile_id=profile_id, name=name, payload=self._cipher.encrypt(document)
        )
        await self._session.commit()
        log.info("connection_profile_saved", kind=kind.value, profile_id=profile_id)
        return document

    async def delete(self, kind: ConnectionKind, profile_id: str) -> None:
        if not await self._repo.delete(kind, profile_id):
            raise NotFound("Connection not found")
        await self._session.commit()
