"""
tests.test_connections_api

Saved connection profiles: CRUD, validation and encryption at rest.
"""

from __future__ import annotations

import httpx
import pytest
from cryptography.fernet import Fernet
from fastapi import FastAPI
from sqlalchemy import select

from fakes import connection
from opsdeck.db.models import ConnectionKind, ConnectionProfile
from opsdeck.security.crypto import DecryptionFailed, ProfileCipher, build_cipher
from opsdeck.settings import Settings


def test_cipher_round_trip_and_bad_token() -> None:
    cipher = ProfileCipher(build_cipher(Settings(env="test")))
    token = cipher.encrypt({"password": "secret"})
    assert "secret" not in token
    assert cipher.decrypt(token) == {"password": "secret"}

    other = ProfileCipher(Fernet(Fernet.generate_key()))
    with pytest.raises(DecryptionFailed):
        other.decrypt(token)


def test_explicit_secret_key_is_used() -> None:
    key = Fernet.generate_key().decode()
    cipher = ProfileCipher(build_cipher(Settings(env="test", secret_key=key)))
    assert Fernet(key.encode()).decrypt(cipher.encrypt({"a": 1}).encode()) == b'{"a":1}'


@pytest.mark.asyncio
async def test_oracle_profile_crud(app: FastAPI, client: httpx.AsyncClient) -> None:
    r = await client.put("/api/connections/oracle/dev", json=connection("ignored", name="Dev", username="HR"))
    assert r.status_code == 200
    saved = r.json()
    assert saved["id"] == "dev"
    assert saved["serviceName"] == "ORCL"
    assert saved["password"] == "secret"

    # Only id/kind/name are stored in the clear.
    async with app.state.sessionmaker() as session:
        row = (await session.execute(select(ConnectionProfile))).scalar_one()
    assert row.name == "Dev"
    assert "secret" not in row.payload

    r = await client.get("/api/connections/oracle/dev")
    assert r.json()["username"] == "HR"

    r = await client.put("/api/connections/oracle/dev", json={**connection("dev", name="Dev 2")})
    assert r.json()["name"] == "Dev 2"

    listed = (await client.get("/api/connections/oracle")).json()["connections"]
    assert [c["name"] for c in listed] == ["Dev 2"]

    r = await client.delete("/api/connections/oracle/dev")
    assert r.json() == {"success": True}
    assert (await client.get("/api/connections/oracle/dev")).status_code == 404
    assert (await client.delete("/api/connections/oracle/dev")).status_code == 404


@pytest.mark.asyncio
async def test_same_id_under_different_kinds(client: httpx.AsyncClient) -> None:
    await client.put("/api/connections/oracle/main", json=connection("main"))
    await client.put(
        "/api/connections/s3/main",
        json={"name": "MinIO", "endpoint": "https://minio.local", "accessKeyId": "AK", "secretAccessKey": "SK"},
    )

    assert (await client.get("/api/connections/oracle/main")).json()["host"] == "db.local"
    assert (await client.get("/api/connections/s3/main")).json()["accessKeyId"] == "AK"


@pytest.mark.asyncio
async def test_profiles_are_listed_by_name(client: httpx.AsyncClient) -> None:
    for profile_id, name in [("g1", "zeta"), ("g2", "Alpha"), ("g3", "beta")]:
        await client.put(
            f"/api/connections/gitea/{profile_id}",
            json={"name": name, "baseUrl": "https://git.local", "token": "t"},
        )

    listed = (await client.get("/api/connections/gitea")).json()["connections"]

    assert [c["name"] for c in listed] == ["Alpha", "beta", "zeta"]
    assert listed[0]["baseUrl"] == "https://git.local"


@pytest.mark.asyncio
async def test_invalid_profile_is_rejected(client: httpx.AsyncClient) -> None:
    r = await client.put("/api/connections/oracle/bad", json={"name": "Bad", "port": {"not": "a port"}})

    assert r.status_code == 400
    body = r.json()
    assert body["error"] == "Invalid connection profile"
    assert body["details"][0]["loc"][0] == "port"


@pytest.mark.asyncio
async def test_unknown_kind_is_a_validation_error(client: httpx.AsyncClient) -> None:
    r = await client.get("/api/connections/mysql")
    assert r.status_code == 422
    assert r.json()["error"] == "Invalid request"


@pytest.mark.asyncio
async def test_undecryptable_profiles_are_skipped(app: FastAPI, client: httpx.AsyncClient) -> None:
    await client.put("/api/connections/oracle/good", json=connection("good", name="Good"))
    async with app.state.sessionmaker() as session:
        session.add(
            ConnectionProfile(id="stale", kind=ConnectionKind.oracle, name="Stale", payload="not-a-token")
        )
        await session.commit()

    listed = (await client.get("/api/connections/oracle")).json()["connections"]

    assert [c["id"] for c in listed] == ["good"]
