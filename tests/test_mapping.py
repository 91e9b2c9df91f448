"""
tests.test_mapping

Owner-to-connection auto-mapping.
"""

from __future__ import annotations

import httpx
import pytest

from opsdeck.oracle.mapping import KEYWORD_BONUS, auto_map, best_matches, score
from opsdeck.oracle.models import OracleConnection


def _conn(conn_id: str, name: str, username: str, host: str = "db.local") -> OracleConnection:
    return OracleConnection(id=conn_id, name=name, username=username, host=host, service_name="ORCL")


HR_DEV = _conn("hr-dev", "HR Dev", "HR", "dev-db.corp")
HR_PROD = _conn("hr-prod", "HR Prod", "HR", "prod-db.corp")
HR_ADMIN = _conn("hr-admin", "Admin", "HR_ADMIN")
SALES = _conn("sales", "Sales", "SALES")


def test_score_weights() -> None:
    # exact username (100) + contained in username (50) + contained in name (20)
    assert score("hr", HR_DEV) == 170
    assert score("HR", HR_ADMIN) == 50
    assert score("HR", HR_DEV, "dev") == 170 + KEYWORD_BONUS
    # keyword also matches the host
    assert score("HR", HR_PROD, "prod-db") == 170 + KEYWORD_BONUS


def test_best_matches_filters_and_ranks() -> None:
    ranked = best_matches("HR", [SALES, HR_ADMIN, HR_DEV, HR_PROD])
    assert [c.id for c in ranked] == ["hr-dev", "hr-prod", "hr-admin"]


def test_keywords_pick_each_environment() -> None:
    result = auto_map(["HR"], [HR_DEV, HR_PROD], env1_keyword="DEV", env2_keyword="PROD")
    assert result["HR"]["env1"] is HR_DEV
    assert result["HR"]["env2"] is HR_PROD


def test_env2_never_reuses_env1() -> None:
    result = auto_map(["HR"], [HR_DEV, HR_PROD], env1_keyword="DEV", env2_keyword="DEV")
    assert result["HR"]["env1"] is HR_DEV
    assert result["HR"]["env2"] is HR_PROD

    single = auto_map(["HR"], [HR_DEV])
    assert single["HR"] == {"env1": HR_DEV, "env2": None}


def test_unmatched_owner_maps_to_nothing() -> None:
    assert auto_map(["BILLING"], [HR_DEV, SALES]) == {"BILLING": {"env1": None, "env2": None}}


@pytest.mark.asyncio
async def test_auto_mapping_endpoint(client: httpx.AsyncClient) -> None:
    body = {
        "owners": ["HR", "BILLING"],
        "connections": [HR_DEV.model_dump(by_alias=True), HR_PROD.model_dump(by_alias=True)],
        "env1Keyword": "prod",
        "env2Keyword": "",
    }
    r = await client.post("/api/oracle/auto-mapping", json=body)
    assert r.status_code == 200
    mappings = r.json()["mappings"]
    assert mappings["HR"]["env1"]["id"] == "hr-prod"
    assert mappings["HR"]["env2"]["id"] == "hr-dev"
    assert mappings["HR"]["env1"]["serviceName"] == "ORCL"
    assert mappings["BILLING"] == {"env1": None, "env2": None}
