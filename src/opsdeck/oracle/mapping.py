"""
opsdeck.oracle.mapping

Owner-to-connection auto-mapping.

Responsibilities:
- Find candidate connections for a schema owner.
- Rank them (username match beats name match; an environment keyword dominates).
- Pick distinct connections for the two environments of a comparison.
"""

from __future__ import annotations

from collections.abc import Sequence

from opsdeck.oracle.models import OracleConnection

KEYWORD_BONUS = 500


def _is_candidate(owner: str, conn: OracleConnection) -> bool:
    user = conn.username.upper()
    return user == owner or owner in user or owner in conn.name.upper()


def score(owner: str, conn: OracleConnection, keyword: str = "") -> int:
    owner = owner.upper()
    user = conn.username.upper()
    total = 0
    if user == owner:
        total += 100
    if owner in user:
        total += 50
    if owner in conn.name.upper():
        total += 20

    keyword = keyword.strip().upper()
    if keyword and (keyword in conn.name.upper() or keyword in conn.host.upper()):
        total += KEYWORD_BONUS
    return total


def best_matches(
    owner: str, connections: Sequence[OracleConnection], keyword: str = ""
) -> list[OracleConnection]:
    upper = owner.upper()
    candidates = [c for c in connections if _is_candidate(upper, c)]
    # sorted() is stable, so ties keep the caller's order.
    return sorted(candidates, key=lambda c: score(upper, c, keyword), reverse=True)


def auto_map(
    owners: Sequence[str],
    connections: Sequence[OracleConnection],
    env1_keyword: str = "",
    env2_keyword: str = "",
) -> dict[str, dict[str, OracleConnection | None]]:
    result: dict[str, dict[str, OracleConnection | None]] = {}
    for owner in owners:
        first = best_matches(owner, connections, env1_keyword)
        env1 = first[0] if first else None

        second = best_matches(owner, connections, env2_keyword)
        env2: OracleConnection | None = None
        if second:
            if env1 is None or second[0].id != env1.id:
                env2 = second[0]
            elif len(second) > 1:
                env2 = second[1]

        result[owner] = {"env1": env1, "env2": env2}
    return result
