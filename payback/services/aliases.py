"""
Member identity resolution over the alias graph.

Edges point from an alias member id to the member id it was merged into.
Chains are followed lazily on every read; nothing is flattened on write.
"""

from __future__ import annotations

from typing import Iterable, Optional

from payback.context import RequestContext
from payback.db import DB
from payback.models import MemberAlias
from payback.services.shared import (
    _normalize_member_id,
    service_tool,
)


def _next_hop(db, member_id: str) -> Optional[str]:
    row = (
        db.query(MemberAlias.canonical_member_id)
        .filter(MemberAlias.alias_member_id == member_id)
        .first()
    )
    return row[0] if row else None


def walk_alias_chain(db, member_id: str) -> tuple[list[str], str]:
    """
    Follow edges forward from ``member_id``.

    Returns ``(visited, terminal)``. ``terminal`` is the canonical id, or the
    first revisited node if the stored graph contains a cycle.
    """
    visited: list[str] = []
    seen: set[str] = set()
    current = member_id
    while current not in seen:
        seen.add(current)
        visited.append(current)
        nxt = _next_hop(db, current)
        if nxt is None:
            return visited, current
        current = nxt
    return visited, current


def resolve_canonical_member_id(db, member_id: str) -> str:
    """Terminal node of the alias chain starting at ``member_id``."""
    _, terminal = walk_alias_chain(db, member_id)
    return terminal


def equivalent_member_ids(db, member_id: str) -> set[str]:
    """
    Every member id that resolves to the same canonical as ``member_id``.

    Walks the reverse index from the canonical, so aliases of aliases are
    included. Always contains the input and its canonical.
    """
    canonical = resolve_canonical_member_id(db, member_id)
    members = {member_id, canonical}
    frontier = [canonical]
    while frontier:
        rows = (
            db.query(MemberAlias.alias_member_id)
            .filter(MemberAlias.canonical_member_id.in_(frontier))
            .all()
        )
        frontier = [row[0] for row in rows if row[0] not in members]
        members.update(frontier)
    return members


def same_identity(db, first_id: str, second_id: str) -> bool:
    if first_id == second_id:
        return True
    return resolve_canonical_member_id(db, first_id) == resolve_canonical_member_id(db, second_id)


def canonical_member_map(db, member_ids: Iterable[str]) -> dict[str, str]:
    """Map each stored member id to its canonical id."""
    return {member_id: resolve_canonical_member_id(db, member_id) for member_id in member_ids}


def member_in_list(db, member_id: str, candidate_ids: Iterable[str]) -> bool:
    """True when any candidate is in the same equivalence set as ``member_id``."""
    candidates = set(candidate_ids)
    if member_id in candidates:
        return True
    return bool(equivalent_member_ids(db, member_id) & candidates)


def serialize_alias(alias: MemberAlias) -> dict:
    return {
        "alias_member_id": alias.alias_member_id,
        "canonical_member_id": alias.canonical_member_id,
        "created_at": alias.created_at.isoformat() if alias.created_at else None,
    }


# =============================================================================
# Service tools
# =============================================================================

@service_tool
def member_resolve_canonical(
    member_id: str,
    context: Optional[RequestContext] = None,
) -> dict:
    """Resolve a member id to its canonical identity."""
    member_value = _normalize_member_id(member_id)

    db = DB.SessionLocal()
    try:
        chain, canonical = walk_alias_chain(db, member_value)
        return {
            "status": "ok",
            "member_id": member_value,
            "canonical_member_id": canonical,
            "is_alias": canonical != member_value,
            "hops": len(chain) - 1,
        }
    finally:
        db.close()


@service_tool
def member_list_equivalents(
    member_id: str,
    context: Optional[RequestContext] = None,
) -> dict:
    """List every member id that refers to the same person."""
    member_value = _normalize_member_id(member_id)

    db = DB.SessionLocal()
    try:
        canonical = resolve_canonical_member_id(db, member_value)
        members = equivalent_member_ids(db, member_value)
        return {
            "status": "ok",
            "member_id": member_value,
            "canonical_member_id": canonical,
            "count": len(members),
            "member_ids": sorted(members),
        }
    finally:
        db.close()


__all__ = [
    "walk_alias_chain",
    "resolve_canonical_member_id",
    "equivalent_member_ids",
    "same_identity",
    "canonical_member_map",
    "member_in_list",
    "serialize_alias",
    "member_resolve_canonical",
    "member_list_equivalents",
]
