"""
One-time backfill for relationship records written before statuses existed.

Legacy rows (status NULL) are already read as friend; this makes the stored
value agree. Running it again finds nothing to do.
"""

from __future__ import annotations

from payback.audit import log_event
from payback.audit_constants import EVENT_RELATIONSHIP_STATUS_BACKFILLED
from payback.db import DB
from payback.models import AccountFriend, RelationshipStatus
from payback.services.shared import _utcnow, logger, service_tool


def backfill_relationship_status(db, *, dry_run: bool = False) -> dict:
    """Set status=friend on every record whose status is absent. Does not commit."""
    legacy = db.query(AccountFriend).filter(AccountFriend.status.is_(None))
    candidates = legacy.count()
    if dry_run or candidates == 0:
        return {"dry_run": dry_run, "candidates": candidates, "updated": 0}

    updated = legacy.update(
        {
            AccountFriend.status: RelationshipStatus.friend.value,
            AccountFriend.updated_at: _utcnow(),
        },
        synchronize_session=False,
    )
    log_event(
        db,
        event_type=EVENT_RELATIONSHIP_STATUS_BACKFILLED,
        actor_type="system",
        target_type="relationship",
        target_ids=[],
        count_affected=updated,
    )
    return {"dry_run": False, "candidates": candidates, "updated": updated}


@service_tool
def relationship_status_backfill(dry_run: bool = False) -> dict:
    """Operator entry point for the legacy status backfill."""
    db = DB.SessionLocal()
    try:
        result = backfill_relationship_status(db, dry_run=dry_run)
        if not dry_run:
            db.commit()
        logger.info("relationship_status_backfill", extra=result)
        return {"status": "ok", **result}
    finally:
        db.close()


__all__ = [
    "backfill_relationship_status",
    "relationship_status_backfill",
]
