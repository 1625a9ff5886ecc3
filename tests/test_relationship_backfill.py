import os

os.environ.setdefault("DB_BACKEND", "sqlite")

from payback.audit_constants import EVENT_RELATIONSHIP_STATUS_BACKFILLED
from payback.models import AccountFriend, AuditEvent
from payback.services import relationships
from payback.services.relationship_backfill import (
    backfill_relationship_status,
    relationship_status_backfill,
)


def _legacy_record(db, account_email, member_id):
    record = AccountFriend(account_email=account_email, member_id=member_id, name=member_id, status=None)
    db.add(record)
    db.commit()
    return record


def test_legacy_records_read_as_friend_before_backfill(db_session, make_account):
    owner, _ = make_account("owner@example.com")
    _legacy_record(db_session, "owner@example.com", "old-pal")

    result = relationships.friend_get("old-pal", context=owner)

    assert result["status"] == "ok"
    assert result["friend"]["status"] == "friend"
    assert result["friend"]["is_legacy_status"] is True


def test_dry_run_counts_without_writing(db_session, make_account):
    _legacy_record(db_session, "owner@example.com", "a")
    _legacy_record(db_session, "owner@example.com", "b")

    result = relationship_status_backfill(dry_run=True)

    assert result == {"status": "ok", "dry_run": True, "candidates": 2, "updated": 0}
    db_session.expire_all()
    assert db_session.query(AccountFriend).filter(AccountFriend.status.is_(None)).count() == 2


def test_backfill_sets_friend_and_is_idempotent(db_session):
    _legacy_record(db_session, "owner@example.com", "a")
    db_session.add(AccountFriend(account_email="owner@example.com", member_id="b", name="b", status="group_peer"))
    db_session.commit()

    first = relationship_status_backfill()
    second = relationship_status_backfill()

    assert first["updated"] == 1
    assert second["candidates"] == 0
    assert second["updated"] == 0
    db_session.expire_all()
    statuses = {
        record.member_id: record.status
        for record in db_session.query(AccountFriend).all()
    }
    assert statuses == {"a": "friend", "b": "group_peer"}
    events = db_session.query(AuditEvent).filter(AuditEvent.event_type == EVENT_RELATIONSHIP_STATUS_BACKFILLED).all()
    assert len(events) == 1
    assert events[0].count_affected == 1


def test_backfill_helper_leaves_commit_to_caller(db_session):
    _legacy_record(db_session, "owner@example.com", "a")

    result = backfill_relationship_status(db_session)
    db_session.rollback()

    assert result["updated"] == 1
    assert db_session.query(AccountFriend).filter(AccountFriend.status.is_(None)).count() == 1
