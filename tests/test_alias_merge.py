import os

os.environ.setdefault("DB_BACKEND", "sqlite")

from payback.models import AccountFriend, MemberAlias
from payback.services import alias_merge
from payback.services.alias_merge import merge_member_ids
from payback.services.aliases import equivalent_member_ids, resolve_canonical_member_id


def _friend(db, account_email, member_id, linked=False):
    db.add(
        AccountFriend(
            account_email=account_email,
            member_id=member_id,
            name=member_id.title(),
            status="group_peer",
            has_linked_account=linked,
        )
    )
    db.commit()


def test_merge_creates_single_edge(db_session):
    result = merge_member_ids(db_session, "a", "b")

    assert result["status"] == "ok"
    assert result["already_existed"] is False
    assert result["alias"] == {"alias_member_id": "a", "canonical_member_id": "b"}
    assert db_session.query(MemberAlias).count() == 1


def test_merge_is_idempotent(db_session):
    merge_member_ids(db_session, "a", "b")
    again = merge_member_ids(db_session, "a", "b")

    assert again["status"] == "ok"
    assert again["already_existed"] is True
    assert db_session.query(MemberAlias).count() == 1


def test_self_merge_is_noop(db_session):
    result = merge_member_ids(db_session, "a", "a")

    assert result["already_existed"] is True
    assert result["alias"] is None
    assert db_session.query(MemberAlias).count() == 0


def test_merge_into_alias_targets_final_canonical(db_session):
    merge_member_ids(db_session, "b", "c")
    result = merge_member_ids(db_session, "a", "b")

    assert result["canonical_member_id"] == "c"
    edge = db_session.query(MemberAlias).filter(MemberAlias.alias_member_id == "a").one()
    assert edge.canonical_member_id == "c"
    assert equivalent_member_ids(db_session, "a") == {"a", "b", "c"}


def test_repeat_merge_through_other_alias_is_idempotent(db_session):
    merge_member_ids(db_session, "b", "c")
    merge_member_ids(db_session, "a", "c")

    result = merge_member_ids(db_session, "a", "b")
    assert result["already_existed"] is True


def test_merge_rejects_conflicting_target(server_db, make_account):
    context, _ = make_account("owner@example.com")
    first = alias_merge.alias_merge("a", "b", context=context)
    assert first["status"] == "ok"

    result = alias_merge.alias_merge("a", "z", context=context)
    assert result["status"] == "error"
    assert result["error_code"] == "ALIAS_CONFLICT"
    assert result["data"]["existing_canonical_member_id"] == "b"


def test_merge_rejects_direct_cycle(server_db, make_account):
    context, _ = make_account("owner@example.com")
    alias_merge.alias_merge("a", "b", context=context)

    result = alias_merge.alias_merge("b", "a", context=context)
    assert result["status"] == "error"
    assert result["error_code"] == "ALIAS_CYCLE"


def test_merge_rejects_cycle_through_chain(server_db, make_account):
    context, _ = make_account("owner@example.com")
    alias_merge.alias_merge("a", "b", context=context)
    alias_merge.alias_merge("b", "c", context=context)

    result = alias_merge.alias_merge("c", "a", context=context)
    assert result["error_code"] == "ALIAS_CYCLE"

    db = server_db.SessionLocal()
    try:
        assert resolve_canonical_member_id(db, "a") == "c"
        assert db.query(MemberAlias).count() == 2
    finally:
        db.close()


def test_merge_normalizes_member_ids(db_session, make_account):
    context, _ = make_account("owner@example.com")
    result = alias_merge.alias_merge("  Alice-Old ", "ALICE-NEW", context=context)

    assert result["status"] == "ok"
    edge = db_session.query(MemberAlias).one()
    assert edge.alias_member_id == "alice-old"
    assert edge.canonical_member_id == "alice-new"
    assert edge.account_email == "owner@example.com"


def test_merge_requires_account_context(server_db):
    result = alias_merge.alias_merge("a", "b")
    assert result["status"] == "error"
    assert result["error_type"] == "unauthorized"


def test_friend_pair_merge_makes_first_canonical(db_session, make_account):
    context, _ = make_account("owner@example.com")
    _friend(db_session, "owner@example.com", "first")
    _friend(db_session, "owner@example.com", "second")

    result = alias_merge.friend_merge_pair("first", "second", context=context)

    assert result["status"] == "ok"
    assert result["canonical_member_id"] == "first"
    assert resolve_canonical_member_id(db_session, "second") == "first"


def test_friend_pair_merge_rejects_linked_friend(db_session, make_account):
    context, _ = make_account("owner@example.com")
    _friend(db_session, "owner@example.com", "first")
    _friend(db_session, "owner@example.com", "linked", linked=True)

    result = alias_merge.friend_merge_pair("first", "linked", context=context)

    assert result["status"] == "error"
    assert result["error_code"] == "ALREADY_LINKED"
    assert db_session.query(MemberAlias).count() == 0


def test_friend_pair_merge_only_sees_own_records(db_session, make_account):
    make_account("victim@example.com")
    attacker, _ = make_account("attacker@example.com")
    _friend(db_session, "victim@example.com", "victim-a")
    _friend(db_session, "victim@example.com", "victim-b")

    result = alias_merge.friend_merge_pair("victim-a", "victim-b", context=attacker)

    assert result["status"] == "error"
    assert result["error_type"] == "not_found"
    assert db_session.query(MemberAlias).count() == 0
