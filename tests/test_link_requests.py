import os
from datetime import datetime, timedelta

os.environ.setdefault("DB_BACKEND", "sqlite")

from payback.models import AccountFriend, LinkRequest, MemberAlias
from payback.services import alias_merge, friend_requests, lifecycle, link_requests, relationships
from payback.services.aliases import resolve_canonical_member_id


def _placeholder(context, member_id, name):
    result = relationships.friend_upsert(member_id, name=name, context=context)
    assert result["status"] == "ok", result
    return result


def _record(db, account_email, member_id):
    return (
        db.query(AccountFriend)
        .filter(AccountFriend.account_email == account_email)
        .filter(AccountFriend.member_id == member_id)
        .first()
    )


def test_accept_merges_placeholder_into_claimer(db_session, make_account):
    alice, alice_member = make_account("alice@example.com")
    bob, bob_member = make_account("bob@example.com", display_name="Bob")
    _placeholder(alice, "bob-placeholder", "Bobby")

    sent = link_requests.link_request_send("Bob@Example.com", "bob-placeholder", context=alice)
    assert sent["status"] == "ok"
    assert sent["request"]["recipient_email"] == "bob@example.com"
    assert sent["request"]["target_member_name"] == "Bobby"

    accepted = link_requests.link_request_accept(sent["request"]["id"], context=bob)
    assert accepted["status"] == "ok"
    assert accepted["canonical_member_id"] == bob_member
    assert accepted["alias_created"] is True
    assert accepted["records_linked"] == 1
    assert accepted["request"]["status"] == "accepted"

    assert resolve_canonical_member_id(db_session, "bob-placeholder") == bob_member
    record = _record(db_session, "alice@example.com", "bob-placeholder")
    assert record.has_linked_account is True
    assert record.linked_account_id == "auth_bob"
    assert record.name == "Bob"
    assert record.original_name == "Bobby"
    assert record.status == "group_peer"

    counterpart = _record(db_session, "bob@example.com", alice_member)
    assert counterpart.has_linked_account is True
    assert counterpart.status == "group_peer"


def test_accept_folds_placeholder_into_existing_record(db_session, make_account):
    alice, _ = make_account("alice@example.com")
    bob, bob_member = make_account("bob@example.com")
    sent = friend_requests.friend_request_send("bob@example.com", context=alice)
    friend_requests.friend_request_accept(sent["request"]["id"], context=bob)
    _placeholder(alice, "bob-old", "Old Bob")

    link = link_requests.link_request_send("bob@example.com", "bob-old", context=alice)
    accepted = link_requests.link_request_accept(link["request"]["id"], context=bob)

    assert accepted["records_merged"] == 1
    assert _record(db_session, "alice@example.com", "bob-old") is None
    kept = _record(db_session, "alice@example.com", bob_member)
    assert kept.status == "friend"
    assert kept.has_linked_account is True
    assert relationships.friend_get("bob-old", context=alice)["friend"]["member_id"] == bob_member


def test_send_returns_pending_request_on_repeat(db_session, make_account):
    alice, _ = make_account("alice@example.com")
    _placeholder(alice, "p1", "Pat")

    first = link_requests.link_request_send("pat@example.com", "p1", context=alice)
    second = link_requests.link_request_send("pat@example.com", "P1", context=alice)

    assert first["already_existed"] is False
    assert second["already_existed"] is True
    assert second["request"]["id"] == first["request"]["id"]
    assert db_session.query(LinkRequest).count() == 1


def test_send_validation(server_db, make_account):
    alice, alice_member = make_account("alice@example.com")
    bob, bob_member = make_account("bob@example.com")
    sent = friend_requests.friend_request_send("bob@example.com", context=alice)
    friend_requests.friend_request_accept(sent["request"]["id"], context=bob)

    to_self = link_requests.link_request_send("alice@example.com", "anything", context=alice)
    assert to_self["error_code"] == "SELF_CLAIM"

    own_identity = link_requests.link_request_send("bob@example.com", alice_member, context=alice)
    assert own_identity["error_code"] == "SELF_CLAIM"
    assert own_identity["field"] == "target_member_id"

    unknown = link_requests.link_request_send("bob@example.com", "nobody", context=alice)
    assert unknown["error_type"] == "not_found"

    linked = link_requests.link_request_send("carol@example.com", bob_member, context=alice)
    assert linked["error_code"] == "ALREADY_LINKED"


def test_only_recipient_can_accept(server_db, make_account):
    alice, _ = make_account("alice@example.com")
    make_account("bob@example.com")
    carol, _ = make_account("carol@example.com")
    _placeholder(alice, "p1", "Pat")
    sent = link_requests.link_request_send("bob@example.com", "p1", context=alice)

    result = link_requests.link_request_accept(sent["request"]["id"], context=carol)
    assert result["error_type"] == "unauthorized"


def test_accept_refuses_member_owned_by_another_account(db_session, make_account):
    alice, _ = make_account("alice@example.com")
    bob, _ = make_account("bob@example.com")
    make_account("carol@example.com", member_id="carol-id")
    _placeholder(alice, "carol-id", "Carol")
    sent = link_requests.link_request_send("bob@example.com", "carol-id", context=alice)

    result = link_requests.link_request_accept(sent["request"]["id"], context=bob)

    assert result["error_code"] == "ALIAS_CONFLICT"
    assert db_session.query(MemberAlias).count() == 0
    assert db_session.get(LinkRequest, sent["request"]["id"]).status == "pending"
    assert _record(db_session, "alice@example.com", "carol-id").has_linked_account is False


def test_accept_refuses_placeholder_merged_elsewhere(db_session, make_account):
    alice, _ = make_account("alice@example.com")
    bob, _ = make_account("bob@example.com")
    _placeholder(alice, "p1", "Pat")
    alias_merge.alias_merge("p1", "someone-else", context=alice)
    sent = link_requests.link_request_send("bob@example.com", "p1", context=alice)

    result = link_requests.link_request_accept(sent["request"]["id"], context=bob)

    assert result["error_code"] == "ALIAS_CONFLICT"
    assert resolve_canonical_member_id(db_session, "p1") == "someone-else"


def test_decline_leaves_contact_unlinked(db_session, make_account):
    alice, _ = make_account("alice@example.com")
    bob, _ = make_account("bob@example.com")
    _placeholder(alice, "p1", "Pat")
    sent = link_requests.link_request_send("bob@example.com", "p1", context=alice)

    declined = link_requests.link_request_decline(sent["request"]["id"], context=bob)
    assert declined["request"]["status"] == "declined"

    again = link_requests.link_request_accept(sent["request"]["id"], context=bob)
    assert again["error_code"] == "REQUEST_NOT_PENDING"
    assert _record(db_session, "alice@example.com", "p1").has_linked_account is False
    assert db_session.query(MemberAlias).count() == 0


def test_cancel_is_requester_only(db_session, make_account):
    alice, _ = make_account("alice@example.com")
    bob, _ = make_account("bob@example.com")
    _placeholder(alice, "p1", "Pat")
    sent = link_requests.link_request_send("bob@example.com", "p1", context=alice)

    denied = link_requests.link_request_cancel(sent["request"]["id"], context=bob)
    assert denied["error_type"] == "unauthorized"

    cancelled = link_requests.link_request_cancel(sent["request"]["id"], context=alice)
    assert cancelled["deleted"] is True
    assert link_requests.link_request_list_outgoing(context=alice)["count"] == 0
    assert link_requests.link_request_list_incoming(context=bob)["count"] == 0


def test_expired_request_cannot_be_accepted(db_session, make_account):
    alice, _ = make_account("alice@example.com")
    bob, _ = make_account("bob@example.com")
    _placeholder(alice, "p1", "Pat")
    sent = link_requests.link_request_send("bob@example.com", "p1", context=alice)
    db_session.query(LinkRequest).update({"expires_at": datetime.utcnow() - timedelta(days=1)})
    db_session.commit()

    assert link_requests.link_request_list_incoming(context=bob)["count"] == 0
    result = link_requests.link_request_accept(sent["request"]["id"], context=bob)
    assert result["error_code"] == "REQUEST_EXPIRED"


def test_incoming_lists_requester(server_db, make_account):
    alice, alice_member = make_account("alice@example.com")
    bob, _ = make_account("bob@example.com")
    _placeholder(alice, "p1", "Pat")
    link_requests.link_request_send("bob@example.com", "p1", context=alice)

    incoming = link_requests.link_request_list_incoming(context=bob)
    assert incoming["count"] == 1
    assert incoming["requests"][0]["requester"]["member_id"] == alice_member


def test_account_deletion_drops_link_requests(db_session, make_account):
    alice, _ = make_account("alice@example.com")
    bob, _ = make_account("bob@example.com")
    _placeholder(alice, "p1", "Pat")
    link_requests.link_request_send("bob@example.com", "p1", context=alice)

    result = lifecycle.account_self_delete(context=bob)

    assert result["requests_deleted"] == 1
    assert db_session.query(LinkRequest).count() == 0
