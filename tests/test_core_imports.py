import os

os.environ.setdefault("DB_BACKEND", "sqlite")


def test_core_imports():
    import payback.context  # noqa: F401
    import payback.models  # noqa: F401
    import payback.services.alias_merge  # noqa: F401
    import payback.services.lifecycle  # noqa: F401
    import payback.services.link_requests  # noqa: F401


def test_core_smoke_lifecycle(server_db, make_account):
    from payback.services import alias_merge, direct_expense_gate, friend_requests, groups

    alice, alice_member = make_account("alice@example.com")
    bob, bob_member = make_account("bob@example.com")

    created = groups.group_create("Pair", [{"id": bob_member, "name": "Bob"}], is_direct=True, context=alice)
    assert created["status"] == "ok"
    group_id = created["group"]["id"]

    denied = direct_expense_gate.expense_authorize_direct(group_id, [bob_member], context=alice)
    assert denied["error_code"] == "NOT_FRIENDS"

    sent = friend_requests.friend_request_send("bob@example.com", context=alice)
    accepted = friend_requests.friend_request_accept(sent["request"]["id"], context=bob)
    assert accepted["status"] == "ok"

    merged = alias_merge.alias_merge("bob-placeholder", bob_member, context=alice)
    assert merged["already_existed"] is False

    allowed = direct_expense_gate.expense_authorize_direct(group_id, ["bob-placeholder"], context=alice)
    assert allowed["authorized"] is True
    assert allowed["checked_member_ids"] == [bob_member]
