import os

os.environ.setdefault("DB_BACKEND", "sqlite")

from payback.models import (
    Account,
    AccountFriend,
    Expense,
    FriendRequest,
    Group,
    MemberAlias,
)
from payback.services import friend_requests, lifecycle


def _group(db, group_id, owner_email, members, is_direct=False):
    db.add(
        Group(
            id=group_id,
            name=group_id,
            owner_email=owner_email,
            is_direct=is_direct,
            members=[{"id": member_id, "name": member_id} for member_id in members],
        )
    )
    db.commit()


def _expense(db, expense_id, group_id, owner_email, payer, participants):
    db.add(
        Expense(
            id=expense_id,
            group_id=group_id,
            owner_email=owner_email,
            total_amount=30.0 * len(participants),
            paid_by_member_id=payer,
            participant_member_ids=list(participants),
            splits=[
                {"id": f"{expense_id}-{member_id}", "member_id": member_id, "amount": 30.0, "is_settled": False}
                for member_id in participants
            ],
        )
    )
    db.commit()


def _friend(db, account_email, member_id, linked_email=None, status="friend"):
    db.add(
        AccountFriend(
            account_email=account_email,
            member_id=member_id,
            name=member_id,
            status=status,
            has_linked_account=linked_email is not None,
            linked_account_email=linked_email,
            linked_account_id=f"auth_{linked_email.split('@')[0]}" if linked_email else None,
        )
    )
    db.commit()


def test_remove_linked_friend_deletes_every_direct_group(db_session, make_account):
    owner, owner_member = make_account("owner@example.com")
    _, friend_member = make_account("friend@example.com")
    _friend(db_session, "owner@example.com", friend_member, linked_email="friend@example.com")
    _group(db_session, "direct-a", "owner@example.com", [owner_member, friend_member], is_direct=True)
    _group(db_session, "direct-b", "owner@example.com", [owner_member, friend_member], is_direct=True)
    _group(db_session, "shared", "owner@example.com", [owner_member, friend_member, "x"])
    _expense(db_session, "e1", "direct-a", "owner@example.com", owner_member, [owner_member, friend_member])
    _expense(db_session, "e2", "direct-b", "owner@example.com", owner_member, [owner_member, friend_member])
    _expense(db_session, "e3", "shared", "owner@example.com", owner_member, [owner_member, friend_member, "x"])

    result = lifecycle.friend_remove_linked(friend_member, context=owner)

    assert result["status"] == "ok"
    assert result["groups_deleted"] == 2
    assert result["expenses_deleted"] == 2
    db_session.expire_all()
    assert {group.id for group in db_session.query(Group).all()} == {"shared"}
    assert {expense.id for expense in db_session.query(Expense).all()} == {"e3"}
    assert db_session.query(AccountFriend).filter(AccountFriend.account_email == "owner@example.com").count() == 0


def test_linked_removal_refuses_unlinked_record(db_session, make_account):
    owner, _ = make_account("owner@example.com")
    _friend(db_session, "owner@example.com", "contact")

    result = lifecycle.friend_remove_linked("contact", context=owner)

    assert result["status"] == "error"
    assert result["error_code"] == "REMOVAL_PATH_MISMATCH"
    assert db_session.query(AccountFriend).count() == 1


def test_unlinked_removal_refuses_linked_record(db_session, make_account):
    owner, _ = make_account("owner@example.com")
    _friend(db_session, "owner@example.com", "linked", linked_email="friend@example.com")

    result = lifecycle.friend_remove_unlinked("linked", context=owner)
    assert result["error_code"] == "REMOVAL_PATH_MISMATCH"


def test_remove_missing_friend(server_db, make_account):
    owner, _ = make_account("owner@example.com")

    result = lifecycle.friend_remove_unlinked("nobody", context=owner)
    assert result["error_type"] == "not_found"


def test_unlinked_removal_strips_shared_expenses(db_session, make_account):
    owner, owner_member = make_account("owner@example.com")
    _friend(db_session, "owner@example.com", "contact")
    _group(db_session, "shared", "owner@example.com", [owner_member, "contact", "watcher"])
    _expense(db_session, "trip", "shared", "owner@example.com", owner_member, [owner_member, "contact", "watcher"])
    _expense(db_session, "pair", "shared", "owner@example.com", owner_member, [owner_member, "contact"])

    result = lifecycle.friend_remove_unlinked("contact", context=owner)

    assert result["status"] == "ok"
    assert result["expenses_modified"] == 1
    assert result["expenses_deleted"] == 1
    db_session.expire_all()
    trip = db_session.get(Expense, "trip")
    assert trip.participant_member_ids == [owner_member, "watcher"]
    assert [split["member_id"] for split in trip.splits] == [owner_member, "watcher"]
    assert db_session.get(Expense, "pair") is None
    shared = db_session.get(Group, "shared")
    assert [member["id"] for member in shared.members] == [owner_member, "watcher"]


def test_unlinked_removal_keeps_expense_paid_by_removed_member(db_session, make_account):
    owner, owner_member = make_account("owner@example.com")
    _friend(db_session, "owner@example.com", "contact")
    _group(db_session, "shared", "owner@example.com", [owner_member, "contact", "watcher"])
    _expense(db_session, "paid", "shared", "owner@example.com", "contact", [owner_member, "contact", "watcher"])

    result = lifecycle.friend_remove_unlinked("contact", context=owner)

    assert result["expenses_modified"] == 1
    assert result["expenses_deleted"] == 0
    db_session.expire_all()
    paid = db_session.get(Expense, "paid")
    assert paid is not None
    assert paid.participant_member_ids == [owner_member, "watcher"]
    assert paid.paid_by_member_id == "contact"


def test_unlinked_removal_only_deletes_own_alias_edges(db_session, make_account):
    owner, owner_member = make_account("owner@example.com")
    _friend(db_session, "owner@example.com", "contact")
    db_session.add(MemberAlias(alias_member_id="contact", canonical_member_id="merged", account_email="owner@example.com"))
    db_session.add(MemberAlias(alias_member_id="elsewhere", canonical_member_id="contact", account_email="other@example.com"))
    db_session.commit()

    result = lifecycle.friend_remove_unlinked("contact", context=owner)

    assert result["aliases_deleted"] == 1
    db_session.expire_all()
    remaining = db_session.query(MemberAlias).all()
    assert [(edge.alias_member_id, edge.account_email) for edge in remaining] == [
        ("elsewhere", "other@example.com")
    ]


def test_unlinked_removal_drops_every_edge_in_alias_chain(db_session, make_account):
    owner, _ = make_account("owner@example.com")
    _friend(db_session, "owner@example.com", "p1")
    db_session.add(MemberAlias(alias_member_id="p2", canonical_member_id="p1", account_email="owner@example.com"))
    db_session.add(MemberAlias(alias_member_id="p3", canonical_member_id="p2", account_email="owner@example.com"))
    db_session.commit()

    result = lifecycle.friend_remove_unlinked("p1", context=owner)

    assert result["aliases_deleted"] == 2
    db_session.expire_all()
    assert db_session.query(MemberAlias).count() == 0


def test_unlinked_removal_covers_aliases_of_contact(db_session, make_account):
    owner, owner_member = make_account("owner@example.com")
    _friend(db_session, "owner@example.com", "contact")
    db_session.add(MemberAlias(alias_member_id="contact-dup", canonical_member_id="contact", account_email="owner@example.com"))
    db_session.commit()
    _group(db_session, "shared", "owner@example.com", [owner_member, "contact-dup", "watcher"])
    _expense(db_session, "trip", "shared", "owner@example.com", owner_member, [owner_member, "contact-dup", "watcher"])

    lifecycle.friend_remove_unlinked("contact", context=owner)

    db_session.expire_all()
    assert db_session.get(Expense, "trip").participant_member_ids == [owner_member, "watcher"]


def test_self_delete_unlinks_others_and_keeps_expenses(db_session, make_account):
    alice, alice_member = make_account("alice@example.com")
    bob, bob_member = make_account("bob@example.com")
    sent = friend_requests.friend_request_send("bob@example.com", context=alice)
    friend_requests.friend_request_accept(sent["request"]["id"], context=bob)
    _group(db_session, "direct", "alice@example.com", [alice_member, bob_member], is_direct=True)
    _expense(db_session, "lunch", "direct", "alice@example.com", alice_member, [alice_member, bob_member])

    result = lifecycle.account_self_delete(context=alice)

    assert result["status"] == "ok"
    assert result["records_unlinked"] == 1
    db_session.expire_all()
    assert db_session.query(Account).filter(Account.email == "alice@example.com").first() is None
    bob_view = (
        db_session.query(AccountFriend)
        .filter(AccountFriend.account_email == "bob@example.com")
        .filter(AccountFriend.member_id == alice_member)
        .one()
    )
    assert bob_view.has_linked_account is False
    assert bob_view.linked_account_email is None
    assert db_session.query(AccountFriend).filter(AccountFriend.account_email == "alice@example.com").count() == 0
    assert db_session.get(Expense, "lunch") is not None
    assert db_session.query(FriendRequest).count() == 0


def test_hard_delete_removes_everything_owned(db_session, make_account):
    alice, alice_member = make_account("alice@example.com")
    bob, bob_member = make_account("bob@example.com")
    _friend(db_session, "alice@example.com", bob_member, linked_email="bob@example.com")
    _friend(db_session, "bob@example.com", alice_member, linked_email="alice@example.com")
    _group(db_session, "owned", "alice@example.com", [alice_member, bob_member])
    _group(db_session, "bobs", "bob@example.com", [alice_member, bob_member])
    _expense(db_session, "e-owned", "owned", "alice@example.com", alice_member, [alice_member, bob_member])
    _expense(db_session, "e-bobs", "bobs", "bob@example.com", bob_member, [alice_member, bob_member])
    db_session.add(MemberAlias(alias_member_id="alice-old", canonical_member_id=alice_member, account_email="alice@example.com"))
    db_session.commit()

    result = lifecycle.account_hard_delete("alice@example.com", reason="support request")

    assert result["status"] == "ok"
    assert result["groups_deleted"] == 1
    assert result["expenses_deleted"] == 1
    assert result["aliases_deleted"] == 1
    db_session.expire_all()
    assert db_session.get(Group, "owned") is None
    assert db_session.get(Expense, "e-owned") is None
    assert db_session.get(Group, "bobs") is not None
    assert db_session.get(Expense, "e-bobs") is not None
    assert db_session.query(MemberAlias).count() == 0
    bob_view = db_session.query(AccountFriend).filter(AccountFriend.account_email == "bob@example.com").one()
    assert bob_view.has_linked_account is False


def test_hard_delete_unknown_account(server_db):
    result = lifecycle.account_hard_delete("ghost@example.com")
    assert result["error_type"] == "not_found"
