"""
Canonical audit event type strings.
"""

EVENT_ALIAS_CREATED = "alias.created"
EVENT_FRIEND_REQUEST_SENT = "friend_request.sent"
EVENT_FRIEND_REQUEST_ACCEPTED = "friend_request.accepted"
EVENT_FRIEND_REQUEST_REJECTED = "friend_request.rejected"
EVENT_LINK_REQUEST_SENT = "link_request.sent"
EVENT_LINK_REQUEST_ACCEPTED = "link_request.accepted"
EVENT_LINK_REQUEST_DECLINED = "link_request.declined"
EVENT_LINK_REQUEST_CANCELLED = "link_request.cancelled"
EVENT_FRIEND_REMOVED_LINKED = "friend.removed_linked"
EVENT_FRIEND_REMOVED_UNLINKED = "friend.removed_unlinked"
EVENT_ACCOUNT_SELF_DELETED = "account.self_deleted"
EVENT_ACCOUNT_HARD_DELETED = "account.hard_deleted"
EVENT_RELATIONSHIP_STATUS_BACKFILLED = "relationships.status_backfilled"

__all__ = [
    "EVENT_ALIAS_CREATED",
    "EVENT_FRIEND_REQUEST_SENT",
    "EVENT_FRIEND_REQUEST_ACCEPTED",
    "EVENT_FRIEND_REQUEST_REJECTED",
    "EVENT_LINK_REQUEST_SENT",
    "EVENT_LINK_REQUEST_ACCEPTED",
    "EVENT_LINK_REQUEST_DECLINED",
    "EVENT_LINK_REQUEST_CANCELLED",
    "EVENT_FRIEND_REMOVED_LINKED",
    "EVENT_FRIEND_REMOVED_UNLINKED",
    "EVENT_ACCOUNT_SELF_DELETED",
    "EVENT_ACCOUNT_HARD_DELETED",
    "EVENT_RELATIONSHIP_STATUS_BACKFILLED",
]
