"""
Relationship record endpoints for the acting account.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from payback.context import RequestContext
from payback.services import alias_merge, lifecycle, relationships
from app.deps import get_request_context
from app.responses import tool_response


router = APIRouter(prefix="/friends", tags=["friends"])


class FriendUpsertBody(BaseModel):
    name: Optional[str] = None
    nickname: Optional[str] = None
    original_name: Optional[str] = None
    original_nickname: Optional[str] = None
    prefer_nickname: Optional[bool] = None
    profile_avatar_color: Optional[str] = None


class FriendMergeBody(BaseModel):
    friend_id_1: str
    friend_id_2: str


@router.get("")
def list_friends(
    status: Optional[str] = None,
    limit: int = 100,
    context: RequestContext = Depends(get_request_context),
):
    return tool_response(relationships.friend_list(status=status, limit=limit, context=context))


@router.post("/merge")
def merge_friends(body: FriendMergeBody, context: RequestContext = Depends(get_request_context)):
    return tool_response(
        alias_merge.friend_merge_pair(body.friend_id_1, body.friend_id_2, context=context)
    )


@router.get("/{member_id}")
def get_friend(member_id: str, context: RequestContext = Depends(get_request_context)):
    return tool_response(relationships.friend_get(member_id, context=context))


@router.put("/{member_id}")
def upsert_friend(
    member_id: str,
    body: FriendUpsertBody,
    context: RequestContext = Depends(get_request_context),
):
    return tool_response(
        relationships.friend_upsert(
            member_id,
            name=body.name,
            nickname=body.nickname,
            original_name=body.original_name,
            original_nickname=body.original_nickname,
            prefer_nickname=body.prefer_nickname,
            profile_avatar_color=body.profile_avatar_color,
            context=context,
        )
    )


@router.delete("/{member_id}/linked")
def remove_linked_friend(member_id: str, context: RequestContext = Depends(get_request_context)):
    return tool_response(lifecycle.friend_remove_linked(member_id, context=context))


@router.delete("/{member_id}/unlinked")
def remove_unlinked_friend(member_id: str, context: RequestContext = Depends(get_request_context)):
    return tool_response(lifecycle.friend_remove_unlinked(member_id, context=context))
