"""
Group endpoints (membership changes drive the relationship hook).
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from payback.context import RequestContext
from payback.services import groups
from app.deps import get_request_context
from app.responses import tool_response


router = APIRouter(prefix="/groups", tags=["groups"])


class GroupMember(BaseModel):
    id: str
    name: Optional[str] = None


class GroupCreateBody(BaseModel):
    name: str
    members: list[GroupMember]
    is_direct: bool = False


class GroupMembersBody(BaseModel):
    members: list[GroupMember]


@router.post("")
def create_group(body: GroupCreateBody, context: RequestContext = Depends(get_request_context)):
    return tool_response(
        groups.group_create(
            body.name,
            [member.model_dump() for member in body.members],
            is_direct=body.is_direct,
            context=context,
        )
    )


@router.post("/{group_id}/members")
def add_members(
    group_id: str,
    body: GroupMembersBody,
    context: RequestContext = Depends(get_request_context),
):
    return tool_response(
        groups.group_add_members(
            group_id,
            [member.model_dump() for member in body.members],
            context=context,
        )
    )


@router.get("/{group_id}/members/{member_id}")
def is_member(group_id: str, member_id: str, context: RequestContext = Depends(get_request_context)):
    return tool_response(groups.group_is_member(group_id, member_id, context=context))
