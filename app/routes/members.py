"""
Identity resolution and alias merge endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from payback.context import RequestContext
from payback.services import alias_merge, aliases
from app.deps import get_request_context
from app.responses import tool_response


router = APIRouter(tags=["members"])


class AliasMergeBody(BaseModel):
    source_id: str
    target_id: str


@router.get("/members/{member_id}/canonical")
def resolve_canonical(member_id: str, context: RequestContext = Depends(get_request_context)):
    return tool_response(aliases.member_resolve_canonical(member_id, context=context))


@router.get("/members/{member_id}/equivalents")
def list_equivalents(member_id: str, context: RequestContext = Depends(get_request_context)):
    return tool_response(aliases.member_list_equivalents(member_id, context=context))


@router.post("/aliases/merge")
def merge_aliases(body: AliasMergeBody, context: RequestContext = Depends(get_request_context)):
    return tool_response(
        alias_merge.alias_merge(body.source_id, body.target_id, context=context)
    )
