"""
Link request endpoints: claiming a placeholder contact.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from payback.context import RequestContext
from payback.services import link_requests
from app.deps import get_request_context
from app.responses import tool_response


router = APIRouter(prefix="/link-requests", tags=["link-requests"])


class LinkRequestBody(BaseModel):
    recipient_email: str
    target_member_id: str
    target_member_name: Optional[str] = None


@router.post("")
def send_request(body: LinkRequestBody, context: RequestContext = Depends(get_request_context)):
    return tool_response(
        link_requests.link_request_send(
            body.recipient_email,
            body.target_member_id,
            target_member_name=body.target_member_name,
            context=context,
        )
    )


@router.get("/incoming")
def list_incoming(limit: int = 50, context: RequestContext = Depends(get_request_context)):
    return tool_response(link_requests.link_request_list_incoming(limit=limit, context=context))


@router.get("/outgoing")
def list_outgoing(limit: int = 50, context: RequestContext = Depends(get_request_context)):
    return tool_response(link_requests.link_request_list_outgoing(limit=limit, context=context))


@router.post("/{request_id}/accept")
def accept_request(request_id: str, context: RequestContext = Depends(get_request_context)):
    return tool_response(link_requests.link_request_accept(request_id, context=context))


@router.post("/{request_id}/decline")
def decline_request(request_id: str, context: RequestContext = Depends(get_request_context)):
    return tool_response(link_requests.link_request_decline(request_id, context=context))


@router.delete("/{request_id}")
def cancel_request(request_id: str, context: RequestContext = Depends(get_request_context)):
    return tool_response(link_requests.link_request_cancel(request_id, context=context))
