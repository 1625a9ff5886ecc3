"""
Friend request handshake endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from payback.context import RequestContext
from payback.services import friend_requests
from app.deps import get_request_context
from app.responses import tool_response


router = APIRouter(prefix="/friend-requests", tags=["friend-requests"])


class FriendRequestBody(BaseModel):
    recipient_email: str


@router.post("")
def send_request(body: FriendRequestBody, context: RequestContext = Depends(get_request_context)):
    return tool_response(friend_requests.friend_request_send(body.recipient_email, context=context))


@router.get("/incoming")
def list_incoming(limit: int = 50, context: RequestContext = Depends(get_request_context)):
    return tool_response(friend_requests.friend_request_list_incoming(limit=limit, context=context))


@router.get("/outgoing")
def list_outgoing(limit: int = 50, context: RequestContext = Depends(get_request_context)):
    return tool_response(friend_requests.friend_request_list_outgoing(limit=limit, context=context))


@router.post("/{request_id}/accept")
def accept_request(request_id: str, context: RequestContext = Depends(get_request_context)):
    return tool_response(friend_requests.friend_request_accept(request_id, context=context))


@router.post("/{request_id}/reject")
def reject_request(request_id: str, context: RequestContext = Depends(get_request_context)):
    return tool_response(friend_requests.friend_request_reject(request_id, context=context))
