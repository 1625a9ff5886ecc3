"""
Account registration and self-service deletion.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from payback.context import RequestContext
from payback.services import accounts as account_service
from payback.services import lifecycle
from app.deps import get_request_context
from app.responses import tool_response


router = APIRouter(prefix="/accounts", tags=["accounts"])


class AccountRegisterBody(BaseModel):
    account_id: str
    display_name: Optional[str] = None
    linked_member_id: Optional[str] = None


@router.post("")
def register_account(
    body: AccountRegisterBody,
    context: RequestContext = Depends(get_request_context),
):
    return tool_response(
        account_service.account_register(
            account_id=body.account_id,
            email=context.auth.email,
            display_name=body.display_name,
            linked_member_id=body.linked_member_id,
        )
    )


@router.get("/me")
def get_me(context: RequestContext = Depends(get_request_context)):
    return tool_response(account_service.account_get(context=context))


@router.delete("/me")
def delete_me(context: RequestContext = Depends(get_request_context)):
    return tool_response(lifecycle.account_self_delete(context=context))
