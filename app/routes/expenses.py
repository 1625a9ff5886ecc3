"""
Expense endpoints guarded by the direct-expense gate.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from payback.context import RequestContext
from payback.services import direct_expense_gate, groups
from app.deps import get_request_context
from app.responses import tool_response


router = APIRouter(prefix="/expenses", tags=["expenses"])


class ExpenseSplit(BaseModel):
    member_id: str
    amount: float
    id: Optional[str] = None
    is_settled: bool = False


class ExpenseCreateBody(BaseModel):
    group_id: str
    description: Optional[str] = None
    total_amount: float
    paid_by_member_id: str
    splits: list[ExpenseSplit]


class DirectAuthorizeBody(BaseModel):
    group_id: str
    participant_ids: list[str]


@router.post("")
def create_expense(body: ExpenseCreateBody, context: RequestContext = Depends(get_request_context)):
    return tool_response(
        groups.expense_create(
            body.group_id,
            body.description,
            body.total_amount,
            body.paid_by_member_id,
            [split.model_dump() for split in body.splits],
            context=context,
        )
    )


@router.post("/authorize-direct")
def authorize_direct(body: DirectAuthorizeBody, context: RequestContext = Depends(get_request_context)):
    return tool_response(
        direct_expense_gate.expense_authorize_direct(
            body.group_id,
            body.participant_ids,
            context=context,
        )
    )


@router.get("/{expense_id}/participants")
def canonical_participants(expense_id: str, context: RequestContext = Depends(get_request_context)):
    return tool_response(groups.expense_canonical_participants(expense_id, context=context))
