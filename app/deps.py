"""
Dependency helpers for the FastAPI app.
"""

from __future__ import annotations

from typing import Generator, Optional

from fastapi import Depends, Header

from payback.context import AuthContext, RequestContext
from payback.db import DB
from app.auth import get_current_account_email


def get_db_session() -> Generator:
    if DB.SessionLocal is None:
        raise RuntimeError("Database not initialized - SessionLocal is None")
    db = DB.SessionLocal()
    try:
        yield db
    finally:
        db.close()


async def get_auth_context(
    email: str = Depends(get_current_account_email),
) -> AuthContext:
    return AuthContext(email=email, actor="user")


async def get_request_context(
    auth: AuthContext = Depends(get_auth_context),
    x_request_id: Optional[str] = Header(default=None, alias="X-Request-ID"),
) -> RequestContext:
    return RequestContext(auth=auth, request_id=x_request_id, source="http")
