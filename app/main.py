"""
FastAPI app wiring for the Payback identity engine.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from payback.db import DB, dispose_db, init_db
from app.middleware import configure_middleware
from app.routes.accounts import router as accounts_router
from app.routes.expenses import router as expenses_router
from app.routes.friend_requests import router as friend_requests_router
from app.routes.friends import router as friends_router
from app.routes.groups import router as groups_router
from app.routes.health import router as health_router
from app.routes.link_requests import router as link_requests_router
from app.routes.members import router as members_router
from app.routes.root import router as root_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize on startup, cleanup on shutdown."""
    if DB.SessionLocal is None:
        init_db()
    try:
        yield
    finally:
        dispose_db()


app = FastAPI(title="Payback Identity", redirect_slashes=False, lifespan=lifespan)
configure_middleware(app)

# Health and root endpoints
app.include_router(health_router)
app.include_router(root_router)

# Engine endpoints
app.include_router(accounts_router)
app.include_router(members_router)
app.include_router(friends_router)
app.include_router(friend_requests_router)
app.include_router(link_requests_router)
app.include_router(groups_router)
app.include_router(expenses_router)
