"""
Root endpoint with service metadata.
"""

from __future__ import annotations

from fastapi import APIRouter

import payback.config as config


router = APIRouter()


@router.get("/")
async def root():
    """Root endpoint with service info."""
    return {
        "service": "Payback Identity",
        "version": "0.1.0",
        "description": "Member identity resolution and friendship rules for shared expenses",
        "friend_request_ttl_days": config.FRIEND_REQUEST_TTL_DAYS,
        "endpoints": {
            "health": "/health",
            "accounts": "/accounts",
            "members": "/members/{member_id}/canonical",
            "aliases": "/aliases/merge",
            "friends": "/friends",
            "friend_requests": "/friend-requests",
            "groups": "/groups",
            "expenses": "/expenses",
        },
    }
