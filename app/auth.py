"""
Acting-account resolution for HTTP requests.

Sessions are issued upstream; by the time a request arrives here the
gateway has verified it and forwards the account email in a header.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException

ACCOUNT_HEADER = "X-Account-Email"


async def get_current_account_email(
    x_account_email: Optional[str] = Header(default=None, alias=ACCOUNT_HEADER),
) -> str:
    if not x_account_email or not x_account_email.strip():
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_account_email.strip().lower()
