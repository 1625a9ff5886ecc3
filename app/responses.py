"""
Translate service payloads into HTTP responses.
"""

from __future__ import annotations

from fastapi import HTTPException

STATUS_BY_ERROR_TYPE = {
    "not_found": 404,
    "unauthorized": 403,
    "policy": 403,
    "conflict": 409,
    "cycle": 409,
    "invalid_state": 409,
    "expired": 410,
}


def tool_response(result: dict) -> dict:
    """Pass successful payloads through; raise HTTPException for error payloads."""
    if result.get("status") != "error":
        return result
    status_code = STATUS_BY_ERROR_TYPE.get(result.get("error_type"), 400)
    raise HTTPException(status_code=status_code, detail=result)
