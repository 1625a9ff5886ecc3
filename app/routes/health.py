"""
Health and dependency endpoints.
"""

from __future__ import annotations

import os

from fastapi import APIRouter, HTTPException
from sqlalchemy import text

import payback.config as config
from payback.db import DB, _get_schema_revisions


router = APIRouter()


def _check_db_health() -> dict:
    if DB.engine is None:
        return {"ok": False, "error": "db_not_initialized"}

    try:
        with DB.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as exc:
        return {"ok": False, "error": str(exc)}

    try:
        current_rev, head_rev = _get_schema_revisions(DB.engine)
    except Exception as exc:
        return {"ok": False, "error": f"schema_check_failed: {exc}"}
    schema_ok = head_rev is None or current_rev == head_rev
    return {
        "ok": schema_ok,
        "backend": config.DB_BACKEND_EFFECTIVE,
        "schema_revision": current_rev,
        "schema_expected": head_rev,
        "schema_up_to_date": schema_ok,
    }


@router.get("/health")
async def health():
    """Health check endpoint."""
    db_health = _check_db_health()
    if not db_health.get("ok"):
        raise HTTPException(status_code=503, detail={"database": db_health})

    return {
        "status": "healthy",
        "service": "Payback Identity",
        "version": "0.1.0",
        "instance_id": os.environ.get("PAYBACK_INSTANCE_ID", "payback-identity-1"),
        "database": db_health,
    }


@router.get("/health/live")
async def health_live():
    """Liveness check; does not touch the database."""
    return {"status": "alive", "service": "Payback Identity"}
