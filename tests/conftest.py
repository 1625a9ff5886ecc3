import os

import pytest

os.environ.setdefault("DB_BACKEND", "sqlite")

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from payback.context import for_account
from payback.db import DB
from payback.models import Base
from payback.services.accounts import account_register


@pytest.fixture
def server_db(tmp_path):
    db_path = tmp_path / "payback.sqlite"
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    previous_engine = DB.engine
    previous_session = DB.SessionLocal
    DB.engine = engine
    DB.SessionLocal = SessionLocal
    try:
        yield DB
    finally:
        DB.engine = previous_engine
        DB.SessionLocal = previous_session
        engine.dispose()


@pytest.fixture
def db_session(server_db):
    session = server_db.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_account(server_db):
    """Register an account and return (context, member_id)."""

    def _make(email: str, display_name=None, member_id=None):
        local = email.split("@", 1)[0]
        result = account_register(
            account_id=f"auth_{local}",
            email=email,
            display_name=display_name or local.title(),
            linked_member_id=member_id,
        )
        assert result["status"] == "ok", result
        return for_account(email, account_id=f"auth_{local}"), result["account"]["linked_member_id"]

    return _make
