import os

import pytest

os.environ.setdefault("DB_BACKEND", "sqlite")

import payback.config as config


def test_sqlite_url_is_derived_from_path(monkeypatch):
    monkeypatch.setattr(config, "DB_BACKEND", "sqlite")
    monkeypatch.setattr(config, "DATABASE_URL", None)
    monkeypatch.setattr(config, "SQLITE_PATH", "/tmp/payback-test.db")
    monkeypatch.setattr(config, "DB_BACKEND_EFFECTIVE", config.DB_BACKEND_EFFECTIVE)

    config.validate_and_prepare_config()

    assert config.DATABASE_URL == "sqlite:////tmp/payback-test.db"
    assert config.DB_BACKEND_EFFECTIVE == "sqlite"


def test_postgres_requires_database_url(monkeypatch):
    monkeypatch.setattr(config, "DB_BACKEND", "postgres")
    monkeypatch.setattr(config, "DATABASE_URL", None)

    with pytest.raises(RuntimeError, match="DATABASE_URL is required"):
        config.validate_and_prepare_config()


def test_negative_request_ttl_is_rejected(monkeypatch):
    monkeypatch.setattr(config, "DB_BACKEND", "sqlite")
    monkeypatch.setattr(config, "DATABASE_URL", "sqlite:///:memory:")
    monkeypatch.setattr(config, "FRIEND_REQUEST_TTL_DAYS", -1)

    with pytest.raises(RuntimeError, match="FRIEND_REQUEST_TTL_DAYS"):
        config.validate_and_prepare_config()


def test_bool_parsing(monkeypatch):
    monkeypatch.setenv("PAYBACK_FLAG", "Yes")
    assert config._get_bool("PAYBACK_FLAG", False) is True
    monkeypatch.setenv("PAYBACK_FLAG", "off")
    assert config._get_bool("PAYBACK_FLAG", True) is False
    monkeypatch.delenv("PAYBACK_FLAG")
    assert config._get_bool("PAYBACK_FLAG", True) is True


def test_list_parsing(monkeypatch):
    monkeypatch.setenv("PAYBACK_HOSTS", " api.example.com, ,localhost ")
    assert config._get_list("PAYBACK_HOSTS", []) == ["api.example.com", "localhost"]
    monkeypatch.setenv("PAYBACK_HOSTS", " , ")
    assert config._get_list("PAYBACK_HOSTS", ["fallback"]) == ["fallback"]
