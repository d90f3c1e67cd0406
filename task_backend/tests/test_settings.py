from __future__ import annotations

import pytest

from taskapi.settings import get_settings

_VARS = [
    "PERSISTENCE_BACKEND",
    "SQLITE_DB_PATH",
    "CORS_ALLOW_ORIGINS",
    "REQUEST_TIMEOUT_SECONDS",
    "SWEEP_INTERVAL_SECONDS",
    "SWEEPER_ENABLED",
    "LOG_LEVEL",
    "HOST",
    "PORT",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    s = get_settings()
    assert s.persistence_backend == "memory"
    assert s.sqlite_db_path == "./data/tasks.db"
    assert s.cors_allow_origins == ["*"]
    assert s.request_timeout_seconds == 5.0
    assert s.sweep_interval_seconds == 60.0
    assert s.sweeper_enabled is True
    assert s.log_level == "INFO"
    assert (s.host, s.port) == ("0.0.0.0", 8000)


def test_overrides(monkeypatch):
    monkeypatch.setenv("PERSISTENCE_BACKEND", "SQLite")
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", "http://a.test, http://b.test")
    monkeypatch.setenv("SWEEP_INTERVAL_SECONDS", "2.5")
    monkeypatch.setenv("SWEEPER_ENABLED", "off")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("PORT", "9001")

    s = get_settings()
    assert s.persistence_backend == "sqlite"
    assert s.cors_allow_origins == ["http://a.test", "http://b.test"]
    assert s.sweep_interval_seconds == 2.5
    assert s.sweeper_enabled is False
    assert s.log_level == "DEBUG"
    assert s.port == 9001


@pytest.mark.parametrize("raw", ["abc", "0", "-3"])
def test_invalid_numbers_fall_back(monkeypatch, raw):
    monkeypatch.setenv("REQUEST_TIMEOUT_SECONDS", raw)
    monkeypatch.setenv("SWEEP_INTERVAL_SECONDS", raw)
    monkeypatch.setenv("PORT", raw)
    s = get_settings()
    assert s.request_timeout_seconds == 5.0
    assert s.sweep_interval_seconds == 60.0
    assert s.port == 8000


def test_unknown_backend_falls_back_to_memory(monkeypatch):
    monkeypatch.setenv("PERSISTENCE_BACKEND", "postgres")
    assert get_settings().persistence_backend == "memory"
