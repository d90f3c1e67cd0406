from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    Env vars:
    - PERSISTENCE_BACKEND: 'memory' (default) or 'sqlite'
    - SQLITE_DB_PATH: path to sqlite db file. Default './data/tasks.db'
    - CORS_ALLOW_ORIGINS: comma-separated list of allowed origins; '*' by default
    - REQUEST_TIMEOUT_SECONDS: budget for a single store statement (default: 5)
    - SWEEP_INTERVAL_SECONDS: interval between overdue sweeps (default: 60)
    - SWEEPER_ENABLED: 'false' to not start the overdue sweeper (default: true)
    - LOG_LEVEL: root log level name (default: INFO)
    - HOST / PORT: bind address used by `python -m taskapi.main` (default: 0.0.0.0:8000)
    """

    persistence_backend: str
    sqlite_db_path: str
    cors_allow_origins: List[str]
    request_timeout_seconds: float
    sweep_interval_seconds: float
    sweeper_enabled: bool
    log_level: str
    host: str
    port: int


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name, default)
    if value is None or value == "":
        return default
    return value


def _parse_bool(value: str, default: bool = False) -> bool:
    v = value.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_positive_float(value: str, default: float) -> float:
    try:
        parsed = float(value.strip())
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _parse_port(value: str, default: int) -> int:
    try:
        parsed = int(value.strip())
    except ValueError:
        return default
    return parsed if 0 < parsed < 65536 else default


def _parse_origins(origins_value: str) -> List[str]:
    """
    Parse CORS origins from env. Supports:
    - '*' to allow all origins
    - Comma-separated list of origins
    """
    value = origins_value.strip()
    if value == "*":
        # Star will be handled in main via allow_origins=["*"]
        return ["*"]
    return [o.strip() for o in value.split(",") if o.strip()]


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return application settings loaded from environment variables."""
    backend = _get_env("PERSISTENCE_BACKEND", "memory").strip().lower()
    if backend not in {"memory", "sqlite"}:
        # Fallback to memory if unsupported
        backend = "memory"

    sqlite_path = _get_env("SQLITE_DB_PATH", "./data/tasks.db").strip()
    origins = _parse_origins(_get_env("CORS_ALLOW_ORIGINS", "*"))

    log_level = _get_env("LOG_LEVEL", "INFO").strip().upper()

    return Settings(
        persistence_backend=backend,
        sqlite_db_path=sqlite_path,
        cors_allow_origins=origins,
        request_timeout_seconds=_parse_positive_float(_get_env("REQUEST_TIMEOUT_SECONDS", "5"), 5.0),
        sweep_interval_seconds=_parse_positive_float(_get_env("SWEEP_INTERVAL_SECONDS", "60"), 60.0),
        sweeper_enabled=_parse_bool(_get_env("SWEEPER_ENABLED", "true"), True),
        log_level=log_level,
        host=_get_env("HOST", "0.0.0.0").strip(),
        port=_parse_port(_get_env("PORT", "8000"), 8000),
    )
