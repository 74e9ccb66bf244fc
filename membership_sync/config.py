"""Configuration helpers for the membership sync service."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional
import logging
import math
import os


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings passed to ``psycopg2.connect``."""

    host: str = "127.0.0.1"
    port: int = 5432
    dbname: str = "membership_sync"
    user: str = "membership_sync"
    password: str = ""
    connect_timeout: int = 5

    def as_connect_kwargs(self) -> Dict[str, Any]:
        return {
            "host": self.host,
            "port": self.port,
            "dbname": self.dbname,
            "user": self.user,
            "password": self.password,
            "connect_timeout": self.connect_timeout,
        }


@dataclass(frozen=True)
class SyncConfig:
    """Runtime switches for enrollment reconciliation."""

    membership_only_mode: bool = False
    bundles_enabled: bool = True
    log_level: int = logging.INFO
    course_content_type: str = "courses"
    bundle_content_type: str = "course-bundle"
    database: DatabaseConfig = field(default_factory=DatabaseConfig)


def _to_bool(value: Optional[str], *, default: bool) -> bool:
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    return default


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def _to_timeout(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        timeout = float(value)
    except ValueError as exc:
        raise ValueError("DB_CONNECT_TIMEOUT must be a number") from exc
    if timeout < 0:
        raise ValueError("DB_CONNECT_TIMEOUT must be non-negative")
    return int(math.ceil(timeout))


def _to_log_level(value: Optional[str], *, default: int) -> int:
    if not value:
        return default
    token = value.strip()
    if token.isdigit():
        return int(token)
    level = logging.getLevelName(token.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level {value!r}")
    return level


def load_database_config(env: Optional[Mapping[str, str]] = None) -> DatabaseConfig:
    env_mapping = os.environ if env is None else env
    return DatabaseConfig(
        host=env_mapping.get("DB_HOST", "127.0.0.1"),
        port=_to_int(env_mapping.get("DB_PORT"), default=5432),
        dbname=env_mapping.get("DB_NAME", "membership_sync"),
        user=env_mapping.get("DB_USER", "membership_sync"),
        password=env_mapping.get("DB_PASSWORD", ""),
        connect_timeout=_to_timeout(env_mapping.get("DB_CONNECT_TIMEOUT"), default=5),
    )


def load_sync_config(env: Optional[Mapping[str, str]] = None) -> SyncConfig:
    """Load :class:`SyncConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    return SyncConfig(
        membership_only_mode=_to_bool(env_mapping.get("MEMBERSHIP_ONLY_MODE"), default=False),
        bundles_enabled=_to_bool(env_mapping.get("BUNDLES_ENABLED"), default=True),
        log_level=_to_log_level(env_mapping.get("SYNC_LOG_LEVEL"), default=logging.INFO),
        course_content_type=(env_mapping.get("COURSE_CONTENT_TYPE") or "courses").strip(),
        bundle_content_type=(env_mapping.get("BUNDLE_CONTENT_TYPE") or "course-bundle").strip(),
        database=load_database_config(env_mapping),
    )
