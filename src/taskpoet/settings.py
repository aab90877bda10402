from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Tuple


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    Env vars:
    - TASKPOET_STORE_BACKEND: 'sqlite' (default) or 'memory'
    - TASKPOET_DB_PATH: path to the sqlite db file. Default '~/.taskpoet.db'
    - TASKPOET_NAMESPACE: bucket namespace for tasks. Default 'default'
    - TASKPOET_DEFAULT_DUE: calendar expression used as the default due date
      for new tasks, e.g. 'eow' or '2 weeks'. Empty means no default
    - TASKPOET_LOG_LEVEL: logging level name. Default 'INFO'
    - CORS_ALLOW_ORIGINS: comma-separated list of allowed origins; '*' by default
    - TASKPOET_RECURRING: semicolon-separated `description=frequency` entries,
      e.g. "water the plants=1w;stretch=daily". Empty by default
    """

    store_backend: str
    db_path: str
    namespace: str
    default_due: str
    log_level: str
    cors_allow_origins: List[str]
    recurring: Tuple[Tuple[str, str], ...] = ()


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name, default)
    if value is None or value.strip() == "":
        return default
    return value


def _parse_origins(origins_value: str) -> List[str]:
    """
    Parse CORS origins from env. Supports:
    - '*' to allow all origins
    - Comma-separated list of origins
    """
    value = origins_value.strip()
    if value == "*":
        return ["*"]
    return [o.strip() for o in value.split(",") if o.strip()]


def _parse_recurring(value: str) -> Tuple[Tuple[str, str], ...]:
    """
    Parse recurring entries. Entries without a description or a frequency are
    ignored.
    """
    entries = []
    for item in value.split(";"):
        description, _, frequency = item.partition("=")
        if description.strip() and frequency.strip():
            entries.append((description.strip(), frequency.strip()))
    return tuple(entries)


_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return application settings loaded from environment variables."""
    backend = _get_env("TASKPOET_STORE_BACKEND", "sqlite").strip().lower()
    if backend not in {"memory", "sqlite"}:
        # Fallback to sqlite if unsupported
        backend = "sqlite"

    db_path = os.path.expanduser(_get_env("TASKPOET_DB_PATH", "~/.taskpoet.db").strip())
    namespace = _get_env("TASKPOET_NAMESPACE", "default").strip()

    log_level = _get_env("TASKPOET_LOG_LEVEL", "INFO").strip().upper()
    if log_level not in _LOG_LEVELS:
        log_level = "INFO"

    return Settings(
        store_backend=backend,
        db_path=db_path,
        namespace=namespace,
        default_due=os.getenv("TASKPOET_DEFAULT_DUE", "").strip(),
        log_level=log_level,
        cors_allow_origins=_parse_origins(_get_env("CORS_ALLOW_ORIGINS", "*")),
        recurring=_parse_recurring(os.getenv("TASKPOET_RECURRING", "")),
    )
