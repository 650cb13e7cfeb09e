from __future__ import annotations

import os
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Dict

DEFAULT_DB_URL = "sqlite:///data/hifz.db"


def default_settings(*, override: Dict[str, Any] | None = None) -> SimpleNamespace:
    settings = SimpleNamespace(
        db_url=normalize_db_url(os.getenv("HIFZ_DB_URL", DEFAULT_DB_URL)),
        daily_target=int(os.getenv("HIFZ_DAILY_TARGET", 10)),
        due_limit=int(os.getenv("HIFZ_DUE_LIMIT", 20)),
        days_ahead=int(os.getenv("HIFZ_DAYS_AHEAD", 7)),
    )
    if override:
        for key, val in override.items():
            setattr(settings, key, val)
    return settings


def normalize_db_url(db_url: str) -> str:
    """Accept bare SQLite paths and the legacy postgres:// scheme."""
    if db_url.startswith("postgres://"):
        return db_url.replace("postgres://", "postgresql://", 1)
    if "://" not in db_url:
        return build_sqlite_url(db_url)
    return db_url


def build_sqlite_url(db_path: str | Path) -> str:
    return f"sqlite:///{Path(db_path)}"


def ensure_sqlite_dirs(db_url: str) -> None:
    if not db_url.startswith("sqlite:///"):
        return
    path = db_url.replace("sqlite:///", "", 1)
    if path and path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)
