from __future__ import annotations

import os
from pathlib import Path


def load_env(env_path: Path | str = ".env", *, override: bool = False) -> None:
    """Lightweight .env loader for scripts; existing variables win unless override is set."""
    path = Path(env_path)
    if not path.exists():
        return
    for line in path.read_text().splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if override or key not in os.environ:
            os.environ[key] = value
