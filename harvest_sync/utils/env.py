from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv


def load_env(*, override: bool = False) -> Path | None:
    """
    Load the first `.env` file found (explicit `HARVEST_ENV_FILE`, repo root, cwd).

    Returns the path that was loaded, or None when no file exists.
    """

    repo_root = Path(__file__).resolve().parents[2]
    candidates: list[Path] = []
    explicit = (os.getenv("HARVEST_ENV_FILE") or "").strip()
    if explicit:
        candidates.append(Path(explicit))
    candidates.extend([repo_root / ".env", Path.cwd() / ".env"])
    for path in candidates:
        if path.is_file():
            load_dotenv(dotenv_path=path, override=override)
            return path
    return None


def env_flag(name: str, *, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().casefold()
    if not raw:
        return default
    if raw in {"1", "true", "yes", "on"}:
        return True
    if raw in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"{name} must be a boolean flag (got {raw!r}).")
