"""
db/config.py

Environment-driven database configuration shared by the API, the
scheduler and Alembic.
"""

from __future__ import annotations

import os
from pathlib import Path

from sqlalchemy.engine import URL, make_url

_ENV_FILES = (".env", ".env.local")


def _parse_env_line(raw_line: str) -> tuple[str, str] | None:
    line = raw_line.strip()
    if not line or line.startswith("#") or "=" not in line:
        return None
    if line.startswith("export "):
        line = line[len("export "):]
    key, value = line.split("=", 1)
    key = key.strip()
    if not key:
        return None
    return key, value.strip().strip('"').strip("'")


def load_env_files() -> None:
    """
    Load KEY=VALUE pairs from `.env` then `.env.local` at the project root.
    Variables already present in the process environment win.
    """

    project_root = Path(__file__).resolve().parents[1]
    for filename in _ENV_FILES:
        env_path = project_root / filename
        if not env_path.is_file():
            continue
        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            parsed = _parse_env_line(raw_line)
            if parsed is not None:
                os.environ.setdefault(*parsed)


def normalize_postgres_url(url: str) -> str:
    """Rewrite postgres URLs to the psycopg 3 driver form."""
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+psycopg://" + url[len(prefix):]
    return url


def describe_database_url(url: str | URL) -> str:
    """Render a URL for logs with the password masked."""
    return make_url(url).render_as_string(hide_password=True)


def resolve_database_url() -> str:
    """
    Resolve the database URL.

    DATABASE_URL always wins. Otherwise APP_MODE=cloud reads
    CLOUD_DATABASE_URL and any other mode reads LOCAL_DATABASE_URL.
    """

    load_env_files()

    direct_url = os.getenv("DATABASE_URL", "").strip()
    if direct_url:
        return normalize_postgres_url(direct_url)

    app_mode = os.getenv("APP_MODE", "").strip().lower()
    variable = "CLOUD_DATABASE_URL" if app_mode == "cloud" else "LOCAL_DATABASE_URL"
    fallback_url = os.getenv(variable, "").strip()
    if fallback_url:
        return normalize_postgres_url(fallback_url)

    raise RuntimeError(f"No database URL configured. Set DATABASE_URL or {variable}.")
