"""
Database URL resolution for direct Postgres access.

Most reads and writes go through the Supabase client; multi-statement work that
must be all-or-nothing (platform merges) opens a psycopg2 connection with the URL
resolved here.
"""
from __future__ import annotations

import logging
import os
import subprocess

logger = logging.getLogger(__name__)

DATABASE_URL_ENV_VARS: tuple[str, ...] = ("SUPABASE_DB_URL", "DATABASE_URL", "GAMEVAULT_DB_URL")


class DatabaseConnectionError(RuntimeError):
    """Raised when no database URL can be resolved."""


def _parse_supabase_status_env(output: str) -> dict[str, str]:
    """Parse output from `supabase status --output env`."""
    env_vars: dict[str, str] = {}
    for line in output.strip().splitlines():
        line = line.strip()
        if "=" not in line:
            continue
        key, _, value = line.partition("=")
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and value:
            env_vars[key] = value
    return env_vars


def _get_local_supabase_db_url() -> str | None:
    try:
        result = subprocess.run(
            ["supabase", "status", "--output", "env"],
            capture_output=True,
            text=True,
            timeout=10,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired, OSError):
        return None
    if result.returncode != 0:
        return None
    return _parse_supabase_status_env(result.stdout).get("DB_URL")


def resolve_database_url(*, allow_local_fallback: bool = True) -> str:
    """
    Resolve the Postgres URL.

    Checked in order: SUPABASE_DB_URL, DATABASE_URL, GAMEVAULT_DB_URL, then (when
    `allow_local_fallback`) the DB_URL reported by a running local Supabase stack.
    """

    for name in DATABASE_URL_ENV_VARS:
        url = (os.getenv(name) or "").strip()
        if url:
            logger.debug(f"Database URL resolved from {name}")
            return url

    if allow_local_fallback:
        url = _get_local_supabase_db_url()
        if url:
            logger.debug("Database URL resolved from `supabase status`")
            return url

    raise DatabaseConnectionError(
        "No database URL configured.\n\n"
        "Set SUPABASE_DB_URL to your Supabase direct connection string, or start a local "
        "stack with `supabase start`.\n\n"
        "Checked in order:\n" + "".join(f"  - {name}\n" for name in DATABASE_URL_ENV_VARS)
    )


def mask_database_url(url: str) -> str:
    """Hide the password in a connection URL for display."""
    head, sep, tail = url.partition("@")
    if not sep or ":" not in head:
        return url
    user, _, password = head.rpartition(":")
    # "scheme://user@host" has no password; the only colon belongs to the scheme.
    if password.startswith("//"):
        return url
    return f"{user}:****@{tail}"
