from __future__ import annotations

from supabase import Client, create_client

from gamevault_backend.utils.env import read_env


def _required_env(name: str) -> str:
    value = read_env(name)
    if not value:
        raise RuntimeError(f"{name} environment variable is not set")
    return value


def create_supabase_admin_client(*, url: str | None = None, service_role_key: str | None = None) -> Client:
    """
    Create a Supabase client using the service role key (bypasses RLS).

    Intended for scripts and admin tasks (metadata sync, platform maintenance).
    """

    return create_client(
        url or _required_env("SUPABASE_URL"),
        service_role_key or _required_env("SUPABASE_SERVICE_ROLE_KEY"),
    )
