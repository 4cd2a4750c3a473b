from __future__ import annotations

from typing import Any

from supabase import Client

from gamevault_backend.config import SettingsStore


class SettingsRepositoryError(RuntimeError):
    pass


def fetch_app_setting(db: Client, key: str) -> str | None:
    response = db.schema("core").table("app_settings").select("value").eq("key", key).limit(1).execute()
    if hasattr(response, "error") and response.error:
        raise SettingsRepositoryError(f"Supabase error during fetching app setting {key}: {response.error}")
    data = response.data or []
    if not isinstance(data, list) or not data:
        return None
    value: Any = data[0].get("value")
    if value is None:
        return None
    return str(value)


def make_settings_store(db: Client) -> SettingsStore:
    """Settings store callable for `config.resolve_setting`, backed by `core.app_settings`."""

    def store(key: str) -> str | None:
        return fetch_app_setting(db, key)

    return store
