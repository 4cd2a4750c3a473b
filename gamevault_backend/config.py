"""
Runtime settings for the metadata engine.

Values come from a settings store (e.g. the `core.app_settings` table) when it has
one, and fall back to environment variables (loaded from `.env` by scripts).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from gamevault_backend.utils.env import read_env

logger = logging.getLogger(__name__)

SettingsStore = Callable[[str], "str | None"]

MIN_VALID_DESCRIPTION_LENGTH = 50

# setting key -> environment variable
SETTING_ENV_VARS: dict[str, str] = {
    "rawgApiKey": "RAWG_API_KEY",
    "twitchClientId": "TWITCH_CLIENT_ID",
    "twitchClientSecret": "TWITCH_CLIENT_SECRET",
    "boardGameAtlasClientId": "BOARD_GAME_ATLAS_CLIENT_ID",
    "minValidDescriptionLength": "MIN_VALID_DESCRIPTION_LENGTH",
}

SETTING_DEFAULTS: dict[str, str] = {
    "minValidDescriptionLength": str(MIN_VALID_DESCRIPTION_LENGTH),
}


def resolve_setting(key: str, *, store: SettingsStore | None = None) -> str | None:
    if store is not None:
        try:
            stored = store(key)
        except RuntimeError as exc:
            logger.warning(f"Settings store lookup failed for {key}: {exc}")
            stored = None
        if isinstance(stored, str) and stored.strip():
            return stored.strip()

    env_name = SETTING_ENV_VARS.get(key)
    if env_name:
        value = read_env(env_name)
        if value:
            return value

    return SETTING_DEFAULTS.get(key)


def _as_positive_int(value: str | None, default: int) -> int:
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


@dataclass(frozen=True)
class MetadataSettings:
    rawg_api_key: str | None = None
    twitch_client_id: str | None = None
    twitch_client_secret: str | None = None
    board_game_atlas_client_id: str | None = None
    min_valid_description_length: int = MIN_VALID_DESCRIPTION_LENGTH


def load_metadata_settings(store: SettingsStore | None = None) -> MetadataSettings:
    return MetadataSettings(
        rawg_api_key=resolve_setting("rawgApiKey", store=store),
        twitch_client_id=resolve_setting("twitchClientId", store=store),
        twitch_client_secret=resolve_setting("twitchClientSecret", store=store),
        board_game_atlas_client_id=resolve_setting("boardGameAtlasClientId", store=store),
        min_valid_description_length=_as_positive_int(
            resolve_setting("minValidDescriptionLength", store=store), MIN_VALID_DESCRIPTION_LENGTH
        ),
    )
