from __future__ import annotations

import pytest

from gamevault_backend.config import MIN_VALID_DESCRIPTION_LENGTH, load_metadata_settings, resolve_setting


def test_store_value_wins_over_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RAWG_API_KEY", "from-env")
    assert resolve_setting("rawgApiKey", store=lambda key: "from-store") == "from-store"


def test_blank_store_value_falls_back_to_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RAWG_API_KEY", "  from-env  ")
    assert resolve_setting("rawgApiKey", store=lambda key: "   ") == "from-env"
    assert resolve_setting("rawgApiKey", store=lambda key: None) == "from-env"


def test_failing_store_is_logged_and_env_used(monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture) -> None:
    monkeypatch.setenv("TWITCH_CLIENT_ID", "client")

    def broken_store(key: str) -> str | None:
        raise RuntimeError("table missing")

    assert resolve_setting("twitchClientId", store=broken_store) == "client"
    assert "Settings store lookup failed for twitchClientId" in caplog.text


def test_missing_setting_uses_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("RAWG_API_KEY", raising=False)
    monkeypatch.delenv("MIN_VALID_DESCRIPTION_LENGTH", raising=False)
    assert resolve_setting("rawgApiKey") is None
    assert resolve_setting("minValidDescriptionLength") == str(MIN_VALID_DESCRIPTION_LENGTH)
    assert resolve_setting("unknownKey") is None


def test_load_metadata_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("RAWG_API_KEY", "TWITCH_CLIENT_ID", "TWITCH_CLIENT_SECRET", "BOARD_GAME_ATLAS_CLIENT_ID"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("TWITCH_CLIENT_SECRET", "secret")
    monkeypatch.setenv("MIN_VALID_DESCRIPTION_LENGTH", "not-a-number")

    stored = {"rawgApiKey": "rawg", "boardGameAtlasClientId": "bga"}
    settings = load_metadata_settings(stored.get)

    assert settings.rawg_api_key == "rawg"
    assert settings.board_game_atlas_client_id == "bga"
    assert settings.twitch_client_id is None
    assert settings.twitch_client_secret == "secret"
    assert settings.min_valid_description_length == MIN_VALID_DESCRIPTION_LENGTH
