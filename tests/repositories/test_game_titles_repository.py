from __future__ import annotations

from uuid import UUID

import pytest

from gamevault_backend.models.titles import GameType
from gamevault_backend.repositories.game_titles import (
    GameTitleRepositoryError,
    fetch_game_title,
    list_game_titles,
    update_game_title,
)
from gamevault_backend.repositories.settings import SettingsRepositoryError, fetch_app_setting, make_settings_store

TITLE_ID = "00000000-0000-0000-0000-0000000000a1"


class _FakeResponse:
    def __init__(self, *, data=None, error=None):  # noqa: ANN001
        self.data = data
        self.error = error


class _FakeClient:
    """Fake Supabase client that records the query chain."""

    def __init__(self, responses: list[_FakeResponse]) -> None:
        self._responses = list(responses)
        self.ops: list[tuple] = []

    def schema(self, name: str):  # noqa: ANN001
        self.ops.append(("schema", name))
        return self

    def table(self, name: str):  # noqa: ANN001
        self.ops.append(("table", name))
        return self

    def select(self, columns: str):  # noqa: ANN001
        self.ops.append(("select", columns))
        return self

    def update(self, payload: dict):  # noqa: ANN001
        self.ops.append(("update", payload))
        return self

    def eq(self, col: str, val: object):  # noqa: ANN001
        self.ops.append(("eq", col, val))
        return self

    def order(self, col: str, **kwargs):  # noqa: ANN001, ANN003
        self.ops.append(("order", col, kwargs.get("desc", False)))
        return self

    def limit(self, n: int):  # noqa: ANN001
        self.ops.append(("limit", n))
        return self

    def execute(self) -> _FakeResponse:
        return self._responses.pop(0)


def _row(**overrides) -> dict[str, object]:  # noqa: ANN003
    row: dict[str, object] = {
        "id": TITLE_ID,
        "name": "Catan",
        "type": "board_game",
        "owner_id": "user-1",
        "description": None,
        "cover_image_url": None,
        "overall_min_players": 3,
        "overall_max_players": "4",
        "supports_online": False,
        "supports_local": None,
        "supports_physical": True,
        "physical_max_players": 4,
    }
    row.update(overrides)
    return row


def test_fetch_game_title_maps_row() -> None:
    client = _FakeClient([_FakeResponse(data=[_row()])])
    title = fetch_game_title(client, UUID(TITLE_ID))

    assert ("schema", "core") in client.ops
    assert ("table", "game_titles") in client.ops
    assert ("eq", "id", TITLE_ID) in client.ops
    assert title.id == UUID(TITLE_ID)
    assert title.type is GameType.BOARD_GAME
    assert title.overall_max_players == 4
    assert title.supports_local is False
    assert title.supports_physical is True


def test_fetch_game_title_missing_and_error() -> None:
    assert fetch_game_title(_FakeClient([_FakeResponse(data=[])]), TITLE_ID) is None
    with pytest.raises(GameTitleRepositoryError, match="fetching game title"):
        fetch_game_title(_FakeClient([_FakeResponse(error="boom")]), TITLE_ID)


def test_list_game_titles_applies_filters() -> None:
    client = _FakeClient([_FakeResponse(data=[_row(), _row(id="00000000-0000-0000-0000-0000000000a2", type="mystery")])])
    titles = list_game_titles(client, owner_id="user-1", game_type=GameType.BOARD_GAME, limit=10)

    assert ("eq", "owner_id", "user-1") in client.ops
    assert ("eq", "type", "board_game") in client.ops
    assert ("order", "name", False) in client.ops
    assert ("limit", 10) in client.ops
    assert [t.type for t in titles] == [GameType.BOARD_GAME, GameType.VIDEO_GAME]


def test_update_game_title_returns_row_or_raises() -> None:
    client = _FakeClient([_FakeResponse(data=[_row(cover_image_url="https://img/c.jpg")])])
    row = update_game_title(client, TITLE_ID, {"cover_image_url": "https://img/c.jpg"})
    assert row["cover_image_url"] == "https://img/c.jpg"
    assert ("update", {"cover_image_url": "https://img/c.jpg"}) in client.ops

    with pytest.raises(GameTitleRepositoryError, match="no data"):
        update_game_title(_FakeClient([_FakeResponse(data=[])]), TITLE_ID, {"name": "x"})


def test_settings_store_reads_app_settings() -> None:
    client = _FakeClient([_FakeResponse(data=[{"value": "rawg-key"}]), _FakeResponse(data=[])])
    store = make_settings_store(client)

    assert store("rawgApiKey") == "rawg-key"
    assert ("table", "app_settings") in client.ops
    assert ("eq", "key", "rawgApiKey") in client.ops
    assert store("missing") is None


def test_settings_store_error_is_runtime_error() -> None:
    client = _FakeClient([_FakeResponse(error="relation does not exist")])
    with pytest.raises(SettingsRepositoryError):
        fetch_app_setting(client, "rawgApiKey")
    assert issubclass(SettingsRepositoryError, RuntimeError)
