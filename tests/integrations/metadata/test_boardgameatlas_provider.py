from __future__ import annotations

import json
from pathlib import Path

import pytest

from gamevault_backend.integrations.metadata import http as http_mod
from gamevault_backend.integrations.metadata.boardgameatlas import BoardGameAtlasMetadataProvider, map_bga_game
from gamevault_backend.integrations.metadata.http import PermanentProviderError, RateLimiter

FIXTURES = Path(__file__).resolve().parents[2] / "fixtures" / "boardgameatlas"


class _FakeResponse:
    def __init__(self, status_code: int, *, payload=None):  # noqa: ANN001
        self.status_code = status_code
        self.text = json.dumps(payload) if payload is not None else ""
        self._payload = payload
        self.headers: dict[str, str] = {}

    def json(self):  # noqa: ANN001
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class _FakeSession:
    def __init__(self, responses: list[_FakeResponse]) -> None:
        self._responses = list(responses)
        self.calls: list[dict[str, object]] = []

    def request(self, method: str, url: str, **kwargs):  # noqa: ANN001
        self.calls.append({"method": method, "url": url, **kwargs})
        return self._responses.pop(0)


@pytest.fixture(autouse=True)
def _no_sleep(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(http_mod.time, "sleep", lambda _seconds: None)


def _provider(session: _FakeSession, client_id: str | None = "bga-client") -> BoardGameAtlasMetadataProvider:
    provider = BoardGameAtlasMetadataProvider(client_id=client_id, session=session)
    provider._limiter = RateLimiter(0)
    return provider


def _catan_payload() -> dict[str, object]:
    return json.loads((FIXTURES / "search_ids_OIXt3DmJU0.json").read_text(encoding="utf-8"))


def test_get_game_metadata_by_id() -> None:
    session = _FakeSession([_FakeResponse(200, payload=_catan_payload())])
    metadata = _provider(session).get_game_metadata("OIXt3DmJU0")

    assert session.calls[0]["url"] == "https://api.boardgameatlas.com/api/search"
    assert session.calls[0]["params"] == {"client_id": "bga-client", "ids": "OIXt3DmJU0"}
    assert metadata.name == "Catan"
    assert metadata.description.startswith("In Catan, players try")
    assert metadata.rating == 74.0
    assert metadata.release_date == "1995"
    assert metadata.genres == ["Economic", "Dice Rolling", "Trading", "Modular Board"]
    assert metadata.developers == ["Klaus Teuber"]
    assert metadata.publishers == ["Catan Studio"]
    assert metadata.cover_image_url.endswith("1629324722072.jpg")
    assert metadata.store_url == "https://www.boardgameatlas.com/game/OIXt3DmJU0"

    players = metadata.player_info
    assert (players.overall_min_players, players.overall_max_players) == (3, 4)
    assert players.supports_online is False
    assert players.supports_local is True
    assert players.local_max_players == 4
    assert (players.physical_min_players, players.physical_max_players) == (3, 4)


def test_solo_game_defaults() -> None:
    metadata = map_bga_game({"id": "abc", "name": "Onirim", "min_players": 1, "max_players": 1})
    players = metadata.player_info
    assert players.supports_local is False
    assert players.local_max_players is None
    assert players.physical_max_players == 1
    assert metadata.rating is None


def test_missing_client_id_skips_lookups(caplog: pytest.LogCaptureFixture) -> None:
    session = _FakeSession([])
    provider = _provider(session, client_id=None)

    assert provider.search_games("Catan") == []
    assert provider.get_game_metadata("OIXt3DmJU0") is None
    assert session.calls == []
    assert "Board Game Atlas client id not configured" in caplog.text


def test_search_games() -> None:
    session = _FakeSession([_FakeResponse(200, payload=_catan_payload())])
    results = _provider(session).search_games("catan", limit=3)

    assert session.calls[0]["params"]["name"] == "catan"
    assert session.calls[0]["params"]["limit"] == 3
    assert [(r.external_id, r.name, r.release_year) for r in results] == [("OIXt3DmJU0", "Catan", 1995)]
    assert results[0].cover_image_url.endswith("-thumb.jpg")


def test_unexpected_payload_is_permanent() -> None:
    session = _FakeSession([_FakeResponse(200, payload={"error": "bad client"})])
    with pytest.raises(PermanentProviderError):
        _provider(session).search_games("Catan")


def test_unknown_id_returns_none() -> None:
    session = _FakeSession([_FakeResponse(200, payload={"games": []})])
    assert _provider(session).get_game_metadata("nope123") is None
