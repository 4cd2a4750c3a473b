from __future__ import annotations

import json
from pathlib import Path

import pytest

from gamevault_backend.integrations.metadata import http as http_mod
from gamevault_backend.integrations.metadata.http import PermanentProviderError, RateLimiter
from gamevault_backend.integrations.metadata.igdb import (
    IgdbMetadataProvider,
    escape_apicalypse_string,
    extract_igdb_player_info,
)

FIXTURES = Path(__file__).resolve().parents[2] / "fixtures" / "igdb"
TOKEN_URL = "https://id.twitch.tv/oauth2/token"


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


def _token_response() -> _FakeResponse:
    return _FakeResponse(200, payload={"access_token": "tok-1", "expires_in": 5000000, "token_type": "bearer"})


def _provider(session: _FakeSession, **kwargs) -> IgdbMetadataProvider:  # noqa: ANN003
    kwargs.setdefault("client_id", "client")
    kwargs.setdefault("client_secret", "secret")
    provider = IgdbMetadataProvider(session=session, **kwargs)
    provider._limiter = RateLimiter(0)
    return provider


def _game_payload() -> list[dict[str, object]]:
    return json.loads((FIXTURES / "game_72.json").read_text(encoding="utf-8"))


def test_token_is_fetched_once_and_reused() -> None:
    session = _FakeSession([_token_response(), _FakeResponse(200, payload=_game_payload()), _FakeResponse(200, payload=[])])
    provider = _provider(session)

    assert provider.get_game_metadata("72") is not None
    assert provider.get_game_metadata("73") is None

    urls = [call["url"] for call in session.calls]
    assert urls == [TOKEN_URL, "https://api.igdb.com/v4/games", "https://api.igdb.com/v4/games"]
    assert session.calls[0]["params"]["grant_type"] == "client_credentials"
    assert session.calls[1]["headers"]["Authorization"] == "Bearer tok-1"
    assert session.calls[1]["headers"]["Client-ID"] == "client"
    assert b"where id = 72;" in session.calls[1]["data"]


def test_unauthorized_response_drops_cached_token() -> None:
    session = _FakeSession(
        [
            _token_response(),
            _FakeResponse(401, payload={"message": "Authorization Failure"}),
            _token_response(),
            _FakeResponse(200, payload=[]),
        ]
    )
    provider = _provider(session)

    with pytest.raises(PermanentProviderError):
        provider.get_game_metadata("72")
    assert provider.get_game_metadata("72") is None
    assert [call["url"] for call in session.calls].count(TOKEN_URL) == 2


def test_missing_credentials_skip_lookups(caplog: pytest.LogCaptureFixture) -> None:
    session = _FakeSession([])
    provider = _provider(session, client_id=None)

    assert provider.search_games("Portal 2") == []
    assert provider.get_game_metadata("72") is None
    assert provider.get_games_metadata(["72"]) == []
    assert session.calls == []
    assert "IGDB unavailable" in caplog.text


def test_map_game_details() -> None:
    session = _FakeSession([_token_response(), _FakeResponse(200, payload=_game_payload())])
    metadata = _provider(session).get_game_metadata("72")

    assert metadata.name == "Portal 2"
    assert metadata.release_date == "2011-04-19"
    assert metadata.rating == 95.0
    assert metadata.age_rating == "E10+"
    assert metadata.developers == ["Valve Corporation"]
    assert metadata.publishers == ["Valve Corporation", "Electronic Arts"]
    assert metadata.cover_image_url == "https://images.igdb.com/igdb/image/upload/t_cover_big/co1rs4.jpg"
    assert metadata.store_url == "https://www.igdb.com/games/portal-2"

    players = metadata.player_info
    assert players.supports_online is True
    assert players.supports_local is True
    assert players.online_max_players == 2
    assert players.local_max_players == 4
    assert players.overall_min_players == 1
    assert players.overall_max_players == 4


def test_player_info_for_single_player_only_game() -> None:
    info = extract_igdb_player_info({"game_modes": [{"slug": "single-player"}]})
    assert info.overall_max_players == 1
    assert info.supports_online is False
    assert info.online_max_players is None


def test_search_games_escapes_query_and_maps_years() -> None:
    rows = [
        {"id": 72, "name": "Portal 2", "first_release_date": 1303171200, "cover": {"image_id": "co1rs4"}},
        {"id": 71, "name": "Portal"},
    ]
    session = _FakeSession([_token_response(), _FakeResponse(200, payload=rows)])
    results = _provider(session).search_games('Portal "2"', limit=5)

    assert [(r.external_id, r.release_year) for r in results] == [("72", 2011), ("71", None)]
    assert b'search "Portal \\"2\\""' in session.calls[1]["data"]
    assert escape_apicalypse_string('a\\b"c') == 'a\\\\b\\"c'


def test_get_games_metadata_batches_ids() -> None:
    session = _FakeSession([_token_response(), _FakeResponse(200, payload=_game_payload())])
    results = _provider(session).get_games_metadata(["72", "bad", " 73 "])

    assert [m.external_id for m in results] == ["72"]
    assert b"where id = (72,73); limit 2;" in session.calls[1]["data"]
