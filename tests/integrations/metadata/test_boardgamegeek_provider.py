from __future__ import annotations

from pathlib import Path

import pytest

from gamevault_backend.integrations.metadata import http as http_mod
from gamevault_backend.integrations.metadata.boardgamegeek import (
    QUEUED_MAX_RETRIES,
    BoardGameGeekMetadataProvider,
    parse_bgg_search_xml,
    parse_bgg_thing_xml,
)
from gamevault_backend.integrations.metadata.http import RateLimiter, TransientProviderError

FIXTURES = Path(__file__).resolve().parents[2] / "fixtures" / "boardgamegeek"


class _FakeResponse:
    def __init__(self, status_code: int, text: str = "") -> None:
        self.status_code = status_code
        self.text = text
        self.headers: dict[str, str] = {}


class _FakeSession:
    def __init__(self, responses: list[_FakeResponse]) -> None:
        self._responses = list(responses)
        self.calls: list[dict[str, object]] = []

    def request(self, method: str, url: str, **kwargs):  # noqa: ANN001
        self.calls.append({"method": method, "url": url, **kwargs})
        return self._responses.pop(0)


@pytest.fixture
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    recorded: list[float] = []
    monkeypatch.setattr(http_mod.time, "sleep", lambda seconds: recorded.append(seconds))
    return recorded


def _provider(session: _FakeSession) -> BoardGameGeekMetadataProvider:
    provider = BoardGameGeekMetadataProvider(session=session)
    provider._limiter = RateLimiter(0)
    return provider


def _fixture(name: str) -> str:
    return (FIXTURES / name).read_text(encoding="utf-8")


def test_thing_description_keeps_literal_entities() -> None:
    xml = (
        '<items><item type="boardgame" id="7"><name type="primary" value="Rock Band Board Game"/>'
        "<description>Rock &amp;amp;amp; Roll&amp;#10;Solo &amp;amp;lt;3</description></item></items>"
    )

    metadata = parse_bgg_thing_xml(xml)

    assert metadata is not None
    assert metadata.description == "Rock &amp; Roll\nSolo &lt;3"


def test_search_puts_exact_match_first_and_dedupes() -> None:
    results = parse_bgg_search_xml(_fixture("search_catan.xml"), query="Catan", limit=10)

    assert [r.external_id for r in results] == ["13", "278", "926"]
    assert results[0].name == "CATAN"
    assert results[0].release_year == 1995
    assert results[2].name == "Catan: Cities & Knights"
    assert parse_bgg_search_xml(_fixture("search_catan.xml"), query="Catan", limit=1)[0].external_id == "13"


def test_parse_thing_xml() -> None:
    metadata = parse_bgg_thing_xml(_fixture("thing_13.xml"))

    assert metadata is not None
    assert metadata.external_id == "13"
    assert metadata.name == "CATAN"
    assert metadata.description == (
        "In CATAN (formerly The Settlers of Catan), players try to be the dominant force on the island of "
        "Catan by building settlements, cities, and roads.\n"
        "Players collect resources — wood, grain, brick, sheep, or stone — to build up their civilizations."
    )
    assert metadata.cover_image_url.endswith("/pic2419375.jpg")
    assert "__original" in metadata.cover_image_url
    assert "__thumb" in metadata.header_image_url
    assert metadata.genres == ["Economic", "Negotiation"]
    assert metadata.tags == ["Dice Rolling"]
    assert metadata.developers == ["Klaus Teuber"]
    assert metadata.publishers == ["KOSMOS"]
    assert metadata.release_date == "1995"
    assert metadata.rating == 71.0
    assert metadata.store_url == "https://boardgamegeek.com/boardgame/13"

    players = metadata.player_info
    assert (players.overall_min_players, players.overall_max_players) == (3, 4)
    assert players.supports_online is False
    assert players.supports_local is True
    assert players.supports_physical is True
    assert (players.local_min_players, players.local_max_players) == (3, 4)
    assert (players.physical_min_players, players.physical_max_players) == (3, 4)


def test_parse_thing_xml_without_item() -> None:
    assert parse_bgg_thing_xml('<?xml version="1.0"?><items></items>') is None


def test_queued_response_is_polled_until_ready(sleeps: list[float]) -> None:
    session = _FakeSession([_FakeResponse(202), _FakeResponse(202), _FakeResponse(200, _fixture("thing_13.xml"))])
    metadata = _provider(session).get_game_metadata("13")

    assert metadata is not None and metadata.name == "CATAN"
    assert len(session.calls) == 3
    assert sleeps == [2.5, 2.5]
    assert session.calls[0]["params"] == {"id": "13", "stats": 1}
    assert session.calls[0]["url"] == "https://boardgamegeek.com/xmlapi2/thing"


def test_queued_forever_raises_transient(sleeps: list[float]) -> None:
    session = _FakeSession([_FakeResponse(202) for _ in range(QUEUED_MAX_RETRIES + 1)])
    with pytest.raises(TransientProviderError) as excinfo:
        _provider(session).search_games("Catan")
    assert excinfo.value.status_code == 202
    assert len(session.calls) == QUEUED_MAX_RETRIES + 1


def test_search_games_over_http(sleeps: list[float]) -> None:
    session = _FakeSession([_FakeResponse(200, _fixture("search_catan.xml"))])
    results = _provider(session).search_games("Catan", limit=2)

    assert [r.name for r in results] == ["CATAN", "Catan Card Game"]
    assert session.calls[0]["params"]["type"] == "boardgame,boardgameexpansion"


def test_client_errors_and_bad_ids_are_misses(sleeps: list[float]) -> None:
    session = _FakeSession([_FakeResponse(400, "<error/>")])
    assert _provider(session).get_game_metadata("13") is None
    assert _provider(_FakeSession([])).get_game_metadata("catan") is None
