from __future__ import annotations

import json
from pathlib import Path

import pytest

from gamevault_backend.integrations.metadata import http as http_mod
from gamevault_backend.integrations.metadata.http import PermanentProviderError, RateLimiter
from gamevault_backend.integrations.metadata.wikidata import (
    WIKIDATA_SPARQL_URL,
    WikidataMetadataProvider,
    escape_sparql_string,
    parse_wikidata_bindings,
)

FIXTURES = Path(__file__).resolve().parents[2] / "fixtures" / "wikidata"


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


def _provider(session: _FakeSession) -> WikidataMetadataProvider:
    provider = WikidataMetadataProvider(session=session)
    provider._limiter = RateLimiter(0)
    return provider


def _fixture(name: str) -> dict[str, object]:
    return json.loads((FIXTURES / name).read_text(encoding="utf-8"))


def test_entity_search_drops_non_game_subjects() -> None:
    session = _FakeSession([_FakeResponse(200, payload=_fixture("wbsearchentities_catan.json"))])
    results = _provider(session).search_games("Catan", limit=5)

    assert [r.external_id for r in results] == ["Q17271", "Q5052158"]
    assert results[1].name == "Catan: Cities & Knights"
    assert all(r.provider_id == "wikidata" for r in results)
    assert session.calls[0]["method"] == "GET"
    assert session.calls[0]["params"]["action"] == "wbsearchentities"
    assert session.calls[0]["params"]["limit"] == 10


def test_label_search_is_used_when_entity_search_finds_nothing() -> None:
    sparql_payload = {
        "results": {
            "bindings": [
                {
                    "item": {"type": "uri", "value": "http://www.wikidata.org/entity/Q17271"},
                    "itemLabel": {"type": "literal", "value": "Catan"},
                    "publication": {"type": "literal", "value": "1995-01-01T00:00:00Z"},
                },
                {
                    "item": {"type": "uri", "value": "http://www.wikidata.org/entity/Q999"},
                    "itemLabel": {"type": "literal", "value": "Q999"},
                },
            ]
        }
    }
    session = _FakeSession(
        [
            _FakeResponse(200, payload={"search": [{"id": "Q1052498", "label": "Catan", "description": "village in Ivory Coast"}]}),
            _FakeResponse(200, payload=sparql_payload),
        ]
    )
    results = _provider(session).search_games("Catan")

    assert [(r.external_id, r.name, r.release_year) for r in results] == [("Q17271", "Catan", 1995)]
    sparql_call = session.calls[1]
    assert sparql_call["method"] == "POST"
    assert sparql_call["url"] == WIKIDATA_SPARQL_URL
    assert sparql_call["data"]["format"] == "json"
    assert 'mwapi:search "Catan"' in sparql_call["data"]["query"]
    assert "wd:Q131436" in sparql_call["data"]["query"]


def test_get_game_metadata_collects_multi_valued_properties() -> None:
    session = _FakeSession([_FakeResponse(200, payload=_fixture("details_Q17271.json"))])
    metadata = _provider(session).get_game_metadata("q17271")

    assert "wd:Q17271" in session.calls[0]["data"]["query"]
    assert metadata.external_id == "Q17271"
    assert metadata.name == "Catan"
    assert metadata.description == "multiplayer board game designed by Klaus Teuber"
    assert metadata.cover_image_url == "https://commons.wikimedia.org/wiki/Special:FilePath/Catan-2.JPG"
    assert metadata.developers == ["Klaus Teuber"]
    assert metadata.publishers == ["Kosmos", "Mayfair Games"]
    assert metadata.genres == ["Eurogame"]
    assert metadata.release_date == "1995"
    assert metadata.store_url == "https://www.wikidata.org/wiki/Q17271"

    players = metadata.player_info
    assert (players.overall_min_players, players.overall_max_players) == (3, 4)
    assert players.local_max_players == 4
    assert players.supports_physical is True
    assert players.supports_online is False


def test_unlabeled_or_empty_entities_are_misses() -> None:
    assert parse_wikidata_bindings("Q1", []) is None
    assert parse_wikidata_bindings("Q1", [{"itemLabel": {"value": "Q1"}}]) is None
    assert _provider(_FakeSession([])).get_game_metadata("Catan") is None


def test_malformed_sparql_payload_is_permanent() -> None:
    session = _FakeSession([_FakeResponse(200, payload={"head": {}})])
    with pytest.raises(PermanentProviderError):
        _provider(session).get_game_metadata("Q17271")


def test_escape_sparql_string() -> None:
    assert escape_sparql_string('say "hi"\\now\n') == 'say \\"hi\\"\\\\now '
