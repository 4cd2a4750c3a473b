"""
Wikidata knowledge-graph adapter for tabletop titles.

Entity search on Wikidata is general purpose, so a query like "Catan" also returns
places, films and people. Two strategies are used:
1. `wbsearchentities` (fast, broad) with candidates ranked and filtered by
   `ranking.rank_candidates`
2. a SPARQL label search restricted to tabletop game classes, used only when the
   first strategy leaves nothing above the ranking floor
"""
from __future__ import annotations

import logging
import re
from typing import Any, Iterable, Mapping, Sequence

import requests

from gamevault_backend.integrations.metadata.contract import fetch_games_sequentially
from gamevault_backend.integrations.metadata.http import (
    PermanentProviderError,
    RateLimiter,
    raise_for_unexpected_status,
    read_json,
    send_request,
)
from gamevault_backend.integrations.metadata.ranking import rank_candidates
from gamevault_backend.models.metadata import (
    GameMetadata,
    MetadataSearchResult,
    PlayerInfo,
    ProviderCapabilities,
    ProviderManifest,
    RateLimitConfig,
)
from gamevault_backend.utils.html_text import decode_html_entities, truncate_text

logger = logging.getLogger(__name__)

WIKIDATA_API_URL = "https://www.wikidata.org/w/api.php"
WIKIDATA_SPARQL_URL = "https://query.wikidata.org/sparql"
WIKIDATA_ENTITY_URL = "https://www.wikidata.org/wiki"
SHORT_DESCRIPTION_MAX_LENGTH = 250

# board game, card game, tabletop game, dice game, tile-based game
TABLETOP_GAME_CLASSES: tuple[str, ...] = ("Q131436", "Q142714", "Q1515156", "Q1783817", "Q2249149")

_ENTITY_ID_RE = re.compile(r"^Q[0-9]+$")
_YEAR_RE = re.compile(r"^-?([0-9]{4})")

_DETAILS_QUERY = """
SELECT ?item ?itemLabel ?itemDescription ?image ?minPlayers ?maxPlayers
       ?designerLabel ?publisherLabel ?genreLabel ?publication
WHERE {{
  VALUES ?item {{ wd:{entity_id} }}
  SERVICE wikibase:label {{ bd:serviceParam wikibase:language "en". }}
  OPTIONAL {{ ?item wdt:P18 ?image. }}
  OPTIONAL {{ ?item wdt:P1872 ?minPlayers. }}
  OPTIONAL {{ ?item wdt:P1873 ?maxPlayers. }}
  OPTIONAL {{ ?item wdt:P178 ?designer. ?designer rdfs:label ?designerLabel. FILTER(LANG(?designerLabel) = "en") }}
  OPTIONAL {{ ?item wdt:P123 ?publisher. ?publisher rdfs:label ?publisherLabel. FILTER(LANG(?publisherLabel) = "en") }}
  OPTIONAL {{ ?item wdt:P136 ?genre. ?genre rdfs:label ?genreLabel. FILTER(LANG(?genreLabel) = "en") }}
  OPTIONAL {{ ?item wdt:P577 ?publication. }}
}}
LIMIT 200
"""

_LABEL_SEARCH_QUERY = """
SELECT DISTINCT ?item ?itemLabel ?itemDescription ?publication
WHERE {{
  SERVICE wikibase:mwapi {{
    bd:serviceParam wikibase:endpoint "www.wikidata.org";
                    wikibase:api "EntitySearch";
                    mwapi:search "{query}";
                    mwapi:language "en".
    ?item wikibase:apiOutputItem mwapi:item.
  }}
  VALUES ?gameClass {{ {classes} }}
  ?item wdt:P31/wdt:P279* ?gameClass.
  OPTIONAL {{ ?item wdt:P577 ?publication. }}
  SERVICE wikibase:label {{ bd:serviceParam wikibase:language "en". }}
}}
LIMIT {limit}
"""


def escape_sparql_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", " ").replace("\r", " ")


def _binding(row: Mapping[str, Any], key: str) -> str | None:
    node = row.get(key)
    if not isinstance(node, Mapping):
        return None
    value = node.get("value")
    if not isinstance(value, str):
        return None
    cleaned = decode_html_entities(value).strip()
    return cleaned or None


def _entity_id(uri: str | None) -> str | None:
    if not uri:
        return None
    candidate = uri.rstrip("/").rsplit("/", 1)[-1]
    return candidate if _ENTITY_ID_RE.match(candidate) else None


def _year(value: str | None) -> int | None:
    match = _YEAR_RE.match(value or "")
    return int(match.group(1)) if match else None


def _count(value: str | None) -> int | None:
    if not value:
        return None
    try:
        parsed = int(float(value))
    except ValueError:
        return None
    return parsed if parsed > 0 else None


def _https(url: str | None) -> str | None:
    if url and url.startswith("http://"):
        return "https://" + url[len("http://") :]
    return url


def parse_wikidata_bindings(entity_id: str, rows: Iterable[Mapping[str, Any]]) -> GameMetadata | None:
    name = description = image = publication = None
    min_players = max_players = None
    designers: list[str] = []
    publishers: list[str] = []
    genres: list[str] = []
    seen_row = False

    for row in rows:
        seen_row = True
        name = name or _binding(row, "itemLabel")
        description = description or _binding(row, "itemDescription")
        image = image or _binding(row, "image")
        publication = publication or _binding(row, "publication")
        min_players = min_players or _count(_binding(row, "minPlayers"))
        max_players = max_players or _count(_binding(row, "maxPlayers"))
        for bucket, key in ((designers, "designerLabel"), (publishers, "publisherLabel"), (genres, "genreLabel")):
            value = _binding(row, key)
            if value and value not in bucket:
                bucket.append(value)

    if not seen_row:
        return None
    # An unlabeled entity comes back with its own id as the label.
    if not name or name == entity_id:
        return None

    multiplayer = max_players is not None and max_players > 1
    year = _year(publication)
    return GameMetadata(
        external_id=entity_id,
        name=name,
        description=description,
        short_description=truncate_text(description, SHORT_DESCRIPTION_MAX_LENGTH) if description else None,
        cover_image_url=_https(image),
        genres=genres,
        developers=designers,
        publishers=publishers,
        release_date=str(year) if year else None,
        store_url=f"{WIKIDATA_ENTITY_URL}/{entity_id}",
        player_info=PlayerInfo(
            overall_min_players=min_players,
            overall_max_players=max_players,
            supports_online=False,
            supports_local=multiplayer,
            supports_physical=True,
            local_max_players=max_players if multiplayer else None,
            physical_min_players=min_players,
            physical_max_players=max_players,
        ),
        raw_payload={"entity_id": entity_id},
    )


class WikidataMetadataProvider:
    """Wikidata (public SPARQL endpoint and entity search). No credential needed."""

    _manifest = ProviderManifest(
        id="wikidata",
        name="Wikidata",
        requires_api_key=False,
        url_template=f"{WIKIDATA_ENTITY_URL}/{{id}}",
    )
    _capabilities = ProviderCapabilities(
        has_accurate_player_counts=True,
        has_store_urls=False,
        supports_batch_fetch=False,
        supports_search=True,
        has_descriptions=True,
        has_cover_images=True,
    )
    _rate_limit = RateLimitConfig(
        request_delay_ms=1000,
        max_batch_size=5,
        batch_delay_ms=2000,
        max_games_per_sync=200,
        retry_delay_ms=2000,
        max_consecutive_errors=5,
        max_retries=2,
    )

    def __init__(self, *, session: requests.Session | None = None, timeout_seconds: float = 30.0) -> None:
        self._session = session or requests.Session()
        self._timeout_seconds = timeout_seconds
        self._limiter = RateLimiter(self._rate_limit.request_delay_ms)

    def get_manifest(self) -> ProviderManifest:
        return self._manifest

    def get_capabilities(self) -> ProviderCapabilities:
        return self._capabilities

    def get_rate_limit_config(self) -> RateLimitConfig:
        return self._rate_limit

    def _request(self, method: str, url: str, *, params: Mapping[str, Any] | None = None, data: Any = None) -> Any:
        resp = send_request(
            self._session,
            method,
            url,
            provider_id=self._manifest.id,
            limiter=self._limiter,
            params=params,
            data=data,
            headers={"accept": "application/sparql-results+json, application/json"},
            timeout_seconds=self._timeout_seconds,
            max_retries=self._rate_limit.max_retries,
            retry_delay_ms=self._rate_limit.retry_delay_ms,
        )
        raise_for_unexpected_status(resp, provider_id=self._manifest.id)
        return read_json(resp, provider_id=self._manifest.id)

    def _sparql_rows(self, query: str) -> list[Mapping[str, Any]]:
        payload = self._request("POST", WIKIDATA_SPARQL_URL, data={"query": query, "format": "json"})
        results = payload.get("results") if isinstance(payload, Mapping) else None
        bindings = results.get("bindings") if isinstance(results, Mapping) else None
        if not isinstance(bindings, list):
            raise PermanentProviderError("Wikidata SPARQL returned unexpected payload.", provider_id=self._manifest.id)
        return [row for row in bindings if isinstance(row, Mapping)]

    def _entity_search(self, query: str, limit: int) -> list[MetadataSearchResult]:
        payload = self._request(
            "GET",
            WIKIDATA_API_URL,
            params={
                "action": "wbsearchentities",
                "search": query,
                "language": "en",
                "uselang": "en",
                "type": "item",
                "format": "json",
                "limit": min(50, limit * 2),
            },
        )
        entries = payload.get("search") if isinstance(payload, Mapping) else None
        if not isinstance(entries, list):
            return []

        candidates = [
            e for e in entries if isinstance(e, Mapping) and _ENTITY_ID_RE.match(str(e.get("id") or "")) and e.get("label")
        ]
        ranked = rank_candidates(
            query,
            candidates,
            name=lambda e: decode_html_entities(str(e.get("label") or "")),
            description=lambda e: decode_html_entities(str(e.get("description") or "")) or None,
        )
        return [
            MetadataSearchResult(
                external_id=str(e["id"]),
                name=decode_html_entities(str(e["label"])).strip(),
                provider_id=self._manifest.id,
            )
            for e in ranked[:limit]
        ]

    def _label_search(self, query: str, limit: int) -> list[MetadataSearchResult]:
        sparql = _LABEL_SEARCH_QUERY.format(
            query=escape_sparql_string(query),
            classes=" ".join(f"wd:{q}" for q in TABLETOP_GAME_CLASSES),
            limit=max(1, limit * 2),
        )
        rows = self._sparql_rows(sparql)
        candidates: dict[str, tuple[str, str | None, int | None]] = {}
        for row in rows:
            entity_id = _entity_id(_binding(row, "item"))
            label = _binding(row, "itemLabel")
            if not entity_id or not label or label == entity_id or entity_id in candidates:
                continue
            # Class-restricted results are games even when the description is empty.
            candidates[entity_id] = (label, _binding(row, "itemDescription") or "tabletop game", _year(_binding(row, "publication")))

        ranked = rank_candidates(
            query,
            list(candidates.items()),
            name=lambda c: c[1][0],
            description=lambda c: c[1][1],
        )
        return [
            MetadataSearchResult(
                external_id=entity_id,
                name=label,
                provider_id=self._manifest.id,
                release_year=year,
            )
            for entity_id, (label, _desc, year) in ranked[:limit]
        ]

    def search_games(self, query: str, limit: int = 10, api_key: str | None = None) -> list[MetadataSearchResult]:
        query = (query or "").strip()
        if not query:
            return []
        limit = max(1, int(limit))
        results = self._entity_search(query, limit)
        if results:
            return results
        logger.debug(f"Wikidata entity search found no game for {query!r}; trying SPARQL label search")
        return self._label_search(query, limit)

    def get_game_metadata(self, external_id: str, api_key: str | None = None) -> GameMetadata | None:
        entity_id = str(external_id or "").strip().upper()
        if not _ENTITY_ID_RE.match(entity_id):
            return None
        rows = self._sparql_rows(_DETAILS_QUERY.format(entity_id=entity_id))
        return parse_wikidata_bindings(entity_id, rows)

    def get_games_metadata(self, external_ids: Sequence[str], api_key: str | None = None) -> list[GameMetadata]:
        return fetch_games_sequentially(self, external_ids, api_key=api_key).items

    def get_game_url(self, external_id: str) -> str:
        return f"{WIKIDATA_ENTITY_URL}/{external_id}"
