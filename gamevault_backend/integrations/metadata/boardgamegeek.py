from __future__ import annotations

import logging
import re
import time
from typing import Any, Mapping, Sequence

import requests
from bs4 import BeautifulSoup, Tag

from gamevault_backend.integrations.metadata.contract import fetch_games_sequentially
from gamevault_backend.integrations.metadata.http import (
    RateLimiter,
    TransientProviderError,
    raise_for_unexpected_status,
    send_request,
)
from gamevault_backend.models.metadata import (
    GameMetadata,
    MetadataSearchResult,
    PlayerInfo,
    ProviderCapabilities,
    ProviderManifest,
    RateLimitConfig,
)
from gamevault_backend.utils.html_text import decode_html_entities, strip_html, truncate_text

logger = logging.getLogger(__name__)

BGG_API_BASE_URL = "https://boardgamegeek.com/xmlapi2"
BGG_SITE_URL = "https://boardgamegeek.com/boardgame"
SHORT_DESCRIPTION_MAX_LENGTH = 250
# BGG answers 202 while it builds a response in the background.
QUEUED_MAX_RETRIES = 4
QUEUED_RETRY_DELAY_MS = 2500

_THING_ID_RE = re.compile(r"^[0-9]+$")


def _attr_value(parent: Tag, name: str) -> str | None:
    node = parent.find(name)
    if not isinstance(node, Tag):
        return None
    value = node.get("value")
    if value is None:
        return None
    cleaned = decode_html_entities(str(value)).strip()
    return cleaned or None


def _attr_int(parent: Tag, name: str) -> int | None:
    value = _attr_value(parent, name)
    if value and value.lstrip("-").isdigit():
        return int(value)
    return None


def _primary_name(item: Tag) -> str | None:
    names = [n for n in item.find_all("name") if isinstance(n, Tag)]
    for node in names:
        if node.get("type") == "primary" and node.get("value"):
            return decode_html_entities(str(node["value"])).strip() or None
    for node in names:
        if node.get("value"):
            return decode_html_entities(str(node["value"])).strip() or None
    return None


def _links(item: Tag, link_type: str) -> list[str]:
    values: list[str] = []
    for link in item.find_all("link", attrs={"type": link_type}):
        value = link.get("value") if isinstance(link, Tag) else None
        if value:
            values.append(decode_html_entities(str(value)).strip())
    return list(dict.fromkeys(v for v in values if v))


def parse_bgg_search_xml(xml: str, *, query: str, limit: int) -> list[MetadataSearchResult]:
    soup = BeautifulSoup(xml or "", "xml")
    results: list[MetadataSearchResult] = []
    seen: set[str] = set()
    for item in soup.find_all("item"):
        item_id = str(item.get("id") or "").strip()
        if not _THING_ID_RE.match(item_id) or item_id in seen:
            continue
        name = _primary_name(item)
        if not name:
            continue
        seen.add(item_id)
        results.append(
            MetadataSearchResult(
                external_id=item_id,
                name=name,
                provider_id="boardgamegeek",
                release_year=_attr_int(item, "yearpublished"),
            )
        )

    needle = query.strip().casefold()

    def order(result: MetadataSearchResult) -> int:
        name = result.name.casefold()
        if name == needle:
            return 0
        if name.startswith(needle):
            return 1
        return 2

    results.sort(key=order)
    return results[:limit]


def parse_bgg_thing_xml(xml: str) -> GameMetadata | None:
    soup = BeautifulSoup(xml or "", "xml")
    item = soup.find("item")
    if not isinstance(item, Tag):
        return None
    item_id = str(item.get("id") or "").strip()
    if not item_id:
        return None

    description_node = item.find("description")
    raw_description = description_node.get_text() if isinstance(description_node, Tag) else ""
    description = strip_html(raw_description)

    min_players = _attr_int(item, "minplayers")
    max_players = _attr_int(item, "maxplayers")
    if min_players is not None and min_players <= 0:
        min_players = None
    if max_players is not None and max_players <= 0:
        max_players = None

    image_node = item.find("image")
    thumbnail_node = item.find("thumbnail")
    image = image_node.get_text(strip=True) if isinstance(image_node, Tag) else ""
    thumbnail = thumbnail_node.get_text(strip=True) if isinstance(thumbnail_node, Tag) else ""

    rating = None
    average = item.find("average")
    if isinstance(average, Tag) and average.get("value"):
        try:
            rating = float(round(float(str(average["value"])) * 10))
        except ValueError:
            rating = None
    if rating == 0:
        rating = None

    is_multiplayer = max_players is not None and max_players > 1
    player_info = PlayerInfo(
        overall_min_players=min_players,
        overall_max_players=max_players,
        supports_online=False,
        supports_local=is_multiplayer,
        supports_physical=True,
        local_min_players=min_players if is_multiplayer else None,
        local_max_players=max_players if is_multiplayer else None,
        physical_min_players=min_players,
        physical_max_players=max_players,
    )

    year = _attr_value(item, "yearpublished")
    return GameMetadata(
        external_id=item_id,
        name=_primary_name(item) or f"BoardGame {item_id}",
        description=description or None,
        short_description=truncate_text(description, SHORT_DESCRIPTION_MAX_LENGTH) if description else None,
        cover_image_url=image or thumbnail or None,
        header_image_url=thumbnail or image or None,
        genres=_links(item, "boardgamecategory"),
        tags=_links(item, "boardgamemechanic"),
        developers=_links(item, "boardgamedesigner"),
        publishers=_links(item, "boardgamepublisher"),
        release_date=year if year and year != "0" else None,
        rating=rating,
        store_url=f"{BGG_SITE_URL}/{item_id}",
        player_info=player_info,
        raw_payload={"type": item.get("type"), "id": item_id},
    )


class BoardGameGeekMetadataProvider:
    """BoardGameGeek XML API 2. No credential needed."""

    _manifest = ProviderManifest(
        id="boardgamegeek",
        name="BoardGameGeek",
        requires_api_key=False,
        url_template=f"{BGG_SITE_URL}/{{id}}",
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
        request_delay_ms=1100,
        max_batch_size=1,
        batch_delay_ms=0,
        max_games_per_sync=200,
        retry_delay_ms=QUEUED_RETRY_DELAY_MS * 2,
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

    def _get_xml(self, path: str, params: Mapping[str, Any]) -> requests.Response:
        for attempt in range(QUEUED_MAX_RETRIES + 1):
            resp = send_request(
                self._session,
                "GET",
                f"{BGG_API_BASE_URL}/{path}",
                provider_id=self._manifest.id,
                limiter=self._limiter,
                params=params,
                headers={"accept": "application/xml"},
                timeout_seconds=self._timeout_seconds,
                max_retries=self._rate_limit.max_retries,
                retry_delay_ms=self._rate_limit.retry_delay_ms,
            )
            if resp.status_code != 202:
                return resp
            if attempt < QUEUED_MAX_RETRIES:
                logger.debug(f"BGG queued the request (202), attempt {attempt + 1}/{QUEUED_MAX_RETRIES}")
                time.sleep(QUEUED_RETRY_DELAY_MS / 1000.0)
        raise TransientProviderError(
            f"BGG kept the request queued after {QUEUED_MAX_RETRIES} retries.",
            provider_id=self._manifest.id,
            status_code=202,
        )

    def search_games(self, query: str, limit: int = 10, api_key: str | None = None) -> list[MetadataSearchResult]:
        query = (query or "").strip()
        if not query:
            return []
        resp = self._get_xml("search", {"query": query, "type": "boardgame,boardgameexpansion"})
        raise_for_unexpected_status(resp, provider_id=self._manifest.id)
        return parse_bgg_search_xml(resp.text or "", query=query, limit=max(1, int(limit)))

    def get_game_metadata(self, external_id: str, api_key: str | None = None) -> GameMetadata | None:
        thing_id = str(external_id or "").strip()
        if not _THING_ID_RE.match(thing_id):
            return None
        resp = self._get_xml("thing", {"id": thing_id, "stats": 1})
        if 400 <= resp.status_code < 500:
            return None
        raise_for_unexpected_status(resp, provider_id=self._manifest.id)
        return parse_bgg_thing_xml(resp.text or "")

    def get_games_metadata(self, external_ids: Sequence[str], api_key: str | None = None) -> list[GameMetadata]:
        return fetch_games_sequentially(self, external_ids, api_key=api_key).items

    def get_game_url(self, external_id: str) -> str:
        return f"{BGG_SITE_URL}/{external_id}"
