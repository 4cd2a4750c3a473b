from __future__ import annotations

import re
from typing import Any, Mapping, Sequence

import requests
from bs4 import BeautifulSoup

from gamevault_backend.integrations.metadata.contract import fetch_games_sequentially
from gamevault_backend.integrations.metadata.http import (
    RateLimiter,
    raise_for_unexpected_status,
    read_json,
    send_request,
)
from gamevault_backend.models.metadata import (
    GameMetadata,
    MetadataSearchResult,
    PlayerInfo,
    PriceInfo,
    ProviderCapabilities,
    ProviderManifest,
    RateLimitConfig,
)
from gamevault_backend.utils.html_text import decode_html_entities, strip_html, truncate_text

STEAM_STORE_BASE_URL = "https://store.steampowered.com"
STEAM_CDN_BASE_URL = "https://cdn.cloudflare.steamstatic.com/steam/apps"
SHORT_DESCRIPTION_MAX_LENGTH = 250

_APP_ID_RE = re.compile(r"^[0-9]+$")

# Steam store category ids.
SINGLE_PLAYER_CATEGORIES = frozenset({2})
MULTIPLAYER_CATEGORIES = frozenset({1, 9, 20, 49})
ONLINE_CATEGORIES = frozenset({20, 27, 36, 38})
LOCAL_CATEGORIES = frozenset({24, 37, 39})


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        raw = value.strip()
        if raw.isdigit():
            return int(raw)
    return None


def _names(items: Any, key: str = "description") -> list[str]:
    if not isinstance(items, list):
        return []
    out: list[str] = []
    for item in items:
        if isinstance(item, Mapping):
            value = item.get(key)
            if isinstance(value, str) and value.strip():
                out.append(value.strip())
        elif isinstance(item, str) and item.strip():
            out.append(item.strip())
    return out


def header_image_url(app_id: str) -> str:
    return f"{STEAM_CDN_BASE_URL}/{app_id}/header.jpg"


def parse_steam_search_suggestions(html: str, *, limit: int) -> list[MetadataSearchResult]:
    soup = BeautifulSoup(html or "", "html.parser")
    results: list[MetadataSearchResult] = []
    seen: set[str] = set()
    for anchor in soup.select("a[data-ds-appid]"):
        raw_ids = str(anchor.get("data-ds-appid") or "")
        app_id = raw_ids.split(",")[0].strip()
        if not _APP_ID_RE.match(app_id) or app_id in seen:
            continue
        seen.add(app_id)

        name_node = anchor.select_one(".match_name")
        name = decode_html_entities(name_node.get_text(" ", strip=True)) if name_node else ""
        image_node = anchor.select_one(".match_img img")
        image = image_node.get("src") if image_node else None

        results.append(
            MetadataSearchResult(
                external_id=app_id,
                name=name or f"Steam App {app_id}",
                provider_id="steam",
                cover_image_url=str(image) if image else header_image_url(app_id),
            )
        )
        if len(results) >= limit:
            break
    return results


def extract_steam_player_info(categories: Any) -> PlayerInfo:
    """
    Steam exposes play modes, never player counts. Only a single-player-only
    title gets a max (1); multiplayer counts are left for enrichment.
    """

    ids = {_as_int(c.get("id")) for c in categories if isinstance(c, Mapping)} if isinstance(categories, list) else set()
    single = bool(ids & SINGLE_PLAYER_CATEGORIES)
    multi = bool(ids & MULTIPLAYER_CATEGORIES)
    return PlayerInfo(
        overall_min_players=1,
        overall_max_players=1 if single and not multi else None,
        supports_online=bool(ids & ONLINE_CATEGORIES),
        supports_local=bool(ids & LOCAL_CATEGORIES),
    )


def _age_rating(value: Any) -> str | None:
    age = _as_int(value)
    if not age:
        return None
    return f"{age}+"


def _price_info(data: Mapping[str, Any]) -> PriceInfo | None:
    overview = data.get("price_overview")
    is_free = bool(data.get("is_free"))
    if isinstance(overview, Mapping):
        initial = overview.get("initial")
        final = overview.get("final")
        return PriceInfo(
            currency=overview.get("currency") if isinstance(overview.get("currency"), str) else None,
            initial=initial / 100 if isinstance(initial, (int, float)) else None,
            final=final / 100 if isinstance(final, (int, float)) else None,
            discount_percent=_as_int(overview.get("discount_percent")),
            is_free=is_free,
        )
    if is_free:
        return PriceInfo(initial=0.0, final=0.0, discount_percent=0, is_free=True)
    return None


def map_steam_app_details(data: Mapping[str, Any]) -> GameMetadata:
    app_id = str(data.get("steam_appid") or "").strip()
    platforms_block = data.get("platforms") if isinstance(data.get("platforms"), Mapping) else {}
    platforms = [
        label
        for key, label in (("windows", "Windows"), ("mac", "macOS"), ("linux", "Linux"))
        if platforms_block.get(key)
    ]

    description = strip_html(str(data.get("about_the_game") or data.get("detailed_description") or ""))
    short_description = strip_html(str(data.get("short_description") or ""))
    if not short_description and description:
        short_description = truncate_text(description, SHORT_DESCRIPTION_MAX_LENGTH)

    release = data.get("release_date") if isinstance(data.get("release_date"), Mapping) else {}
    metacritic = data.get("metacritic") if isinstance(data.get("metacritic"), Mapping) else {}
    screenshots = data.get("screenshots") if isinstance(data.get("screenshots"), list) else []

    return GameMetadata(
        external_id=app_id,
        name=decode_html_entities(str(data.get("name") or "")).strip() or f"Steam App {app_id}",
        description=description or None,
        short_description=short_description or None,
        cover_image_url=data.get("capsule_imagev5") or data.get("capsule_image") or data.get("header_image"),
        header_image_url=data.get("header_image"),
        screenshots=[s["path_full"] for s in screenshots if isinstance(s, Mapping) and s.get("path_full")],
        genres=_names(data.get("genres")),
        tags=_names(data.get("categories")),
        developers=_names(data.get("developers")),
        publishers=_names(data.get("publishers")),
        release_date=release.get("date") if isinstance(release.get("date"), str) and release.get("date") else None,
        platforms=platforms,
        rating=float(metacritic["score"]) if isinstance(metacritic.get("score"), (int, float)) else None,
        age_rating=_age_rating(data.get("required_age")),
        store_url=f"{STEAM_STORE_BASE_URL}/app/{app_id}",
        player_info=extract_steam_player_info(data.get("categories")),
        price_info=_price_info(data),
        raw_payload=dict(data),
    )


class SteamMetadataProvider:
    """Steam store catalog. No credential needed; store endpoints are public."""

    _manifest = ProviderManifest(
        id="steam",
        name="Steam",
        requires_api_key=False,
        url_template=f"{STEAM_STORE_BASE_URL}/app/{{id}}",
    )
    _capabilities = ProviderCapabilities(
        has_accurate_player_counts=False,
        has_store_urls=True,
        supports_batch_fetch=True,
        supports_search=True,
        has_descriptions=True,
        has_cover_images=True,
    )
    _rate_limit = RateLimitConfig(
        request_delay_ms=400,
        max_batch_size=5,
        batch_delay_ms=1500,
        max_games_per_sync=500,
        retry_delay_ms=5000,
        max_consecutive_errors=5,
        max_retries=2,
    )

    def __init__(self, *, session: requests.Session | None = None, timeout_seconds: float = 20.0) -> None:
        self._session = session or requests.Session()
        self._timeout_seconds = timeout_seconds
        self._limiter = RateLimiter(self._rate_limit.request_delay_ms)

    def get_manifest(self) -> ProviderManifest:
        return self._manifest

    def get_capabilities(self) -> ProviderCapabilities:
        return self._capabilities

    def get_rate_limit_config(self) -> RateLimitConfig:
        return self._rate_limit

    def _get(self, url: str, params: Mapping[str, Any]) -> requests.Response:
        return send_request(
            self._session,
            "GET",
            url,
            provider_id=self._manifest.id,
            limiter=self._limiter,
            params=params,
            timeout_seconds=self._timeout_seconds,
            max_retries=self._rate_limit.max_retries,
            retry_delay_ms=self._rate_limit.retry_delay_ms,
        )

    def search_games(self, query: str, limit: int = 10, api_key: str | None = None) -> list[MetadataSearchResult]:
        query = (query or "").strip()
        if not query:
            return []
        resp = self._get(
            f"{STEAM_STORE_BASE_URL}/search/suggest",
            {"term": query, "f": "games", "cc": "US", "l": "english"},
        )
        raise_for_unexpected_status(resp, provider_id=self._manifest.id)
        return parse_steam_search_suggestions(resp.text or "", limit=max(1, int(limit)))

    def get_game_metadata(self, external_id: str, api_key: str | None = None) -> GameMetadata | None:
        app_id = str(external_id or "").strip()
        if not _APP_ID_RE.match(app_id):
            return None

        resp = self._get(f"{STEAM_STORE_BASE_URL}/api/appdetails", {"appids": app_id, "cc": "us", "l": "english"})
        if resp.status_code >= 400:
            return None

        payload = read_json(resp, provider_id=self._manifest.id)
        entry = payload.get(app_id) if isinstance(payload, Mapping) else None
        if not isinstance(entry, Mapping) or not entry.get("success"):
            return None
        data = entry.get("data")
        if not isinstance(data, Mapping):
            return None
        if not data.get("steam_appid"):
            data = {**data, "steam_appid": app_id}
        return map_steam_app_details(data)

    def get_games_metadata(self, external_ids: Sequence[str], api_key: str | None = None) -> list[GameMetadata]:
        return fetch_games_sequentially(self, external_ids, api_key=api_key).items

    def get_game_url(self, external_id: str) -> str:
        return f"{STEAM_STORE_BASE_URL}/app/{external_id}"
