from __future__ import annotations

import logging
import re
from typing import Any, Mapping, Sequence

import requests

from gamevault_backend.integrations.metadata.contract import fetch_games_sequentially
from gamevault_backend.integrations.metadata.http import (
    PermanentProviderError,
    RateLimiter,
    raise_for_unexpected_status,
    read_json,
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
from gamevault_backend.utils.html_text import strip_html, truncate_text

logger = logging.getLogger(__name__)

RAWG_API_BASE_URL = "https://api.rawg.io/api"
RAWG_MAX_PAGE_SIZE = 40
SHORT_DESCRIPTION_MAX_LENGTH = 250

_GAME_ID_RE = re.compile(r"^[0-9]+$")

MULTIPLAYER_TAGS = frozenset(
    {"multiplayer", "online-multiplayer", "co-op", "local-co-op", "split-screen", "online-co-op", "local-multiplayer"}
)
ONLINE_TAGS = frozenset({"online-multiplayer", "online-co-op", "mmo", "massively-multiplayer"})
LOCAL_TAGS = frozenset({"local-co-op", "local-multiplayer", "split-screen"})


def _named_list(items: Any, *path: str) -> list[str]:
    if not isinstance(items, list):
        return []
    out: list[str] = []
    for item in items:
        node: Any = item
        for key in path:
            node = node.get(key) if isinstance(node, Mapping) else None
        if isinstance(node, str) and node.strip():
            out.append(node.strip())
    return out


def _release_year(value: Any) -> int | None:
    if isinstance(value, str) and len(value) >= 4 and value[:4].isdigit():
        return int(value[:4])
    return None


def extract_rawg_player_info(tags: Any) -> PlayerInfo:
    slugs = {s.lower() for s in _named_list(tags, "slug")}
    multiplayer = bool(slugs & MULTIPLAYER_TAGS)
    return PlayerInfo(
        overall_min_players=1,
        overall_max_players=None if multiplayer else 1,
        supports_online=bool(slugs & ONLINE_TAGS),
        supports_local=bool(slugs & LOCAL_TAGS),
    )


def map_rawg_game(data: Mapping[str, Any]) -> GameMetadata:
    game_id = str(data.get("id") or "").strip()
    description = data.get("description_raw")
    if not isinstance(description, str) or not description.strip():
        description = strip_html(str(data.get("description") or ""))
    description = description.strip()

    esrb = data.get("esrb_rating") if isinstance(data.get("esrb_rating"), Mapping) else {}
    metacritic = data.get("metacritic")
    slug = data.get("slug") if isinstance(data.get("slug"), str) else None

    return GameMetadata(
        external_id=game_id,
        name=str(data.get("name") or "").strip() or f"RAWG Game {game_id}",
        description=description or None,
        short_description=truncate_text(description, SHORT_DESCRIPTION_MAX_LENGTH) if description else None,
        cover_image_url=data.get("background_image") or None,
        header_image_url=data.get("background_image_additional") or data.get("background_image") or None,
        screenshots=_named_list(data.get("short_screenshots"), "image"),
        genres=_named_list(data.get("genres"), "name"),
        tags=_named_list(data.get("tags"), "name"),
        developers=_named_list(data.get("developers"), "name"),
        publishers=_named_list(data.get("publishers"), "name"),
        release_date=data.get("released") if isinstance(data.get("released"), str) else None,
        platforms=_named_list(data.get("platforms"), "platform", "name"),
        rating=float(metacritic) if isinstance(metacritic, (int, float)) and not isinstance(metacritic, bool) else None,
        age_rating=esrb.get("name") if isinstance(esrb.get("name"), str) else None,
        store_url=f"https://rawg.io/games/{slug or game_id}",
        player_info=extract_rawg_player_info(data.get("tags")),
        raw_payload=dict(data),
    )


class RawgMetadataProvider:
    """RAWG video game database. Requires `RAWG_API_KEY`."""

    _manifest = ProviderManifest(
        id="rawg",
        name="RAWG",
        requires_api_key=True,
        url_template="https://rawg.io/games/{id}",
    )
    _capabilities = ProviderCapabilities(
        has_accurate_player_counts=False,
        has_store_urls=False,
        supports_batch_fetch=False,
        supports_search=True,
        has_descriptions=True,
        has_cover_images=True,
    )
    _rate_limit = RateLimitConfig(
        request_delay_ms=100,
        max_batch_size=10,
        batch_delay_ms=500,
        max_games_per_sync=500,
        retry_delay_ms=1000,
        max_consecutive_errors=5,
        max_retries=2,
    )

    def __init__(
        self,
        *,
        api_key: str | None = None,
        session: requests.Session | None = None,
        timeout_seconds: float = 20.0,
    ) -> None:
        self._api_key = (api_key or "").strip() or None
        self._session = session or requests.Session()
        self._timeout_seconds = timeout_seconds
        self._limiter = RateLimiter(self._rate_limit.request_delay_ms)

    def get_manifest(self) -> ProviderManifest:
        return self._manifest

    def get_capabilities(self) -> ProviderCapabilities:
        return self._capabilities

    def get_rate_limit_config(self) -> RateLimitConfig:
        return self._rate_limit

    def _resolve_key(self, api_key: str | None) -> str | None:
        key = (api_key or "").strip() or self._api_key
        if not key:
            logger.warning("RAWG API key not configured; skipping RAWG lookups.")
        return key

    def _get(self, path: str, params: Mapping[str, Any]) -> requests.Response:
        return send_request(
            self._session,
            "GET",
            f"{RAWG_API_BASE_URL}{path}",
            provider_id=self._manifest.id,
            limiter=self._limiter,
            params=params,
            timeout_seconds=self._timeout_seconds,
            max_retries=self._rate_limit.max_retries,
            retry_delay_ms=self._rate_limit.retry_delay_ms,
        )

    def search_games(self, query: str, limit: int = 10, api_key: str | None = None) -> list[MetadataSearchResult]:
        key = self._resolve_key(api_key)
        query = (query or "").strip()
        if not key or not query:
            return []

        resp = self._get("/games", {"key": key, "search": query, "page_size": min(max(1, int(limit)), RAWG_MAX_PAGE_SIZE)})
        raise_for_unexpected_status(resp, provider_id=self._manifest.id)
        payload = read_json(resp, provider_id=self._manifest.id)
        if not isinstance(payload, Mapping) or not isinstance(payload.get("results"), list):
            raise PermanentProviderError("RAWG returned unexpected search payload.", provider_id=self._manifest.id)

        results: list[MetadataSearchResult] = []
        for game in payload["results"]:
            if not isinstance(game, Mapping) or game.get("id") is None or not game.get("name"):
                continue
            results.append(
                MetadataSearchResult(
                    external_id=str(game["id"]),
                    name=str(game["name"]),
                    provider_id=self._manifest.id,
                    release_year=_release_year(game.get("released")),
                    cover_image_url=game.get("background_image") or None,
                )
            )
        return results[: max(1, int(limit))]

    def get_game_metadata(self, external_id: str, api_key: str | None = None) -> GameMetadata | None:
        key = self._resolve_key(api_key)
        game_id = str(external_id or "").strip()
        if not key or not _GAME_ID_RE.match(game_id):
            return None

        resp = self._get(f"/games/{game_id}", {"key": key})
        if resp.status_code == 404:
            return None
        raise_for_unexpected_status(resp, provider_id=self._manifest.id)
        payload = read_json(resp, provider_id=self._manifest.id)
        if not isinstance(payload, Mapping) or payload.get("id") is None:
            return None
        return map_rawg_game(payload)

    def get_games_metadata(self, external_ids: Sequence[str], api_key: str | None = None) -> list[GameMetadata]:
        return fetch_games_sequentially(self, external_ids, api_key=api_key).items

    def get_game_url(self, external_id: str) -> str:
        return f"https://rawg.io/games/{external_id}"
