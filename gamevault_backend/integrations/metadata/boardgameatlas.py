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

BGA_API_BASE_URL = "https://api.boardgameatlas.com/api"
BGA_SITE_URL = "https://www.boardgameatlas.com/game"
SHORT_DESCRIPTION_MAX_LENGTH = 250
MAX_MECHANICS_AS_GENRES = 3

_GAME_ID_RE = re.compile(r"^[A-Za-z0-9]+$")


def _positive_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)) and value > 0:
        return int(value)
    return None


def _names(*groups: Any) -> list[str]:
    names: list[str] = []
    for group in groups:
        items = group if isinstance(group, list) else [group]
        for item in items:
            if isinstance(item, Mapping) and isinstance(item.get("name"), str) and item["name"].strip():
                names.append(item["name"].strip())
    return list(dict.fromkeys(names))


def map_bga_game(game: Mapping[str, Any]) -> GameMetadata:
    game_id = str(game.get("id") or "").strip()
    description = strip_html(str(game.get("description_preview") or game.get("description") or ""))

    mechanics = game.get("mechanics") if isinstance(game.get("mechanics"), list) else []
    genres = _names(game.get("categories"), mechanics[:MAX_MECHANICS_AS_GENRES])

    rating_raw = game.get("average_user_rating")
    rating = (
        float(round(rating_raw * 20))
        if isinstance(rating_raw, (int, float)) and not isinstance(rating_raw, bool) and rating_raw > 0
        else None
    )

    min_players = _positive_int(game.get("min_players")) or 1
    max_players = _positive_int(game.get("max_players")) or min_players
    multiplayer = max_players > 1
    year = _positive_int(game.get("year_published"))

    return GameMetadata(
        external_id=game_id,
        name=str(game.get("name") or "").strip() or f"Board Game {game_id}",
        description=description or None,
        short_description=truncate_text(description, SHORT_DESCRIPTION_MAX_LENGTH) if description else None,
        cover_image_url=game.get("image_url") or game.get("thumb_url") or None,
        header_image_url=game.get("image_url") or None,
        genres=genres,
        developers=_names(game.get("primary_designer"), game.get("designers")),
        publishers=_names(game.get("primary_publisher"), game.get("publishers")),
        release_date=str(year) if year else None,
        rating=rating,
        store_url=f"{BGA_SITE_URL}/{game_id}",
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
        raw_payload=dict(game),
    )


class BoardGameAtlasMetadataProvider:
    """Board Game Atlas. Requires `BOARD_GAME_ATLAS_CLIENT_ID`."""

    _manifest = ProviderManifest(
        id="boardgameatlas",
        name="Board Game Atlas",
        requires_api_key=True,
        url_template=f"{BGA_SITE_URL}/{{id}}",
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
        request_delay_ms=600,
        max_batch_size=10,
        batch_delay_ms=1000,
        max_games_per_sync=300,
        retry_delay_ms=2000,
        max_consecutive_errors=5,
        max_retries=2,
    )

    def __init__(
        self,
        *,
        client_id: str | None = None,
        session: requests.Session | None = None,
        timeout_seconds: float = 20.0,
    ) -> None:
        self._client_id = (client_id or "").strip() or None
        self._session = session or requests.Session()
        self._timeout_seconds = timeout_seconds
        self._limiter = RateLimiter(self._rate_limit.request_delay_ms)

    def get_manifest(self) -> ProviderManifest:
        return self._manifest

    def get_capabilities(self) -> ProviderCapabilities:
        return self._capabilities

    def get_rate_limit_config(self) -> RateLimitConfig:
        return self._rate_limit

    def _resolve_client_id(self, api_key: str | None) -> str | None:
        client_id = (api_key or "").strip() or self._client_id
        if not client_id:
            logger.warning("Board Game Atlas client id not configured; skipping Board Game Atlas lookups.")
        return client_id

    def _search(self, params: Mapping[str, Any]) -> list[Mapping[str, Any]]:
        resp = send_request(
            self._session,
            "GET",
            f"{BGA_API_BASE_URL}/search",
            provider_id=self._manifest.id,
            limiter=self._limiter,
            params=params,
            timeout_seconds=self._timeout_seconds,
            max_retries=self._rate_limit.max_retries,
            retry_delay_ms=self._rate_limit.retry_delay_ms,
        )
        raise_for_unexpected_status(resp, provider_id=self._manifest.id)
        payload = read_json(resp, provider_id=self._manifest.id)
        games = payload.get("games") if isinstance(payload, Mapping) else None
        if not isinstance(games, list):
            raise PermanentProviderError("Board Game Atlas returned unexpected payload.", provider_id=self._manifest.id)
        return [g for g in games if isinstance(g, Mapping) and g.get("id") and g.get("name")]

    def search_games(self, query: str, limit: int = 10, api_key: str | None = None) -> list[MetadataSearchResult]:
        client_id = self._resolve_client_id(api_key)
        query = (query or "").strip()
        if not client_id or not query:
            return []
        games = self._search({"client_id": client_id, "name": query, "limit": max(1, int(limit)), "fuzzy_match": "true"})
        return [
            MetadataSearchResult(
                external_id=str(game["id"]),
                name=str(game["name"]),
                provider_id=self._manifest.id,
                release_year=_positive_int(game.get("year_published")),
                cover_image_url=game.get("thumb_url") or game.get("image_url") or None,
            )
            for game in games
        ]

    def get_game_metadata(self, external_id: str, api_key: str | None = None) -> GameMetadata | None:
        client_id = self._resolve_client_id(api_key)
        game_id = str(external_id or "").strip()
        if not client_id or not _GAME_ID_RE.match(game_id):
            return None
        games = self._search({"client_id": client_id, "ids": game_id})
        for game in games:
            if str(game.get("id")) == game_id:
                return map_bga_game(game)
        return None

    def get_games_metadata(self, external_ids: Sequence[str], api_key: str | None = None) -> list[GameMetadata]:
        return fetch_games_sequentially(self, external_ids, api_key=api_key).items

    def get_game_url(self, external_id: str) -> str:
        return f"{BGA_SITE_URL}/{external_id}"
