from __future__ import annotations

import logging
import re
import time
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Mapping, Sequence

import requests

from gamevault_backend.integrations.metadata.http import (
    MetadataProviderError,
    PermanentProviderError,
    ProviderConfigurationError,
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
from gamevault_backend.utils.html_text import truncate_text

logger = logging.getLogger(__name__)

IGDB_API_BASE_URL = "https://api.igdb.com/v4"
TWITCH_AUTH_URL = "https://id.twitch.tv/oauth2/token"
IGDB_IMAGE_BASE_URL = "https://images.igdb.com/igdb/image/upload"
SHORT_DESCRIPTION_MAX_LENGTH = 250
TOKEN_EXPIRY_MARGIN_SECONDS = 600
# IGDB's splitscreen flag carries no count.
DEFAULT_SPLITSCREEN_MAX_PLAYERS = 4

ESRB_RATINGS: dict[int, str] = {6: "RP", 7: "EC", 8: "E", 9: "E10+", 10: "T", 11: "M", 12: "AO"}
ESRB_CATEGORY = 1

_GAME_ID_RE = re.compile(r"^[0-9]+$")

_DETAIL_FIELDS = (
    "id,name,slug,url,summary,storyline,first_release_date,"
    "cover.image_id,screenshots.image_id,genres.name,platforms.name,"
    "involved_companies.company.name,involved_companies.developer,involved_companies.publisher,"
    "game_modes.slug,"
    "multiplayer_modes.lancoop,multiplayer_modes.offlinecoopmax,multiplayer_modes.offlinemax,"
    "multiplayer_modes.onlinecoopmax,multiplayer_modes.onlinemax,multiplayer_modes.splitscreen,"
    "age_ratings.category,age_ratings.rating,aggregated_rating,total_rating"
)


def escape_apicalypse_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _image_url(image_id: Any, size: str) -> str | None:
    if isinstance(image_id, str) and image_id.strip():
        return f"{IGDB_IMAGE_BASE_URL}/{size}/{image_id.strip()}.jpg"
    return None


def _iso_date(timestamp: Any) -> str | None:
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).date().isoformat()


def _positive(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value) if value > 0 else None


def _max_or_none(*values: int | None) -> int | None:
    present = [v for v in values if v is not None]
    return max(present) if present else None


def extract_igdb_player_info(data: Mapping[str, Any]) -> PlayerInfo:
    mode_slugs = {
        str(m.get("slug") or "") for m in (data.get("game_modes") or []) if isinstance(m, Mapping)
    }
    single = "single-player" in mode_slugs
    multi = bool(mode_slugs & {"multiplayer", "co-operative", "split-screen"})
    mmo = "massively-multiplayer-online-mmo" in mode_slugs

    online_max: int | None = None
    local_max: int | None = None
    supports_online = False
    supports_local = False

    for mode in data.get("multiplayer_modes") or []:
        if not isinstance(mode, Mapping):
            continue
        online = _max_or_none(_positive(mode.get("onlinemax")), _positive(mode.get("onlinecoopmax")))
        if online is not None:
            supports_online = True
            online_max = _max_or_none(online_max, online)
        offline = _max_or_none(_positive(mode.get("offlinemax")), _positive(mode.get("offlinecoopmax")))
        if offline is not None:
            supports_local = True
            local_max = _max_or_none(local_max, offline)
        if mode.get("splitscreen"):
            supports_local = True
            local_max = _max_or_none(local_max, DEFAULT_SPLITSCREEN_MAX_PLAYERS)
        if mode.get("lancoop"):
            supports_local = True

    overall_max = _max_or_none(online_max, local_max)
    if overall_max is None and single and not multi:
        overall_max = 1
    if overall_max is None and mmo:
        supports_online = True

    overall_min = 1 if (single or overall_max is not None) else None
    return PlayerInfo(
        overall_min_players=overall_min,
        overall_max_players=overall_max,
        supports_online=supports_online,
        supports_local=supports_local,
        online_min_players=1 if online_max is not None else None,
        online_max_players=online_max,
        local_min_players=1 if local_max is not None else None,
        local_max_players=local_max,
    )


def _company_names(data: Mapping[str, Any], role: str) -> list[str]:
    names: list[str] = []
    for involved in data.get("involved_companies") or []:
        if not isinstance(involved, Mapping) or not involved.get(role):
            continue
        company = involved.get("company")
        name = company.get("name") if isinstance(company, Mapping) else None
        if isinstance(name, str) and name.strip():
            names.append(name.strip())
    return list(dict.fromkeys(names))


def _named(items: Any) -> list[str]:
    if not isinstance(items, list):
        return []
    return [str(i["name"]).strip() for i in items if isinstance(i, Mapping) and i.get("name")]


def map_igdb_game(data: Mapping[str, Any]) -> GameMetadata:
    game_id = str(data.get("id") or "").strip()
    description = (data.get("summary") or data.get("storyline") or "").strip()
    cover = data.get("cover") if isinstance(data.get("cover"), Mapping) else {}

    age_rating = None
    for rating in data.get("age_ratings") or []:
        if isinstance(rating, Mapping) and rating.get("category") == ESRB_CATEGORY:
            age_rating = ESRB_RATINGS.get(rating.get("rating"))
            break

    score = data.get("aggregated_rating") or data.get("total_rating")
    screenshots = [
        url
        for url in (
            _image_url(s.get("image_id"), "t_screenshot_big")
            for s in (data.get("screenshots") or [])
            if isinstance(s, Mapping)
        )
        if url
    ]

    return GameMetadata(
        external_id=game_id,
        name=str(data.get("name") or "").strip() or f"IGDB Game {game_id}",
        description=description or None,
        short_description=truncate_text(description, SHORT_DESCRIPTION_MAX_LENGTH) if description else None,
        cover_image_url=_image_url(cover.get("image_id"), "t_cover_big"),
        header_image_url=_image_url(cover.get("image_id"), "t_720p"),
        screenshots=screenshots,
        genres=_named(data.get("genres")),
        developers=_company_names(data, "developer"),
        publishers=_company_names(data, "publisher"),
        release_date=_iso_date(data.get("first_release_date")),
        platforms=_named(data.get("platforms")),
        rating=float(round(score)) if isinstance(score, (int, float)) else None,
        age_rating=age_rating,
        store_url=data.get("url") if isinstance(data.get("url"), str) else None,
        player_info=extract_igdb_player_info(data),
        raw_payload=dict(data),
    )


class IgdbMetadataProvider:
    """
    IGDB (Twitch). Best source for per-mode player counts.

    Needs `TWITCH_CLIENT_ID` and `TWITCH_CLIENT_SECRET`; the app access token is
    cached until shortly before it expires.
    """

    _manifest = ProviderManifest(
        id="igdb",
        name="IGDB",
        requires_api_key=True,
        url_template="https://www.igdb.com/games/{id}",
    )
    _capabilities = ProviderCapabilities(
        has_accurate_player_counts=True,
        has_store_urls=False,
        supports_batch_fetch=True,
        supports_search=True,
        has_descriptions=True,
        has_cover_images=True,
    )
    _rate_limit = RateLimitConfig(
        request_delay_ms=300,
        max_batch_size=50,
        batch_delay_ms=500,
        max_games_per_sync=1000,
        retry_delay_ms=1000,
        max_consecutive_errors=5,
        max_retries=2,
    )

    def __init__(
        self,
        *,
        client_id: str | None = None,
        client_secret: str | None = None,
        session: requests.Session | None = None,
        timeout_seconds: float = 20.0,
    ) -> None:
        self._client_id = (client_id or "").strip() or None
        self._client_secret = (client_secret or "").strip() or None
        self._session = session or requests.Session()
        self._timeout_seconds = timeout_seconds
        self._limiter = RateLimiter(self._rate_limit.request_delay_ms)
        self._auth_limiter = RateLimiter(0)
        self._token_lock = Lock()
        self._token: str | None = None
        self._token_expires_at = 0.0

    def get_manifest(self) -> ProviderManifest:
        return self._manifest

    def get_capabilities(self) -> ProviderCapabilities:
        return self._capabilities

    def get_rate_limit_config(self) -> RateLimitConfig:
        return self._rate_limit

    def _access_token(self) -> str:
        if not self._client_id or not self._client_secret:
            raise ProviderConfigurationError(
                "IGDB requires TWITCH_CLIENT_ID and TWITCH_CLIENT_SECRET.", provider_id=self._manifest.id
            )
        with self._token_lock:
            if self._token and time.time() < self._token_expires_at:
                return self._token

            resp = send_request(
                self._session,
                "POST",
                TWITCH_AUTH_URL,
                provider_id=self._manifest.id,
                limiter=self._auth_limiter,
                params={
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "grant_type": "client_credentials",
                },
                timeout_seconds=self._timeout_seconds,
                max_retries=self._rate_limit.max_retries,
                retry_delay_ms=self._rate_limit.retry_delay_ms,
            )
            raise_for_unexpected_status(resp, provider_id=self._manifest.id)
            payload = read_json(resp, provider_id=self._manifest.id)
            token = payload.get("access_token") if isinstance(payload, Mapping) else None
            if not isinstance(token, str) or not token:
                raise PermanentProviderError("Twitch token response had no access_token.", provider_id=self._manifest.id)
            expires_in = payload.get("expires_in")
            lifetime = float(expires_in) if isinstance(expires_in, (int, float)) else 0.0
            self._token = token
            self._token_expires_at = time.time() + max(0.0, lifetime - TOKEN_EXPIRY_MARGIN_SECONDS)
            return token

    def _query(self, endpoint: str, body: str) -> list[Mapping[str, Any]]:
        token = self._access_token()
        resp = send_request(
            self._session,
            "POST",
            f"{IGDB_API_BASE_URL}/{endpoint}",
            provider_id=self._manifest.id,
            limiter=self._limiter,
            data=body.strip().encode("utf-8"),
            headers={
                "Client-ID": str(self._client_id),
                "Authorization": f"Bearer {token}",
                "Content-Type": "text/plain",
            },
            timeout_seconds=self._timeout_seconds,
            max_retries=self._rate_limit.max_retries,
            retry_delay_ms=self._rate_limit.retry_delay_ms,
        )
        if resp.status_code == 401:
            with self._token_lock:
                self._token = None
        raise_for_unexpected_status(resp, provider_id=self._manifest.id)
        payload = read_json(resp, provider_id=self._manifest.id)
        if not isinstance(payload, list):
            raise PermanentProviderError("IGDB returned unexpected JSON shape (not a list).", provider_id=self._manifest.id)
        return [row for row in payload if isinstance(row, Mapping)]

    def search_games(self, query: str, limit: int = 10, api_key: str | None = None) -> list[MetadataSearchResult]:
        query = (query or "").strip()
        if len(query) < 2:
            return []
        body = (
            f'search "{escape_apicalypse_string(query)}"; '
            "fields id,name,cover.image_id,first_release_date; "
            f"limit {max(1, min(int(limit), 500))};"
        )
        try:
            rows = self._query("games", body)
        except ProviderConfigurationError as exc:
            logger.warning(f"IGDB unavailable: {exc}")
            return []

        results: list[MetadataSearchResult] = []
        for row in rows:
            if row.get("id") is None or not row.get("name"):
                continue
            cover = row.get("cover") if isinstance(row.get("cover"), Mapping) else {}
            release = _iso_date(row.get("first_release_date"))
            results.append(
                MetadataSearchResult(
                    external_id=str(row["id"]),
                    name=str(row["name"]),
                    provider_id=self._manifest.id,
                    release_year=int(release[:4]) if release else None,
                    cover_image_url=_image_url(cover.get("image_id"), "t_cover_big"),
                )
            )
        return results

    def get_game_metadata(self, external_id: str, api_key: str | None = None) -> GameMetadata | None:
        game_id = str(external_id or "").strip()
        if not _GAME_ID_RE.match(game_id):
            return None
        try:
            rows = self._query("games", f"fields {_DETAIL_FIELDS}; where id = {game_id};")
        except ProviderConfigurationError as exc:
            logger.warning(f"IGDB unavailable: {exc}")
            return None
        return map_igdb_game(rows[0]) if rows else None

    def get_games_metadata(self, external_ids: Sequence[str], api_key: str | None = None) -> list[GameMetadata]:
        """
        Fetch many games per request (`where id = (...)`), one request per batch.
        """

        config = self._rate_limit
        ids = [i for i in (str(x).strip() for x in external_ids) if _GAME_ID_RE.match(i)]
        ids = ids[: config.max_games_per_sync]

        results: list[GameMetadata] = []
        consecutive_errors = 0
        for start in range(0, len(ids), config.max_batch_size):
            if start and config.batch_delay_ms:
                time.sleep(config.batch_delay_ms / 1000.0)
            batch = ids[start : start + config.max_batch_size]
            body = f"fields {_DETAIL_FIELDS}; where id = ({','.join(batch)}); limit {len(batch)};"
            try:
                rows = self._query("games", body)
            except ProviderConfigurationError as exc:
                logger.warning(f"IGDB unavailable: {exc}")
                return results
            except MetadataProviderError as exc:
                consecutive_errors += 1
                logger.warning(f"IGDB batch fetch failed ({len(batch)} ids): {exc}")
                if consecutive_errors >= config.max_consecutive_errors:
                    logger.warning(f"IGDB: {consecutive_errors} consecutive errors, stopping batch fetch")
                    break
                continue
            consecutive_errors = 0
            results.extend(map_igdb_game(row) for row in rows if row.get("id") is not None)
        return results

    def get_game_url(self, external_id: str) -> str:
        return f"https://www.igdb.com/games/{external_id}"
