from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class Capability(str, Enum):
    """Capability flags an adapter may declare; dispatch never keys on adapter identity."""

    ACCURATE_PLAYER_COUNTS = "accurate_player_counts"
    STORE_URLS = "store_urls"
    BATCH_FETCH = "batch_fetch"
    SEARCH = "search"
    DESCRIPTIONS = "descriptions"
    COVER_IMAGES = "cover_images"


@dataclass(frozen=True)
class ProviderManifest:
    id: str
    name: str
    requires_api_key: bool = False
    url_template: str | None = None  # e.g. "https://store.steampowered.com/app/{id}"


@dataclass(frozen=True)
class ProviderCapabilities:
    has_accurate_player_counts: bool = False
    has_store_urls: bool = False
    supports_batch_fetch: bool = False
    supports_search: bool = True
    has_descriptions: bool = True
    has_cover_images: bool = True

    @property
    def flags(self) -> frozenset[Capability]:
        pairs = (
            (Capability.ACCURATE_PLAYER_COUNTS, self.has_accurate_player_counts),
            (Capability.STORE_URLS, self.has_store_urls),
            (Capability.BATCH_FETCH, self.supports_batch_fetch),
            (Capability.SEARCH, self.supports_search),
            (Capability.DESCRIPTIONS, self.has_descriptions),
            (Capability.COVER_IMAGES, self.has_cover_images),
        )
        return frozenset(flag for flag, enabled in pairs if enabled)

    def supports(self, capability: Capability) -> bool:
        return capability in self.flags


@dataclass(frozen=True)
class RateLimitConfig:
    """
    Per-adapter request policy. All durations are milliseconds.
    """

    request_delay_ms: int = 1000
    max_batch_size: int = 1
    batch_delay_ms: int = 0
    max_games_per_sync: int = 500
    retry_delay_ms: int = 1000
    max_consecutive_errors: int = 5
    max_retries: int = 2


@dataclass(frozen=True)
class PlayerInfo:
    """
    Player counts overall and per play mode.

    `None` means "unknown"; `False`/`0` are real answers and must not be confused with it.
    """

    overall_min_players: int | None = None
    overall_max_players: int | None = None
    supports_online: bool | None = None
    supports_local: bool | None = None
    supports_physical: bool | None = None
    online_min_players: int | None = None
    online_max_players: int | None = None
    local_min_players: int | None = None
    local_max_players: int | None = None
    physical_min_players: int | None = None
    physical_max_players: int | None = None

    @property
    def claims_multiplayer(self) -> bool:
        return bool(self.supports_online or self.supports_local)

    @property
    def has_mode_counts(self) -> bool:
        return self.online_max_players is not None or self.local_max_players is not None


@dataclass(frozen=True)
class PriceInfo:
    currency: str | None = None
    initial: float | None = None
    final: float | None = None
    discount_percent: int | None = None
    is_free: bool = False


@dataclass(frozen=True)
class GameMetadata:
    external_id: str
    name: str
    description: str | None = None
    short_description: str | None = None
    cover_image_url: str | None = None
    header_image_url: str | None = None
    screenshots: list[str] = field(default_factory=list)
    genres: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    developers: list[str] = field(default_factory=list)
    publishers: list[str] = field(default_factory=list)
    release_date: str | None = None  # ISO date or year string, as reported
    platforms: list[str] = field(default_factory=list)
    rating: float | None = None  # 0-100
    age_rating: str | None = None
    store_url: str | None = None
    player_info: PlayerInfo | None = None
    price_info: PriceInfo | None = None
    raw_payload: Mapping[str, Any] | None = None

    def __post_init__(self) -> None:
        if not str(self.external_id or "").strip():
            raise ValueError("GameMetadata.external_id is required.")
        if not str(self.name or "").strip():
            raise ValueError("GameMetadata.name is required.")


@dataclass(frozen=True)
class MetadataSearchResult:
    external_id: str
    name: str
    provider_id: str
    release_year: int | None = None
    cover_image_url: str | None = None
