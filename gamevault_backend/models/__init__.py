"""
Domain models shared across scripts and services.
"""

from gamevault_backend.models.metadata import (
    Capability,
    GameMetadata,
    MetadataSearchResult,
    PlayerInfo,
    PriceInfo,
    ProviderCapabilities,
    ProviderManifest,
    RateLimitConfig,
)
from gamevault_backend.models.platforms import PlatformRecord
from gamevault_backend.models.titles import GameTitleRecord, GameType

__all__ = [
    "Capability",
    "GameMetadata",
    "GameTitleRecord",
    "GameType",
    "MetadataSearchResult",
    "PlatformRecord",
    "PlayerInfo",
    "PriceInfo",
    "ProviderCapabilities",
    "ProviderManifest",
    "RateLimitConfig",
]
