from __future__ import annotations

import logging
from typing import Any

import requests

from gamevault_backend.config import MetadataSettings
from gamevault_backend.integrations.metadata.boardgameatlas import BoardGameAtlasMetadataProvider
from gamevault_backend.integrations.metadata.boardgamegeek import BoardGameGeekMetadataProvider
from gamevault_backend.integrations.metadata.contract import MetadataProvider
from gamevault_backend.integrations.metadata.igdb import IgdbMetadataProvider
from gamevault_backend.integrations.metadata.rawg import RawgMetadataProvider
from gamevault_backend.integrations.metadata.steam import SteamMetadataProvider
from gamevault_backend.integrations.metadata.wikidata import WikidataMetadataProvider
from gamevault_backend.models.metadata import Capability, ProviderManifest
from gamevault_backend.models.titles import TABLETOP_SEARCH_TYPES, parse_game_type

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """
    Ordered collection of metadata adapters.

    Registration order is fallback order. Adapters are grouped by the kind of title
    they serve (`video` or `tabletop`); capability lookups span both groups.
    """

    def __init__(self) -> None:
        self._providers: dict[str, MetadataProvider] = {}
        self._groups: dict[str, list[str]] = {"video": [], "tabletop": []}

    def register(self, provider: MetadataProvider, *, tabletop: bool = False) -> None:
        provider_id = provider.get_manifest().id
        if provider_id in self._providers:
            raise ValueError(f"Metadata provider already registered: {provider_id}")
        self._providers[provider_id] = provider
        self._groups["tabletop" if tabletop else "video"].append(provider_id)
        logger.debug(f"Registered metadata provider {provider_id} ({'tabletop' if tabletop else 'video'})")

    def get_by_id(self, provider_id: str) -> MetadataProvider | None:
        return self._providers.get(provider_id)

    def has(self, provider_id: str) -> bool:
        return provider_id in self._providers

    def list_all(self) -> list[MetadataProvider]:
        return list(self._providers.values())

    def list_manifests(self) -> list[ProviderManifest]:
        return [p.get_manifest() for p in self._providers.values()]

    def list_by_game_type(self, game_type: Any) -> list[MetadataProvider]:
        group = "tabletop" if parse_game_type(game_type) in TABLETOP_SEARCH_TYPES else "video"
        return [self._providers[pid] for pid in self._groups[group]]

    def list_by_capability(self, capability: Capability) -> list[MetadataProvider]:
        return [p for p in self._providers.values() if p.get_capabilities().supports(capability)]


def build_default_registry(
    settings: MetadataSettings | None = None,
    *,
    session: requests.Session | None = None,
) -> ProviderRegistry:
    """
    Register every built-in adapter with credentials from `settings`.

    Adapters whose credentials are missing are still registered; they log a warning
    and return no results when called.
    """

    settings = settings or MetadataSettings()
    registry = ProviderRegistry()

    registry.register(SteamMetadataProvider(session=session))
    registry.register(RawgMetadataProvider(api_key=settings.rawg_api_key, session=session))
    registry.register(
        IgdbMetadataProvider(
            client_id=settings.twitch_client_id,
            client_secret=settings.twitch_client_secret,
            session=session,
        )
    )

    registry.register(BoardGameGeekMetadataProvider(session=session), tabletop=True)
    registry.register(
        BoardGameAtlasMetadataProvider(client_id=settings.board_game_atlas_client_id, session=session),
        tabletop=True,
    )
    registry.register(WikidataMetadataProvider(session=session), tabletop=True)

    return registry
