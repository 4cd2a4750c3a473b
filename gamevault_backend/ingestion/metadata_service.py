"""
Metadata orchestration: search, fetch, enrich and apply.

Every entry point works against a `ProviderRegistry`, never against a named adapter.
Adapter failures are logged and the next adapter is tried; running out of adapters
is reported as "not found", which is not an error for callers.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Mapping

from supabase import Client

from gamevault_backend.config import MIN_VALID_DESCRIPTION_LENGTH
from gamevault_backend.integrations.metadata.contract import MetadataProvider
from gamevault_backend.integrations.metadata.registry import ProviderRegistry
from gamevault_backend.models.metadata import Capability, GameMetadata, MetadataSearchResult, PlayerInfo
from gamevault_backend.models.titles import GameTitleRecord
from gamevault_backend.repositories.game_titles import update_game_title
from gamevault_backend.utils.html_text import normalize_description

logger = logging.getLogger(__name__)

PRIMARY_SEARCH_LIMIT = 5
ENRICHMENT_SEARCH_LIMIT = 1
OPTIONS_SEARCH_LIMIT = 10
MAX_SEARCH_OPTIONS = 15

_PLAYER_COUNT_FIELDS = (
    "overall_min_players",
    "overall_max_players",
    "online_min_players",
    "online_max_players",
    "local_min_players",
    "local_max_players",
    "physical_min_players",
    "physical_max_players",
)

# (support flag, min field, max field)
_PLAY_MODES = (
    ("supports_online", "online_min_players", "online_max_players"),
    ("supports_local", "local_min_players", "local_max_players"),
    ("supports_physical", "physical_min_players", "physical_max_players"),
)


@dataclass(frozen=True)
class MetadataFetchResult:
    found: bool
    message: str
    metadata: GameMetadata | None = None
    provider_name: str | None = None


def merge_player_counts(existing: PlayerInfo | None, enrichment: PlayerInfo | None) -> PlayerInfo | None:
    """
    Overlay enrichment player counts on `existing`.

    Each numeric field takes the enrichment value when it has one; support flags
    always stay as `existing` reported them.
    """

    if enrichment is None:
        return existing
    if existing is None:
        return enrichment
    overrides = {
        name: getattr(enrichment, name) for name in _PLAYER_COUNT_FIELDS if getattr(enrichment, name) is not None
    }
    return replace(existing, **overrides)


def _needs_player_count_enrichment(metadata: GameMetadata) -> bool:
    info = metadata.player_info
    return info is not None and info.claims_multiplayer and not info.has_mode_counts


def _enrich_player_counts(
    metadata: GameMetadata,
    *,
    registry: ProviderRegistry,
    query: str,
    provider_name: str,
) -> tuple[GameMetadata, str]:
    if not _needs_player_count_enrichment(metadata):
        return metadata, provider_name

    for provider in registry.list_by_capability(Capability.ACCURATE_PLAYER_COUNTS):
        name = provider.get_manifest().name
        try:
            results = provider.search_games(query, ENRICHMENT_SEARCH_LIMIT)
            if not results:
                continue
            extra = provider.get_game_metadata(results[0].external_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning(f"{name} enrichment failed: {exc}")
            continue
        if extra is None or extra.player_info is None:
            continue

        logger.info(f"Enriched {query!r} with player counts from {name}")
        merged = merge_player_counts(metadata.player_info, extra.player_info)
        return replace(metadata, player_info=merged), f"{provider_name} + {name}"

    return metadata, provider_name


def _fetch_first_match(provider: MetadataProvider, query: str) -> GameMetadata | None:
    results = provider.search_games(query, PRIMARY_SEARCH_LIMIT)
    if not results:
        return None
    return provider.get_game_metadata(results[0].external_id)


def fetch_metadata(
    title: GameTitleRecord,
    *,
    registry: ProviderRegistry,
    search_query: str | None = None,
) -> MetadataFetchResult:
    providers = registry.list_by_game_type(title.type)
    if not providers:
        return MetadataFetchResult(found=False, message="No metadata providers available for this game type")

    query = (search_query or "").strip() or title.name

    found: GameMetadata | None = None
    provider_name = ""
    for provider in providers:
        manifest = provider.get_manifest()
        try:
            found = _fetch_first_match(provider, query)
        except Exception as exc:  # noqa: BLE001
            logger.warning(f"Metadata fetch from {manifest.id} failed: {exc}")
            continue
        if found is not None:
            provider_name = manifest.name
            break

    if found is None:
        return MetadataFetchResult(found=False, message="No metadata found from any provider")

    found, provider_name = _enrich_player_counts(found, registry=registry, query=query, provider_name=provider_name)
    return MetadataFetchResult(
        found=True,
        message=f"Found metadata from {provider_name}",
        metadata=found,
        provider_name=provider_name,
    )


def fetch_metadata_from_provider(
    provider_id: str,
    external_id: str,
    *,
    registry: ProviderRegistry,
) -> MetadataFetchResult:
    """Fetch one adapter's record by id (a human picked it), then run the enrichment pass."""

    provider = registry.get_by_id(provider_id)
    if provider is None:
        return MetadataFetchResult(found=False, message=f"Provider '{provider_id}' not found")

    name = provider.get_manifest().name
    try:
        found = provider.get_game_metadata(external_id)
    except Exception as exc:  # noqa: BLE001
        logger.warning(f"Metadata fetch from {provider_id} failed: {exc}")
        return MetadataFetchResult(found=False, message=f"Failed to fetch metadata from {name}")

    if found is None:
        return MetadataFetchResult(found=False, message=f"No metadata found for ID {external_id}")

    found, name = _enrich_player_counts(found, registry=registry, query=found.name, provider_name=name)
    return MetadataFetchResult(
        found=True,
        message=f"Found metadata from {name}",
        metadata=found,
        provider_name=name,
    )


def search_metadata_options(
    title: GameTitleRecord,
    *,
    registry: ProviderRegistry,
    search_query: str | None = None,
) -> list[MetadataSearchResult]:
    query = (search_query or "").strip() or title.name

    collected: list[MetadataSearchResult] = []
    for provider in registry.list_by_game_type(title.type):
        try:
            collected.extend(provider.search_games(query, OPTIONS_SEARCH_LIMIT))
        except Exception as exc:  # noqa: BLE001
            logger.warning(f"Metadata search from {provider.get_manifest().id} failed: {exc}")

    seen: set[str] = set()
    unique: list[MetadataSearchResult] = []
    for result in collected:
        key = result.name.strip().casefold()
        if key in seen:
            continue
        seen.add(key)
        unique.append(result)

    needle = query.strip().casefold()

    def order(result: MetadataSearchResult) -> tuple[int, int, int]:
        name = result.name.strip().casefold()
        return (0 if name == needle else 1, 0 if name.startswith(needle) else 1, len(name))

    unique.sort(key=order)
    return unique[:MAX_SEARCH_OPTIONS]


def _description_is_placeholder(title: GameTitleRecord, min_length: int) -> bool:
    existing = title.description
    return not existing or len(existing) < min_length or existing == title.name


def build_title_patch(
    title: GameTitleRecord,
    metadata: GameMetadata,
    *,
    min_valid_description_length: int = MIN_VALID_DESCRIPTION_LENGTH,
) -> dict[str, Any]:
    """
    Field-level update for `title` from `metadata`.

    Only adds or corrects fields. A mode's player counts are written only when the
    mode is (or is becoming) supported, and turning a mode off clears its counts.
    """

    patch: dict[str, Any] = {}

    description = normalize_description(metadata.short_description or metadata.description)
    if description and _description_is_placeholder(title, min_valid_description_length):
        patch["description"] = description

    if metadata.cover_image_url and not title.cover_image_url:
        patch["cover_image_url"] = metadata.cover_image_url

    info = metadata.player_info
    if info is None:
        return patch

    if info.overall_min_players and info.overall_min_players > 0:
        patch["overall_min_players"] = info.overall_min_players
    if info.overall_max_players and info.overall_max_players > 0:
        patch["overall_max_players"] = info.overall_max_players

    for flag, min_field, max_field in _PLAY_MODES:
        supported = getattr(info, flag)
        if supported is not None:
            patch[flag] = bool(supported)
            if not supported:
                patch[min_field] = None
                patch[max_field] = None

        if patch.get(flag, getattr(title, flag)):
            for field_name in (min_field, max_field):
                value = getattr(info, field_name)
                if value is not None:
                    patch[field_name] = value

    return patch


def apply_metadata_to_title(
    db: Client,
    title_id: Any,
    current_title: GameTitleRecord,
    metadata: GameMetadata,
    *,
    min_valid_description_length: int = MIN_VALID_DESCRIPTION_LENGTH,
) -> dict[str, Any]:
    """Write the patch for `metadata` through the title repository; returns the patch (empty when nothing changed)."""

    patch = build_title_patch(current_title, metadata, min_valid_description_length=min_valid_description_length)
    if patch:
        update_game_title(db, title_id, patch)
        logger.info(f"Updated title {title_id}: {', '.join(sorted(patch))}")
    return patch


_ENRICH_FIELDS = (
    ("description", lambda m: normalize_description(m.description)),
    ("release_date", lambda m: m.release_date),
    ("developer", lambda m: m.developers[0] if m.developers else None),
    ("publisher", lambda m: m.publishers[0] if m.publishers else None),
    ("genres", lambda m: list(m.genres) if m.genres else None),
    ("store_url", lambda m: m.store_url),
    ("cover_image_url", lambda m: m.cover_image_url),
)

_ENRICH_PLAYER_FIELDS = (
    "overall_min_players",
    "overall_max_players",
    "supports_online",
    "supports_local",
    "online_max_players",
    "local_max_players",
)


def enrich_game_with_metadata(game: Mapping[str, Any], metadata: GameMetadata) -> dict[str, Any]:
    """
    Fill unset fields of a discovered library entry from `metadata`.

    Values already present on the entry win. `supports_physical` is never taken
    from metadata: a library entry is a video game unless its source says otherwise.
    """

    enriched = dict(game)
    for key, pick in _ENRICH_FIELDS:
        if enriched.get(key) is None:
            value = pick(metadata)
            if value is not None:
                enriched[key] = value

    if metadata.player_info is not None:
        for key in _ENRICH_PLAYER_FIELDS:
            if enriched.get(key) is None:
                value = getattr(metadata.player_info, key)
                if value is not None:
                    enriched[key] = value

    return enriched
