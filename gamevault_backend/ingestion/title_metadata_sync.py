from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Iterable
from uuid import UUID

from gamevault_backend.config import MIN_VALID_DESCRIPTION_LENGTH
from gamevault_backend.ingestion.metadata_service import build_title_patch, fetch_metadata
from gamevault_backend.integrations.metadata.registry import ProviderRegistry
from gamevault_backend.models.titles import PHYSICAL_PLAY_TYPES, GameTitleRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TitleMetadataPatch:
    title_id: UUID
    name: str
    provider_name: str
    patch: dict[str, Any]


@dataclass(frozen=True)
class MetadataSyncFailure:
    title_id: UUID
    name: str
    message: str


@dataclass(frozen=True)
class MetadataSyncSummary:
    attempted: int
    updated: int
    not_found: int
    skipped_complete: int
    failed: int
    patches: list[TitleMetadataPatch] = field(default_factory=list)
    failures: list[MetadataSyncFailure] = field(default_factory=list)


def is_title_metadata_complete(
    title: GameTitleRecord, *, min_valid_description_length: int = MIN_VALID_DESCRIPTION_LENGTH
) -> bool:
    description = title.description or ""
    if len(description) < min_valid_description_length or description == title.name:
        return False
    if not title.cover_image_url:
        return False
    if title.overall_max_players is None:
        return False
    if title.type in PHYSICAL_PLAY_TYPES:
        return title.physical_max_players is not None
    return True


def sync_titles_metadata(
    titles: Iterable[GameTitleRecord],
    *,
    registry: ProviderRegistry,
    concurrency: int = 4,
    max_titles: int | None = None,
    force_refresh: bool = False,
    min_valid_description_length: int = MIN_VALID_DESCRIPTION_LENGTH,
) -> MetadataSyncSummary:
    """
    Build per-title metadata patches.

    Network calls are performed here, but DB writes are performed by the caller.
    Workers share the registry's adapters; each adapter's rate limiter keeps
    concurrent requests to one source spaced out.
    """

    concurrency = max(1, int(concurrency or 1))
    rows = list(titles)
    if max_titles is not None:
        rows = rows[: max(0, int(max_titles))]

    skipped_complete = 0
    if not force_refresh:
        remaining: list[GameTitleRecord] = []
        for title in rows:
            if is_title_metadata_complete(title, min_valid_description_length=min_valid_description_length):
                skipped_complete += 1
                continue
            remaining.append(title)
        rows = remaining

    def run_one(title: GameTitleRecord) -> tuple[dict[str, Any] | None, str | None]:
        result = fetch_metadata(title, registry=registry)
        logger.info(f"{title.name}: {result.message}")
        if not result.found or result.metadata is None:
            return None, None
        patch = build_title_patch(
            title, result.metadata, min_valid_description_length=min_valid_description_length
        )
        return patch, result.provider_name

    attempted = 0
    updated = 0
    not_found = 0
    failed = 0
    patches: list[TitleMetadataPatch] = []
    failures: list[MetadataSyncFailure] = []

    with ThreadPoolExecutor(max_workers=concurrency) as pool:
        futures = {pool.submit(run_one, title): title for title in rows}
        for fut in as_completed(futures):
            title = futures[fut]
            attempted += 1
            try:
                patch, provider_name = fut.result()
            except Exception as exc:  # noqa: BLE001
                failed += 1
                failures.append(MetadataSyncFailure(title_id=title.id, name=title.name, message=str(exc)))
                logger.warning(f"{title.name}: metadata sync failed: {exc}")
                continue

            if patch is None:
                not_found += 1
                continue
            if not patch:
                continue

            updated += 1
            patches.append(
                TitleMetadataPatch(title_id=title.id, name=title.name, provider_name=provider_name or "", patch=patch)
            )

    return MetadataSyncSummary(
        attempted=attempted,
        updated=updated,
        not_found=not_found,
        skipped_complete=skipped_complete,
        failed=failed,
        patches=patches,
        failures=failures,
    )
