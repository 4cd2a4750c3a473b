from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Iterable, Protocol, Sequence

from gamevault_backend.integrations.metadata.http import MetadataProviderError
from gamevault_backend.models.metadata import (
    GameMetadata,
    MetadataSearchResult,
    ProviderCapabilities,
    ProviderManifest,
    RateLimitConfig,
)

logger = logging.getLogger(__name__)


class MetadataProvider(Protocol):
    """
    Port implemented by every external metadata source.

    `get_game_metadata` contract:
    - returns a populated `GameMetadata` when the item exists
    - returns None for a permanent miss (malformed id, source says "not found")
    - raises `TransientProviderError` for rate limits and server-side failures
    A missing credential is not an error: search returns [] and fetch returns None.
    """

    def get_manifest(self) -> ProviderManifest: ...

    def get_capabilities(self) -> ProviderCapabilities: ...

    def get_rate_limit_config(self) -> RateLimitConfig: ...

    def search_games(
        self, query: str, limit: int = 10, api_key: str | None = None
    ) -> list[MetadataSearchResult]: ...

    def get_game_metadata(self, external_id: str, api_key: str | None = None) -> GameMetadata | None: ...

    def get_games_metadata(
        self, external_ids: Sequence[str], api_key: str | None = None
    ) -> list[GameMetadata]: ...

    def get_game_url(self, external_id: str) -> str: ...


@dataclass(frozen=True)
class BatchFetchResult:
    items: list[GameMetadata] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    aborted: bool = False


def _chunks(values: Sequence[str], size: int) -> Iterable[Sequence[str]]:
    size = max(1, int(size))
    for start in range(0, len(values), size):
        yield values[start : start + size]


def fetch_games_sequentially(
    provider: MetadataProvider,
    external_ids: Iterable[str],
    *,
    api_key: str | None = None,
) -> BatchFetchResult:
    """
    Fetch several items one at a time using the provider's rate-limit policy.

    Input is capped at `max_games_per_sync`, processed in `max_batch_size` chunks
    with `batch_delay_ms` between chunks. Once `max_consecutive_errors` fetches in
    a row have failed, the rest of the input is abandoned.
    """

    config = provider.get_rate_limit_config()
    provider_id = provider.get_manifest().id

    ids = [str(i).strip() for i in external_ids if str(i).strip()]
    if len(ids) > config.max_games_per_sync:
        logger.info(f"{provider_id}: limiting batch fetch to {config.max_games_per_sync} of {len(ids)} items")
        ids = ids[: config.max_games_per_sync]

    items: list[GameMetadata] = []
    missing: list[str] = []
    failed: list[str] = []
    consecutive_errors = 0

    for batch_index, batch in enumerate(_chunks(ids, config.max_batch_size)):
        if batch_index and config.batch_delay_ms:
            time.sleep(config.batch_delay_ms / 1000.0)

        for external_id in batch:
            try:
                metadata = provider.get_game_metadata(external_id, api_key)
            except MetadataProviderError as exc:
                consecutive_errors += 1
                failed.append(external_id)
                logger.warning(f"{provider_id}: fetch failed for {external_id}: {exc}")
                if consecutive_errors >= config.max_consecutive_errors:
                    logger.warning(
                        f"{provider_id}: {consecutive_errors} consecutive errors, "
                        f"abandoning remaining {len(ids) - len(items) - len(missing) - len(failed)} items"
                    )
                    return BatchFetchResult(items=items, missing=missing, failed=failed, aborted=True)
                continue

            consecutive_errors = 0
            if metadata is None:
                missing.append(external_id)
            else:
                items.append(metadata)

    return BatchFetchResult(items=items, missing=missing, failed=failed)
