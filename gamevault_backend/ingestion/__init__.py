"""
Ingestion helpers for enriching and normalizing catalog data.
"""

from gamevault_backend.ingestion.platform_aliases import (
    DEFAULT_PLATFORM_ALIASES,
    DEFAULT_PLATFORMS,
    merge_alias_lists,
    normalize_platform_name,
    resolve_platform_name,
)

__all__ = [
    "DEFAULT_PLATFORMS",
    "DEFAULT_PLATFORM_ALIASES",
    "merge_alias_lists",
    "normalize_platform_name",
    "resolve_platform_name",
]
