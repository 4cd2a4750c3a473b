"""
Metadata source adapters and the registry that orders them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gamevault_backend.integrations.metadata.contract import MetadataProvider, fetch_games_sequentially
    from gamevault_backend.integrations.metadata.http import (
        MetadataProviderError,
        PermanentProviderError,
        TransientProviderError,
    )
    from gamevault_backend.integrations.metadata.registry import ProviderRegistry, build_default_registry

__all__ = [
    "MetadataProvider",
    "MetadataProviderError",
    "PermanentProviderError",
    "ProviderRegistry",
    "TransientProviderError",
    "build_default_registry",
    "fetch_games_sequentially",
]

_SOURCES = {
    "MetadataProvider": "contract",
    "fetch_games_sequentially": "contract",
    "MetadataProviderError": "http",
    "PermanentProviderError": "http",
    "TransientProviderError": "http",
    "ProviderRegistry": "registry",
    "build_default_registry": "registry",
}


def __getattr__(name: str):
    if name in _SOURCES:
        from importlib import import_module

        module = import_module(f"gamevault_backend.integrations.metadata.{_SOURCES[name]}")
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
