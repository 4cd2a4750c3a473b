"""
Platform-name resolution.

Free-text platform names coming from connectors, imports and users ("ps5",
"Sony PlayStation 5", "XB1") are collapsed onto one canonical platform name per
owner so that the same console never exists twice in a library.

Resolution order for one owner:
1. the name of one of the owner's platforms (case-insensitive exact match)
2. the alias list stored on one of the owner's platforms
3. the built-in default alias table below
Anything else is returned trimmed and otherwise unchanged.
"""
from __future__ import annotations

from typing import Iterable

from gamevault_backend.models.platforms import PlatformRecord

# Seeded for every new owner, in display order.
DEFAULT_PLATFORMS: tuple[tuple[str, str], ...] = (
    ("PC", "Windows/Mac/Linux"),
    ("PlayStation 5", "Sony PlayStation 5"),
    ("PlayStation 4", "Sony PlayStation 4"),
    ("Xbox Series X|S", "Microsoft Xbox Series X|S"),
    ("Xbox One", "Microsoft Xbox One"),
    ("Nintendo Switch", "Nintendo Switch/Switch Lite/Switch OLED"),
    ("Mobile", "iOS/Android"),
    ("Physical Only", "Board games, card games, etc."),
)

# canonical name -> known spellings (matched case-insensitively after trimming).
DEFAULT_PLATFORM_ALIASES: dict[str, tuple[str, ...]] = {
    "PlayStation 5": ("ps5", "playstation 5", "playstation5", "sony playstation 5", "ps 5"),
    "PlayStation 4": ("ps4", "playstation 4", "playstation4", "sony playstation 4", "ps 4"),
    "PlayStation 3": ("ps3", "playstation 3", "playstation3", "sony playstation 3"),
    "PlayStation 2": ("ps2", "playstation 2", "playstation2", "sony playstation 2"),
    "PlayStation": ("ps1", "psx", "psone", "ps one", "sony playstation"),
    "PlayStation Vita": ("psvita", "ps vita", "vita", "playstation vita"),
    "PlayStation Portable": ("psp", "playstation portable"),
    "Xbox Series X|S": (
        "xbox series x|s",
        "xbox series x",
        "xbox series s",
        "xbox series x/s",
        "xbox series",
        "xsx",
        "xss",
    ),
    "Xbox One": ("xbox one", "xbone", "xb1", "xbox 1"),
    "Xbox 360": ("xbox 360", "x360", "xb360"),
    "Xbox": ("original xbox", "microsoft xbox"),
    "Nintendo Switch": ("switch", "ns", "nintendo switch", "switch lite", "switch oled"),
    "Nintendo 3DS": ("3ds", "new 3ds", "2ds", "new 2ds", "nintendo 3ds", "n3ds"),
    "Nintendo DS": ("nds", "ds", "nintendo ds", "dsi"),
    "Nintendo Wii U": ("wii u", "wiiu", "nintendo wii u"),
    "Nintendo Wii": ("wii", "nintendo wii"),
    "Nintendo GameCube": ("gamecube", "gc", "ngc", "nintendo gamecube"),
    "PC": ("pc", "windows", "win", "mac", "macos", "mac os", "osx", "linux", "steamos", "computer"),
    "Mobile": ("mobile", "ios", "android", "iphone", "ipad"),
    "Physical Only": ("physical", "physical only", "tabletop"),
}


def _build_alias_lookup(table: dict[str, tuple[str, ...]]) -> dict[str, str]:
    lookup: dict[str, str] = {}
    for canonical, aliases in table.items():
        lookup.setdefault(canonical.casefold(), canonical)
        for alias in aliases:
            lookup.setdefault(alias.strip().casefold(), canonical)
    return lookup


_DEFAULT_ALIAS_LOOKUP = _build_alias_lookup(DEFAULT_PLATFORM_ALIASES)


def normalize_platform_name(name: str | None) -> str:
    """Resolve against the built-in alias table only."""

    trimmed = (name or "").strip()
    if not trimmed:
        return ""
    return _DEFAULT_ALIAS_LOOKUP.get(trimmed.casefold(), trimmed)


def resolve_platform_name(name: str | None, platforms: Iterable[PlatformRecord] = ()) -> str:
    trimmed = (name or "").strip()
    if not trimmed:
        return ""
    key = trimmed.casefold()
    owned = list(platforms)

    for platform in owned:
        if platform.name.strip().casefold() == key:
            return platform.name

    for platform in owned:
        if any(alias.casefold() == key for alias in platform.alias_list):
            return platform.name

    return normalize_platform_name(trimmed)


def merge_alias_lists(
    target_aliases: Iterable[str],
    source_aliases: Iterable[str],
    *,
    source_name: str,
) -> list[str]:
    """
    Union of both alias lists plus the source's own name.

    Every prior alias of the source survives, even one equal to the target's own name;
    resolution checks platform names before aliases, so it still maps to the target.

    Order is preserved (target first) and duplicates are dropped case-insensitively.
    """

    merged: list[str] = []
    seen: set[str] = set()
    for alias in [*target_aliases, *source_aliases, source_name]:
        cleaned = (alias or "").strip()
        if not cleaned or cleaned.casefold() in seen:
            continue
        seen.add(cleaned.casefold())
        merged.append(cleaned)
    return merged
