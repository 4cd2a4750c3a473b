from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable, TypeVar

from rapidfuzz.distance import Levenshtein

T = TypeVar("T")

STANDARD_EDITION = "Standard Edition"

_SEP = r"\s*[-–—:]\s*"

# Checked top to bottom: a full phrase must precede its abbreviation.
EDITION_PATTERNS: tuple[tuple[str, str], ...] = (
    (_SEP + r"Game of the Year Edition$", "Game of the Year Edition"),
    (r"\s+GOTY(?:\s+Edition)?$", "Game of the Year Edition"),
    (r"\s+Game of the Year$", "Game of the Year Edition"),
    (_SEP + r"Gold Edition$", "Gold Edition"),
    (r"\s+Gold$", "Gold Edition"),
    (_SEP + r"Complete Edition$", "Complete Edition"),
    (r"\s+Complete$", "Complete Edition"),
    (_SEP + r"Definitive Edition$", "Definitive Edition"),
    (_SEP + r"Ultimate Edition$", "Ultimate Edition"),
    (_SEP + r"Enhanced Edition$", "Enhanced Edition"),
    (_SEP + r"Deluxe Edition$", "Deluxe Edition"),
    (_SEP + r"Premium Edition$", "Premium Edition"),
    (_SEP + r"Collector'?s Edition$", "Collector's Edition"),
    (_SEP + r"Limited Edition$", "Limited Edition"),
    (_SEP + r"Special Edition$", "Special Edition"),
    (_SEP + r"Anniversary Edition$", "Anniversary Edition"),
    (_SEP + r"Director'?s Cut$", "Director's Cut"),
    (_SEP + r"Remastered$", "Remastered"),
    (_SEP + r"HD Remaster$", "HD Remaster"),
    (_SEP + r"Remake$", "Remake"),
    (_SEP + r"Standard Edition$", STANDARD_EDITION),
)

_COMPILED_EDITION_PATTERNS = tuple((re.compile(src, re.IGNORECASE), label) for src, label in EDITION_PATTERNS)

_TRADEMARK_RE = re.compile("[™®©]")
_APOSTROPHE_RE = re.compile("['‘’`´]")
_PUNCT_RE = re.compile(r"[.,:;!?]")
_DASH_RE = re.compile("[-–—]")
_WS_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class EditionInfo:
    base_name: str
    edition: str


def extract_edition(game_name: str) -> EditionInfo:
    """
    Split a trailing edition qualifier off a title.

    The label comes from the outermost qualifier; any qualifiers left underneath it
    are stripped too so the returned base name never carries an edition suffix.
    """

    name = (game_name or "").strip()
    edition: str | None = None
    while True:
        for pattern, label in _COMPILED_EDITION_PATTERNS:
            stripped = pattern.sub("", name, count=1).strip()
            if stripped != name and stripped:
                if edition is None:
                    edition = label
                name = stripped
                break
        else:
            break
    return EditionInfo(base_name=name, edition=edition or STANDARD_EDITION)


def normalize_game_title(title: str) -> str:
    """
    Lower-case a title and drop decoration so "The Sims™ 4" matches "the sims 4".
    """

    value = (title or "").lower()
    value = _TRADEMARK_RE.sub("", value)
    value = _APOSTROPHE_RE.sub("", value)
    value = _PUNCT_RE.sub("", value)
    value = _DASH_RE.sub(" ", value)
    value = value.replace("&", "and")
    return _WS_RE.sub(" ", value).strip()


def levenshtein_distance(a: str, b: str) -> int:
    return Levenshtein.distance(a, b)


def similarity_score(a: str, b: str) -> float:
    """
    Return `1 - distance / max_len` on the normalized forms (1.0 for two empty strings).
    """

    norm_a = normalize_game_title(a)
    norm_b = normalize_game_title(b)
    if not norm_a and not norm_b:
        return 1.0
    return Levenshtein.normalized_similarity(norm_a, norm_b)


def fuzzy_match(search: str, target: str) -> bool:
    norm_search = normalize_game_title(search)
    norm_target = normalize_game_title(target)

    if norm_search in norm_target:
        return True

    target_words = [w for w in norm_target.split(" ") if w]
    search_words = [w for w in norm_search.split(" ") if w]
    return all(any(word in tw or tw in word for tw in target_words) for word in search_words)


def _relevance_key(norm_search: str, name: str) -> tuple[int, float]:
    norm_name = normalize_game_title(name)
    if norm_name == norm_search:
        rank = 0
    elif norm_name.startswith(norm_search):
        rank = 1
    else:
        rank = 2
    return rank, -similarity_score(norm_search, norm_name)


def fuzzy_search_games(
    search: str,
    games: Iterable[T],
    *,
    min_score: float = 0.3,
    key: Callable[[T], str] = lambda item: str(item),
) -> list[T]:
    items = list(games)
    if not (search or "").strip():
        return items

    norm_search = normalize_game_title(search)
    kept = [
        item
        for item in items
        if fuzzy_match(search, key(item)) or similarity_score(search, key(item)) >= min_score
    ]
    kept.sort(key=lambda item: _relevance_key(norm_search, key(item)))
    return kept
