"""
Candidate ranking for sources whose own search is unreliable.

Name match dominates (exact > prefix/expansion > substring), the candidate's
description nudges the score (non-game subjects are penalized, game terms are
boosted) and shorter names win ties. Anything under the floor is dropped even if
it is the only candidate.
"""
from __future__ import annotations

from typing import Callable, Iterable, TypeVar

from gamevault_backend.utils.text_matching import normalize_game_title, similarity_score

T = TypeVar("T")

EXACT_MATCH_SCORE = 100.0
PREFIX_MATCH_SCORE = 60.0
SUBSTRING_MATCH_SCORE = 30.0
FUZZY_MATCH_WEIGHT = 20.0
NON_GAME_PENALTY = 80.0
GAME_TERM_BOOST = 25.0
MIN_CANDIDATE_SCORE = 40.0

# Lower-cased description fragments; first hit applies.
NON_GAME_INDICATORS: tuple[str, ...] = (
    "city in",
    "town in",
    "village in",
    "commune in",
    "municipality in",
    "human settlement",
    "river in",
    "mountain in",
    "film by",
    "film directed",
    "television series",
    "tv series",
    "album by",
    "song by",
    "single by",
    "novel by",
    "book by",
    "painting by",
    "family name",
    "given name",
    "species of",
    "genus of",
    "scholarly article",
    "wikimedia disambiguation page",
    "wikimedia list article",
)

GAME_TERMS: tuple[str, ...] = (
    "board game",
    "card game",
    "tabletop game",
    "dice game",
    "tile-based game",
    "tile game",
    "role-playing game",
    "miniatures game",
    "party game",
    "strategy game",
    "video game",
    "game",
)


def score_candidate(query: str, name: str, description: str | None = None) -> float:
    norm_query = normalize_game_title(query)
    norm_name = normalize_game_title(name)
    if not norm_query or not norm_name:
        return 0.0

    if norm_name == norm_query:
        score = EXACT_MATCH_SCORE
    elif norm_name.startswith(norm_query + " ") or norm_query.startswith(norm_name + " "):
        score = PREFIX_MATCH_SCORE
    elif norm_query in norm_name:
        score = SUBSTRING_MATCH_SCORE
    else:
        score = similarity_score(norm_query, norm_name) * FUZZY_MATCH_WEIGHT

    desc = (description or "").casefold()
    if desc:
        if any(indicator in desc for indicator in NON_GAME_INDICATORS):
            score -= NON_GAME_PENALTY
        elif any(term in desc for term in GAME_TERMS):
            score += GAME_TERM_BOOST
    return score


def rank_candidates(
    query: str,
    candidates: Iterable[T],
    *,
    name: Callable[[T], str],
    description: Callable[[T], str | None] = lambda _item: None,
    min_score: float = MIN_CANDIDATE_SCORE,
) -> list[T]:
    scored: list[tuple[float, int, int, T]] = []
    for position, candidate in enumerate(candidates):
        candidate_name = name(candidate) or ""
        score = score_candidate(query, candidate_name, description(candidate))
        if score < min_score:
            continue
        scored.append((-score, len(candidate_name), position, candidate))
    scored.sort(key=lambda row: row[:3])
    return [row[3] for row in scored]
