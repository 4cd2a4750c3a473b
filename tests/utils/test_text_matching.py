from __future__ import annotations

import pytest

from gamevault_backend.utils.text_matching import (
    STANDARD_EDITION,
    extract_edition,
    fuzzy_match,
    fuzzy_search_games,
    levenshtein_distance,
    normalize_game_title,
    similarity_score,
)


@pytest.mark.parametrize(
    ("name", "base", "edition"),
    [
        ("Title - Game of the Year Edition", "Title", "Game of the Year Edition"),
        ("The Witcher 3: Wild Hunt GOTY", "The Witcher 3: Wild Hunt", "Game of the Year Edition"),
        ("Fallout 4: Game of the Year Edition", "Fallout 4", "Game of the Year Edition"),
        ("Skyrim - Special Edition", "Skyrim", "Special Edition"),
        ("Age of Empires II: Definitive Edition", "Age of Empires II", "Definitive Edition"),
        ("Hades", "Hades", STANDARD_EDITION),
    ],
)
def test_extract_edition(name: str, base: str, edition: str) -> None:
    info = extract_edition(name)
    assert info.base_name == base
    assert info.edition == edition


def test_extract_edition_full_phrase_wins_over_abbreviation() -> None:
    info = extract_edition("Borderlands GOTY Edition")
    assert info.base_name == "Borderlands"
    assert info.edition == "Game of the Year Edition"


def test_extract_edition_is_idempotent_on_base_name() -> None:
    first = extract_edition("Mass Effect - Deluxe Edition - Remastered")
    assert first.edition == "Remastered"
    second = extract_edition(first.base_name)
    assert second.base_name == first.base_name
    assert second.edition == STANDARD_EDITION


def test_extract_edition_never_returns_empty_base() -> None:
    info = extract_edition("Gold")
    assert info.base_name == "Gold"
    assert info.edition == STANDARD_EDITION


def test_normalize_game_title() -> None:
    assert normalize_game_title("  Tom Clancy’s  Rainbow Six® Siege ") == "tom clancys rainbow six siege"
    assert normalize_game_title("Ori & the Blind Forest") == "ori and the blind forest"
    assert normalize_game_title("Half-Life: Alyx") == "half life alyx"


def test_levenshtein_distance() -> None:
    assert levenshtein_distance("kitten", "sitting") == 3
    assert levenshtein_distance("", "abc") == 3
    assert levenshtein_distance("same", "same") == 0


def test_similarity_bounds() -> None:
    assert similarity_score("Celeste", "Celeste") == 1.0
    assert similarity_score("", "") == 1.0
    assert similarity_score("abc", "") == 0.0
    assert 0.0 < similarity_score("Celeste", "Celest") < 1.0
    assert similarity_score("Celeste", "Celest") == pytest.approx(1 - 1 / 7)
    assert similarity_score("The Sims™ 4", "the sims 4") == 1.0


def test_fuzzy_match_substring_and_words() -> None:
    assert fuzzy_match("witcher", "The Witcher 3: Wild Hunt")
    assert fuzzy_match("wild witcher", "The Witcher 3: Wild Hunt")
    assert not fuzzy_match("portal", "The Witcher 3: Wild Hunt")


def test_fuzzy_search_games_orders_exact_then_prefix_then_similarity() -> None:
    games = ["Portal Stories: Mel", "Portal 2", "Portal", "Bridge Constructor Portal", "Celeste"]
    assert fuzzy_search_games("portal", games) == [
        "Portal",
        "Portal 2",
        "Portal Stories: Mel",
        "Bridge Constructor Portal",
    ]


def test_fuzzy_search_games_uses_key_and_returns_all_for_blank_query() -> None:
    games = [{"name": "Hades"}, {"name": "Hades II"}]
    assert fuzzy_search_games("", games, key=lambda g: g["name"]) == games
    assert fuzzy_search_games("hades ii", games, key=lambda g: g["name"]) == [{"name": "Hades II"}, {"name": "Hades"}]
