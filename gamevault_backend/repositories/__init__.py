"""
Repository layer for DB access patterns.
"""

from gamevault_backend.repositories.game_titles import (
    GameTitleRepositoryError,
    fetch_game_title,
    list_game_titles,
    update_game_title,
)

__all__ = [
    "GameTitleRepositoryError",
    "fetch_game_title",
    "list_game_titles",
    "update_game_title",
]
