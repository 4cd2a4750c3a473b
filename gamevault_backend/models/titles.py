from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping
from uuid import UUID


class GameType(str, Enum):
    VIDEO_GAME = "video_game"
    BOARD_GAME = "board_game"
    CARD_GAME = "card_game"
    TABLETOP_RPG = "tabletop_rpg"
    OTHER_PHYSICAL_GAME = "other_physical_game"


# Titles of these types route to the tabletop adapter chain.
TABLETOP_SEARCH_TYPES = frozenset({GameType.BOARD_GAME, GameType.CARD_GAME, GameType.TABLETOP_RPG})

# Titles of these types are incomplete without physical player counts.
PHYSICAL_PLAY_TYPES = TABLETOP_SEARCH_TYPES | {GameType.OTHER_PHYSICAL_GAME}


def parse_game_type(value: Any) -> GameType:
    if isinstance(value, GameType):
        return value
    raw = str(value or "").strip().lower()
    try:
        return GameType(raw)
    except ValueError:
        return GameType.VIDEO_GAME


@dataclass(frozen=True)
class GameTitleRecord:
    """
    Canonical title record (maps to `core.game_titles`).

    The metadata engine only adds or corrects fields on it; it never deletes one.
    """

    id: UUID
    name: str
    type: GameType = GameType.VIDEO_GAME
    owner_id: str | None = None
    description: str | None = None
    cover_image_url: str | None = None
    overall_min_players: int | None = None
    overall_max_players: int | None = None
    supports_online: bool = False
    supports_local: bool = False
    supports_physical: bool = False
    online_min_players: int | None = None
    online_max_players: int | None = None
    local_min_players: int | None = None
    local_max_players: int | None = None
    physical_min_players: int | None = None
    physical_max_players: int | None = None

    @property
    def is_tabletop(self) -> bool:
        return self.type in TABLETOP_SEARCH_TYPES

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "GameTitleRecord":
        def opt_int(key: str) -> int | None:
            value = row.get(key)
            if isinstance(value, bool):
                return None
            if isinstance(value, int):
                return value
            if isinstance(value, str) and value.strip().isdigit():
                return int(value.strip())
            return None

        def opt_str(key: str) -> str | None:
            value = row.get(key)
            return value if isinstance(value, str) else None

        return cls(
            id=UUID(str(row.get("id"))),
            name=str(row.get("name") or ""),
            type=parse_game_type(row.get("type")),
            owner_id=str(row["owner_id"]) if row.get("owner_id") is not None else None,
            description=opt_str("description"),
            cover_image_url=opt_str("cover_image_url"),
            overall_min_players=opt_int("overall_min_players"),
            overall_max_players=opt_int("overall_max_players"),
            supports_online=bool(row.get("supports_online")),
            supports_local=bool(row.get("supports_local")),
            supports_physical=bool(row.get("supports_physical")),
            online_min_players=opt_int("online_min_players"),
            online_max_players=opt_int("online_max_players"),
            local_min_players=opt_int("local_min_players"),
            local_max_players=opt_int("local_max_players"),
            physical_min_players=opt_int("physical_min_players"),
            physical_max_players=opt_int("physical_max_players"),
        )
