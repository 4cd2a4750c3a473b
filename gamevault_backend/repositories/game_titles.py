from __future__ import annotations

from typing import Any, Mapping
from uuid import UUID

from supabase import Client

from gamevault_backend.models.titles import GameTitleRecord, GameType

GAME_TITLE_COLUMNS = (
    "id,name,type,owner_id,description,cover_image_url,"
    "overall_min_players,overall_max_players,"
    "supports_online,supports_local,supports_physical,"
    "online_min_players,online_max_players,"
    "local_min_players,local_max_players,"
    "physical_min_players,physical_max_players"
)


class GameTitleRepositoryError(RuntimeError):
    pass


def _raise_for_supabase_error(response: Any, context: str) -> None:
    if hasattr(response, "error") and response.error:
        raise GameTitleRepositoryError(f"Supabase error during {context}: {response.error}")


def fetch_game_title(db: Client, title_id: UUID | str) -> GameTitleRecord | None:
    response = (
        db.schema("core")
        .table("game_titles")
        .select(GAME_TITLE_COLUMNS)
        .eq("id", str(title_id))
        .limit(1)
        .execute()
    )
    _raise_for_supabase_error(response, "fetching game title")
    data = response.data or []
    if isinstance(data, list) and data:
        return GameTitleRecord.from_row(data[0])
    return None


def list_game_titles(
    db: Client,
    *,
    owner_id: str | None = None,
    game_type: GameType | None = None,
    limit: int | None = None,
) -> list[GameTitleRecord]:
    query = db.schema("core").table("game_titles").select(GAME_TITLE_COLUMNS)
    if owner_id:
        query = query.eq("owner_id", owner_id)
    if game_type is not None:
        query = query.eq("type", game_type.value)
    query = query.order("name")
    if limit is not None:
        query = query.limit(max(0, int(limit)))
    response = query.execute()
    _raise_for_supabase_error(response, "listing game titles")
    data = response.data or []
    if not isinstance(data, list):
        raise GameTitleRepositoryError("Supabase list returned unexpected data for game titles.")
    return [GameTitleRecord.from_row(row) for row in data if isinstance(row, Mapping)]


def update_game_title(db: Client, title_id: UUID | str, patch: Mapping[str, Any]) -> dict[str, Any]:
    response = db.schema("core").table("game_titles").update(dict(patch)).eq("id", str(title_id)).execute()
    _raise_for_supabase_error(response, "updating game title")
    data = response.data or []
    if isinstance(data, list) and data:
        return data[0]
    raise GameTitleRepositoryError("Supabase update returned no data for game title.")
