from __future__ import annotations

import argparse
import logging
from typing import Iterable
from uuid import UUID

from supabase import Client

from gamevault_backend.config import MetadataSettings, load_metadata_settings
from gamevault_backend.db.supabase import create_supabase_admin_client
from gamevault_backend.models.titles import GameTitleRecord, GameType
from gamevault_backend.repositories.game_titles import fetch_game_title, list_game_titles
from gamevault_backend.repositories.settings import make_settings_store
from gamevault_backend.utils.env import load_env


def add_title_filter_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--owner-id", default=None, help="Only titles owned by this user id.")
    parser.add_argument("--title-id", action="append", default=[], help="core.game_titles id (UUID). Repeatable.")
    parser.add_argument(
        "--type",
        dest="game_type",
        choices=[t.value for t in GameType],
        default=None,
        help="Only titles of this game type.",
    )
    parser.add_argument("--limit", type=int, default=None, help="Optional cap on number of titles to process.")
    parser.add_argument("--dry-run", action="store_true", help="Run without writing to Supabase.")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging.")


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def load_env_and_db() -> Client:
    load_env()
    return create_supabase_admin_client()


def load_settings(db: Client) -> MetadataSettings:
    return load_metadata_settings(make_settings_store(db))


def _coerce_uuid_list(values: Iterable[str]) -> list[UUID]:
    out: list[UUID] = []
    for raw in values:
        s = str(raw).strip()
        if not s:
            continue
        try:
            out.append(UUID(s))
        except ValueError:
            continue
    return out


def fetch_title_records(db: Client, args: argparse.Namespace) -> list[GameTitleRecord]:
    title_ids = _coerce_uuid_list(args.title_id or [])
    if title_ids:
        records = [fetch_game_title(db, title_id) for title_id in dict.fromkeys(title_ids)]
        selected = [r for r in records if r is not None]
    else:
        selected = list_game_titles(
            db,
            owner_id=(args.owner_id or "").strip() or None,
            game_type=GameType(args.game_type) if args.game_type else None,
        )

    if args.limit is not None:
        selected = selected[: max(0, int(args.limit))]
    return selected
