#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys

from gamevault_backend.ingestion.title_metadata_sync import sync_titles_metadata
from gamevault_backend.integrations.metadata.registry import build_default_registry
from gamevault_backend.repositories.game_titles import update_game_title

from scripts._sync_common import (
    add_title_filter_args,
    configure_logging,
    fetch_title_records,
    load_env_and_db,
    load_settings,
)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="sync_title_metadata",
        description="Fill core.game_titles descriptions, covers and player counts from metadata providers.",
    )
    add_title_filter_args(parser)
    parser.add_argument("--concurrency", type=int, default=4, help="Worker threads (default: 4).")
    parser.add_argument("--force", action="store_true", help="Re-fetch titles whose metadata already looks complete.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv or sys.argv[1:])
    configure_logging(args.verbose)
    db = load_env_and_db()

    titles = fetch_title_records(db, args)
    if not titles:
        print("No titles matched the filters.")
        return 0

    settings = load_settings(db)
    registry = build_default_registry(settings)
    summary = sync_titles_metadata(
        titles,
        registry=registry,
        concurrency=args.concurrency,
        force_refresh=args.force,
        min_valid_description_length=settings.min_valid_description_length,
    )
    print(
        "METADATA summary "
        f"attempted={summary.attempted} "
        f"updated={summary.updated} "
        f"not_found={summary.not_found} "
        f"skipped_complete={summary.skipped_complete} "
        f"failed={summary.failed}"
    )
    for failure in summary.failures:
        print(f"FAILED title id={failure.title_id} name={failure.name!r}: {failure.message}")

    if args.dry_run:
        return 0

    for item in summary.patches:
        update_game_title(db, item.title_id, item.patch)
        if args.verbose:
            fields = ",".join(sorted(item.patch))
            print(f"UPDATED title id={item.title_id} name={item.name!r} via={item.provider_name} fields={fields}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
