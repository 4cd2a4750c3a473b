#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys

from gamevault_backend.db.connection import DatabaseConnectionError
from gamevault_backend.repositories.platforms import (
    PlatformRepositoryError,
    PlatformRuleError,
    merge_platforms,
)
from gamevault_backend.utils.env import load_env

from scripts._sync_common import configure_logging


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="merge_platforms",
        description="Merge one platform into another: move releases, keep the old name as an alias, delete the source.",
    )
    parser.add_argument("--source-id", required=True, help="core.platforms id to merge away.")
    parser.add_argument("--target-id", required=True, help="core.platforms id that survives.")
    parser.add_argument("--owner-id", required=True, help="Owner of both platforms.")
    parser.add_argument("--database-url", default=None, help="Postgres URL (default: resolved from env).")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv or sys.argv[1:])
    configure_logging(args.verbose)
    load_env()

    try:
        moved = merge_platforms(
            args.source_id.strip(),
            args.target_id.strip(),
            owner_id=args.owner_id.strip(),
            database_url=args.database_url,
        )
    except PlatformRuleError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2
    except (PlatformRepositoryError, DatabaseConnectionError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    print(f"MERGE summary source={args.source_id} target={args.target_id} releases_moved={moved}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
