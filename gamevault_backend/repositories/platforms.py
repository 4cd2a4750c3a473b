from __future__ import annotations

import logging
from typing import Any, Iterable

import psycopg2
from supabase import Client

from gamevault_backend.db.connection import resolve_database_url
from gamevault_backend.ingestion.platform_aliases import DEFAULT_PLATFORMS, merge_alias_lists, resolve_platform_name
from gamevault_backend.models.platforms import PlatformRecord, join_aliases, split_aliases

logger = logging.getLogger(__name__)

PLATFORM_COLUMNS = "id,name,owner_id,description,is_default,aliases"


class PlatformRepositoryError(RuntimeError):
    pass


class PlatformRuleError(ValueError):
    """A platform change the catalog does not allow (duplicate name, default platform edits)."""


def _raise_for_supabase_error(response: Any, context: str) -> None:
    if hasattr(response, "error") and response.error:
        raise PlatformRepositoryError(f"Supabase error during {context}: {response.error}")


def _first_row(response: Any) -> dict[str, Any] | None:
    data = response.data or []
    if isinstance(data, list) and data:
        return data[0]
    return None


def list_platforms(db: Client, owner_id: str) -> list[PlatformRecord]:
    response = (
        db.schema("core")
        .table("platforms")
        .select(PLATFORM_COLUMNS)
        .eq("owner_id", owner_id)
        .order("is_default", desc=True)
        .order("name")
        .execute()
    )
    _raise_for_supabase_error(response, "listing platforms")
    return [PlatformRecord.from_row(row) for row in (response.data or [])]


def get_platform(db: Client, platform_id: str, owner_id: str) -> PlatformRecord | None:
    response = (
        db.schema("core")
        .table("platforms")
        .select(PLATFORM_COLUMNS)
        .eq("id", platform_id)
        .eq("owner_id", owner_id)
        .limit(1)
        .execute()
    )
    _raise_for_supabase_error(response, "fetching platform")
    row = _first_row(response)
    return PlatformRecord.from_row(row) if row else None


def get_platform_by_name(db: Client, name: str, owner_id: str) -> PlatformRecord | None:
    response = (
        db.schema("core")
        .table("platforms")
        .select(PLATFORM_COLUMNS)
        .eq("name", name.strip())
        .eq("owner_id", owner_id)
        .limit(1)
        .execute()
    )
    _raise_for_supabase_error(response, "fetching platform by name")
    row = _first_row(response)
    return PlatformRecord.from_row(row) if row else None


def _insert_platform(
    db: Client, owner_id: str, name: str, description: str | None, *, is_default: bool
) -> PlatformRecord:
    payload = {
        "owner_id": owner_id,
        "name": name,
        "description": description,
        "is_default": is_default,
    }
    response = db.schema("core").table("platforms").insert(payload).execute()
    _raise_for_supabase_error(response, "inserting platform")
    row = _first_row(response)
    if row is None:
        raise PlatformRepositoryError("Supabase insert returned no data for platform.")
    return PlatformRecord.from_row(row)


def create_platform(db: Client, owner_id: str, name: str, description: str | None = None) -> PlatformRecord:
    cleaned = name.strip()
    if get_platform_by_name(db, cleaned, owner_id) is not None:
        raise PlatformRuleError(f'Platform "{cleaned}" already exists')
    return _insert_platform(db, owner_id, cleaned, (description or "").strip() or None, is_default=False)


def update_platform(
    db: Client,
    platform_id: str,
    owner_id: str,
    *,
    name: str | None = None,
    description: str | None = None,
) -> PlatformRecord:
    platform = get_platform(db, platform_id, owner_id)
    if platform is None:
        raise PlatformRuleError("Platform not found")
    if platform.is_default:
        raise PlatformRuleError("Cannot edit a default platform")

    new_name = (name or "").strip() or platform.name
    if new_name != platform.name and get_platform_by_name(db, new_name, owner_id) is not None:
        raise PlatformRuleError(f'Platform "{new_name}" already exists')

    patch = {
        "name": new_name,
        "description": description.strip() if description is not None else platform.description,
    }
    response = db.schema("core").table("platforms").update(patch).eq("id", platform_id).execute()
    _raise_for_supabase_error(response, "updating platform")
    row = _first_row(response)
    if row is None:
        raise PlatformRepositoryError("Supabase update returned no data for platform.")
    return PlatformRecord.from_row(row)


def delete_platform(db: Client, platform_id: str, owner_id: str) -> None:
    platform = get_platform(db, platform_id, owner_id)
    if platform is None:
        raise PlatformRuleError("Platform not found")
    if platform.is_default:
        raise PlatformRuleError("Cannot delete a default platform")
    response = db.schema("core").table("platforms").delete().eq("id", platform_id).execute()
    _raise_for_supabase_error(response, "deleting platform")


def set_platform_aliases(db: Client, platform_id: str, owner_id: str, aliases: Iterable[str]) -> PlatformRecord:
    platform = get_platform(db, platform_id, owner_id)
    if platform is None:
        raise PlatformRuleError("Platform not found")

    # The platform's own name is never stored as one of its aliases.
    own = platform.name.casefold()
    kept = list(dict.fromkeys(a.strip() for a in aliases if a and a.strip() and a.strip().casefold() != own))
    response = (
        db.schema("core").table("platforms").update({"aliases": join_aliases(kept)}).eq("id", platform_id).execute()
    )
    _raise_for_supabase_error(response, "updating platform aliases")
    row = _first_row(response)
    if row is None:
        raise PlatformRepositoryError("Supabase update returned no data for platform.")
    return PlatformRecord.from_row(row)


def ensure_default_platforms(db: Client, owner_id: str) -> list[PlatformRecord]:
    """Seed any missing default platforms for `owner_id`; returns the ones created."""

    existing = {p.name for p in list_platforms(db, owner_id)}
    created: list[PlatformRecord] = []
    for name, description in DEFAULT_PLATFORMS:
        if name in existing:
            continue
        created.append(_insert_platform(db, owner_id, name, description, is_default=True))
    if created:
        logger.info(f"Seeded {len(created)} default platforms for owner {owner_id}")
    return created


def get_or_create_platform(db: Client, name: str, owner_id: str) -> PlatformRecord:
    platform = get_platform_by_name(db, name, owner_id)
    if platform is not None:
        return platform
    return _insert_platform(db, owner_id, name.strip(), None, is_default=False)


def resolve_platform_for_owner(db: Client, name: str, owner_id: str) -> str:
    """Canonical platform name for free-text `name`, using the owner's platforms and aliases first."""

    return resolve_platform_name(name, list_platforms(db, owner_id))


def merge_platforms(
    source_id: str,
    target_id: str,
    *,
    owner_id: str,
    database_url: str | None = None,
) -> int:
    """
    Merge platform `source_id` into `target_id` in one transaction.

    The target's alias list gains the source's aliases and the source's name, every
    release on the source is moved to the target, and the source is deleted.
    Returns the number of releases moved. Nothing is changed if any step fails.
    """

    if source_id == target_id:
        raise PlatformRuleError("Cannot merge a platform into itself")

    url = database_url or resolve_database_url()
    try:
        conn = psycopg2.connect(url)
    except psycopg2.Error as exc:
        raise PlatformRepositoryError(f"Failed to connect for platform merge: {exc}") from exc

    try:
        with conn.cursor() as cur:
            cur.execute(
                "SELECT id::text, name, is_default, aliases FROM core.platforms "
                "WHERE id = ANY(%s::uuid[]) AND owner_id = %s FOR UPDATE",
                ([source_id, target_id], owner_id),
            )
            rows = {row[0]: row for row in cur.fetchall()}
            source, target = rows.get(source_id), rows.get(target_id)
            if source is None or target is None:
                raise PlatformRuleError("Platform not found")
            if source[2]:
                raise PlatformRuleError("Cannot merge a default platform")

            merged = merge_alias_lists(
                split_aliases(target[3]),
                split_aliases(source[3]),
                source_name=source[1],
            )
            cur.execute(
                "UPDATE core.platforms SET aliases = %s WHERE id = %s",
                (join_aliases(merged), target_id),
            )
            cur.execute(
                "UPDATE core.game_releases SET platform_id = %s WHERE platform_id = %s",
                (target_id, source_id),
            )
            moved = max(0, cur.rowcount or 0)
            cur.execute("DELETE FROM core.platforms WHERE id = %s", (source_id,))
        conn.commit()
    except PlatformRuleError:
        conn.rollback()
        raise
    except psycopg2.Error as exc:
        conn.rollback()
        raise PlatformRepositoryError(f"Platform merge failed: {exc}") from exc
    finally:
        conn.close()

    logger.info(f"Merged platform {source[1]!r} into {target[1]!r}; moved {moved} releases")
    return moved
