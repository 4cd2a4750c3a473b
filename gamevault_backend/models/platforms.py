from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping


def split_aliases(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def join_aliases(aliases: Iterable[str]) -> str | None:
    cleaned = [a.strip() for a in aliases if a and a.strip()]
    return ",".join(cleaned) if cleaned else None


@dataclass(frozen=True)
class PlatformRecord:
    """
    Per-owner platform (maps to `core.platforms`).

    `aliases` is stored as one comma-joined string.
    """

    id: str
    name: str
    owner_id: str | None = None
    description: str | None = None
    is_default: bool = False
    aliases: str | None = None

    @property
    def alias_list(self) -> list[str]:
        return split_aliases(self.aliases)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "PlatformRecord":
        return cls(
            id=str(row.get("id")),
            name=str(row.get("name") or ""),
            owner_id=str(row["owner_id"]) if row.get("owner_id") is not None else None,
            description=row.get("description") if isinstance(row.get("description"), str) else None,
            is_default=bool(row.get("is_default")),
            aliases=row.get("aliases") if isinstance(row.get("aliases"), str) else None,
        )
