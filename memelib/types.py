"""
Meme Data Model

Plain records exchanged between the store and its callers, plus the
search view modes.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


def _now_iso() -> str:
    """Current UTC time as ISO-8601 string (microsecond precision)."""
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Tag
# ---------------------------------------------------------------------------

@dataclass
class Tag:
    """A namespaced tag, e.g. ``artist:alice``."""

    namespace: str
    value: str
    id: Optional[int] = None

    def __str__(self) -> str:
        return f"{self.namespace}:{self.value}"

    @classmethod
    def parse(cls, text: str) -> Tag:
        """Split ``namespace:value`` at the first colon."""
        namespace, sep, value = text.partition(":")
        if not sep or not namespace or not value:
            raise ValueError(f"Invalid tag {text!r}: expected namespace:value")
        return cls(namespace=namespace, value=value)

    def to_dict(self) -> Dict[str, Any]:
        return {"namespace": self.namespace, "value": self.value}


# ---------------------------------------------------------------------------
# Meme
# ---------------------------------------------------------------------------

@dataclass
class Meme:
    """
    One library entry.

    ``content`` and ``thumbnail`` are SHA-256 digests of files in the
    content store. Search results only carry the listing columns, so
    ``thumbnail`` and the timestamps are ``None`` there.
    """

    id: int
    content: str
    summary: str
    extra_data: Optional[str] = None
    desc: Optional[str] = None
    thumbnail: Optional[str] = None
    fav: bool = False
    trash: bool = False
    create_time: Optional[str] = None
    update_time: Optional[str] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Meme:
        """Build from a row holding any superset of the listing columns."""
        keys = set(row.keys())
        return cls(
            id=row["id"],
            content=row["content"],
            summary=row["summary"],
            extra_data=row["extra_data"],
            desc=row["desc"],
            thumbnail=row["thumbnail"] if "thumbnail" in keys else None,
            fav=bool(row["fav"]),
            trash=bool(row["trash"]),
            create_time=row["create_time"] if "create_time" in keys else None,
            update_time=row["update_time"] if "update_time" in keys else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict (JSON-safe)."""
        return asdict(self)


# ---------------------------------------------------------------------------
# Search modes
# ---------------------------------------------------------------------------

_MODE_CLAUSES = {
    "Normal": "trash = 0",
    "OnlyFav": "fav = 1 AND trash = 0",
    "OnlyTrash": "trash = 1",
}


class SearchMode(str, Enum):
    """View filter applied on top of a search expression."""

    NORMAL = "Normal"
    ONLY_FAV = "OnlyFav"
    ONLY_TRASH = "OnlyTrash"

    @property
    def where_clause(self) -> str:
        """Fixed SQL condition for this mode (no user input involved)."""
        return _MODE_CLAUSES[self.value]

    @classmethod
    def parse(cls, name: str) -> SearchMode:
        try:
            return cls(name)
        except ValueError:
            raise ValueError(
                "must be a string OnlyFav, OnlyTrash or Normal"
            ) from None
