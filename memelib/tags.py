"""
Tag index — tag vocabulary and meme↔tag edges.

Tags are created on first use and never modified. Unlinking a tag from a
meme does not delete the tag, even when it was the last edge: callers opt
in with ``reclaim_orphan=True``, or run ``sweep_orphans()`` as a batch.

Statements run on the caller's connection; committing is the caller's job.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import List, Optional

from memelib.errors import storage_errors
from memelib.types import Tag

logger = logging.getLogger(__name__)


def escape_like(text: str) -> str:
    """Escape LIKE wildcards so *text* matches literally (use with ESCAPE '\\')."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _prefix_pattern(prefix: str) -> str:
    return escape_like(prefix) + "%"


class TagIndex:
    """Tag vocabulary and edge operations over one SQLite connection."""

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    # -- Vocabulary --------------------------------------------------------

    def tag_id(self, namespace: str, value: str) -> Optional[int]:
        """Exact lookup by (namespace, value)."""
        with storage_errors("query tag id"):
            row = self._conn.execute(
                "SELECT id FROM tag WHERE namespace = ? AND value = ?",
                (namespace, value),
            ).fetchone()
        return None if row is None else row[0]

    def get_or_create(self, namespace: str, value: str) -> int:
        """Return the id of tag (namespace, value), inserting it on first use."""
        existing = self.tag_id(namespace, value)
        if existing is not None:
            return existing
        with storage_errors(f"insert tag {namespace}:{value}"):
            cur = self._conn.execute(
                "INSERT INTO tag (namespace, value) VALUES (?, ?)",
                (namespace, value),
            )
        logger.debug("Created tag %s:%s (id=%d)", namespace, value, cur.lastrowid)
        return cur.lastrowid

    def count(self) -> int:
        with storage_errors("count tags"):
            return self._conn.execute("SELECT COUNT(id) FROM tag").fetchone()[0]

    # -- Edges -------------------------------------------------------------

    def link(self, tag_id: int, meme_id: int) -> None:
        """Attach a tag to a meme. Linking an existing pair is a no-op."""
        with storage_errors(f"link tag {tag_id} to meme {meme_id}"):
            self._conn.execute(
                "INSERT OR IGNORE INTO meme_tag (tag_id, meme_id) VALUES (?, ?)",
                (tag_id, meme_id),
            )

    def unlink(self, tag_id: int, meme_id: int, reclaim_orphan: bool = False) -> bool:
        """Detach a tag from a meme.

        With *reclaim_orphan*, the tag row itself is deleted when no meme
        carries it any more. Returns True if the tag row was deleted.
        """
        with storage_errors(f"unlink tag {tag_id} from meme {meme_id}"):
            self._conn.execute(
                "DELETE FROM meme_tag WHERE tag_id = ? AND meme_id = ?",
                (tag_id, meme_id),
            )
            if not reclaim_orphan:
                return False
            remaining = self._conn.execute(
                "SELECT COUNT(*) FROM meme_tag WHERE tag_id = ?", (tag_id,)
            ).fetchone()[0]
            if remaining:
                return False
            self._conn.execute("DELETE FROM tag WHERE id = ?", (tag_id,))
        logger.debug("Reclaimed orphan tag %d", tag_id)
        return True

    def sweep_orphans(self) -> int:
        """Delete every tag that no meme carries. Returns the number removed."""
        with storage_errors("sweep orphan tags"):
            cur = self._conn.execute(
                "DELETE FROM tag WHERE NOT EXISTS "
                "(SELECT 1 FROM meme_tag WHERE meme_tag.tag_id = tag.id)"
            )
        if cur.rowcount:
            logger.info(f"Swept {cur.rowcount} orphan tag(s)")
        return cur.rowcount

    # -- Lookups -----------------------------------------------------------

    def tags_of(self, meme_id: int) -> List[Tag]:
        """All tags attached to a meme, sorted by namespace then value."""
        with storage_errors(f"query tags of meme {meme_id}"):
            rows = self._conn.execute(
                "SELECT tag.id, tag.namespace, tag.value FROM meme_tag "
                "JOIN tag ON meme_tag.tag_id = tag.id "
                "WHERE meme_tag.meme_id = ? "
                "ORDER BY tag.namespace, tag.value",
                (meme_id,),
            ).fetchall()
        return [Tag(namespace=r["namespace"], value=r["value"], id=r["id"]) for r in rows]

    def namespaces_with_prefix(self, prefix: str) -> List[str]:
        with storage_errors("query namespaces"):
            rows = self._conn.execute(
                "SELECT DISTINCT namespace FROM tag "
                "WHERE namespace LIKE ? ESCAPE '\\' ORDER BY namespace",
                (_prefix_pattern(prefix),),
            ).fetchall()
        return [r[0] for r in rows]

    def values_with_prefix(self, namespace: str, prefix: str) -> List[str]:
        with storage_errors(f"query values of namespace {namespace}"):
            rows = self._conn.execute(
                "SELECT DISTINCT value FROM tag "
                "WHERE namespace = ? AND value LIKE ? ESCAPE '\\' ORDER BY value",
                (namespace, _prefix_pattern(prefix)),
            ).fetchall()
        return [r[0] for r in rows]

    def values_fuzzy(self, keyword: str) -> List[Tag]:
        """Tags in any namespace whose value starts with *keyword*."""
        with storage_errors("query tag values"):
            rows = self._conn.execute(
                "SELECT id, namespace, value FROM tag "
                "WHERE value LIKE ? ESCAPE '\\' ORDER BY namespace, value",
                (_prefix_pattern(keyword),),
            ).fetchall()
        return [Tag(namespace=r["namespace"], value=r["value"], id=r["id"]) for r in rows]
