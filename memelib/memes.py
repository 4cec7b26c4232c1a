"""
Meme records — CRUD over the ``meme`` table.

Records are never physically deleted here; ``set_trash`` is the soft
delete. Statements run on the caller's connection; committing is the
caller's job.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Callable, List, Optional, Tuple

from memelib.errors import storage_errors
from memelib.types import Meme, _now_iso

logger = logging.getLogger(__name__)

# Columns a sparse update may touch, in a fixed order.
_UPDATABLE = ("extra_data", "summary", "desc", "thumbnail")


class MemeRecords:
    """Primary record store for memes."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        clock: Optional[Callable[[], str]] = None,
    ):
        self._conn = conn
        self._clock = clock or _now_iso

    def create(
        self,
        content: str,
        summary: str,
        extra_data: Optional[str] = None,
        desc: Optional[str] = None,
        thumbnail: Optional[str] = None,
    ) -> int:
        """Insert a new meme and return its id. fav/trash start false."""
        now = self._clock()
        with storage_errors("insert meme"):
            cur = self._conn.execute(
                """INSERT INTO meme
                   (content, extra_data, summary, desc, thumbnail,
                    create_time, update_time)
                   VALUES (?,?,?,?,?,?,?)""",
                (content, extra_data, summary, desc, thumbnail, now, now),
            )
        logger.debug("Inserted meme %d (content=%s)", cur.lastrowid, content)
        return cur.lastrowid

    def update(
        self,
        meme_id: int,
        extra_data: Optional[str] = None,
        summary: Optional[str] = None,
        desc: Optional[str] = None,
        thumbnail: Optional[str] = None,
    ) -> bool:
        """
        Sparse update: every argument that is not None overwrites its
        column, the others are left alone. update_time is not bumped
        (see touch()). Returns True if a row was changed.
        """
        values = dict(
            extra_data=extra_data, summary=summary, desc=desc, thumbnail=thumbnail,
        )
        assignments: List[Tuple[str, str]] = [
            (col, values[col]) for col in _UPDATABLE if values[col] is not None
        ]
        if not assignments:
            return False
        set_clause = ", ".join(f"{col} = ?" for col, _ in assignments)
        with storage_errors(f"update meme {meme_id}"):
            cur = self._conn.execute(
                f"UPDATE meme SET {set_clause} WHERE id = ?",
                [v for _, v in assignments] + [meme_id],
            )
        return cur.rowcount > 0

    def touch(self, meme_id: int) -> bool:
        """Mark a meme as recently used by bumping update_time."""
        with storage_errors(f"touch meme {meme_id}"):
            cur = self._conn.execute(
                "UPDATE meme SET update_time = ? WHERE id = ?",
                (self._clock(), meme_id),
            )
        return cur.rowcount > 0

    def get(self, meme_id: int) -> Optional[Meme]:
        """Read a single meme by id, or None."""
        with storage_errors(f"read meme {meme_id}"):
            row = self._conn.execute(
                "SELECT * FROM meme WHERE id = ?", (meme_id,)
            ).fetchone()
        return None if row is None else Meme.from_row(row)

    def set_favorite(self, meme_id: int, value: bool) -> bool:
        with storage_errors(f"set fav on meme {meme_id}"):
            cur = self._conn.execute(
                "UPDATE meme SET fav = ? WHERE id = ?", (int(value), meme_id)
            )
        return cur.rowcount > 0

    def set_trash(self, meme_id: int, value: bool) -> bool:
        """Soft-delete (value=True) or restore a meme."""
        with storage_errors(f"set trash on meme {meme_id}"):
            cur = self._conn.execute(
                "UPDATE meme SET trash = ? WHERE id = ?", (int(value), meme_id)
            )
        return cur.rowcount > 0

    def count(self) -> int:
        with storage_errors("count memes"):
            return self._conn.execute("SELECT COUNT(id) FROM meme").fetchone()[0]
