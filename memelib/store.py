"""
Meme Library — the operation surface used by the command layer.

Opens (and migrates) the SQLite database, wires the content store, tag
index and record store together, and runs searches. Every public write
is one transaction: committed on success, rolled back on any failure.

Layout on disk:
    <db_path>       SQLite database (tables: see memelib.schema)
    <files_dir>/    blob files named by SHA-256 digest

Single-threaded: no locking beyond SQLite's own. Concurrent writers to
the same meme are last-writer-wins.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Union

from memelib.content import ContentStore, PathLike
from memelib.errors import storage_errors
from memelib.memes import MemeRecords
from memelib.query import compile_search
from memelib.schema import SCHEMA_VERSION, open_database, read_version
from memelib.tags import TagIndex
from memelib.types import Meme, SearchMode, Tag

logger = logging.getLogger(__name__)

TagLike = Union[Tag, str]


def _as_tag(tag: TagLike) -> Tag:
    return tag if isinstance(tag, Tag) else Tag.parse(tag)


class MemeLibrary:
    """
    SQLite-backed meme library with a content-addressed file store.

    Usable as a context manager; ``close()`` releases the connection.
    """

    def __init__(
        self,
        db_path: str = ":memory:",
        files_dir: Optional[PathLike] = None,
        wal_mode: bool = True,
        clock: Optional[Callable[[], str]] = None,
    ):
        """Open the library, creating or upgrading the schema first.

        Args:
            db_path: SQLite database path (or ":memory:").
            files_dir: Blob directory. Defaults to ``files/`` next to a
                disk-backed database; required for ":memory:".
            wal_mode: Enable WAL journal mode for disk-backed databases.
            clock: Returns the timestamp string stored in create_time and
                update_time. Defaults to current UTC ISO-8601.
        """
        if files_dir is None:
            if db_path == ":memory:":
                raise ValueError("files_dir is required for an in-memory database")
            files_dir = Path(db_path).parent / "files"
        self._db_path = db_path
        self.content = ContentStore(files_dir)
        self._conn = open_database(db_path, wal_mode=wal_mode)
        self.tags = TagIndex(self._conn)
        self.memes = MemeRecords(self._conn, clock=clock)
        logger.info(
            f"MemeLibrary initialized: {db_path} "
            f"(schema v{SCHEMA_VERSION}, files={self.content.files_dir})"
        )

    def close(self) -> None:
        """Close the underlying SQLite connection."""
        self._conn.close()

    def __enter__(self) -> MemeLibrary:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        try:
            yield
            with storage_errors("commit"):
                self._conn.commit()
        except BaseException:
            self._conn.rollback()
            raise

    # -- Schema ------------------------------------------------------------

    def table_version(self) -> Optional[int]:
        """Schema version recorded in the database (None if uninitialized)."""
        return read_version(self._conn)

    def sqlite_version(self) -> str:
        with storage_errors("query sqlite version"):
            return self._conn.execute("SELECT sqlite_version()").fetchone()[0]

    # -- Files -------------------------------------------------------------

    def add_file(self, path: PathLike, delete_source: bool = False) -> str:
        """Copy a file into the library; returns its digest."""
        return self.content.add_file(path, delete_after_add=delete_source)

    def blob_path(self, digest: str) -> Path:
        """Real path of a stored file."""
        return self.content.path_for(digest)

    # -- Memes -------------------------------------------------------------

    def create_meme(
        self,
        content: str,
        summary: str,
        extra_data: Optional[str] = None,
        desc: Optional[str] = None,
        thumbnail: Optional[str] = None,
    ) -> int:
        with self._transaction():
            return self.memes.create(
                content, summary, extra_data=extra_data, desc=desc, thumbnail=thumbnail,
            )

    def update_meme(
        self,
        meme_id: int,
        extra_data: Optional[str] = None,
        summary: Optional[str] = None,
        desc: Optional[str] = None,
        thumbnail: Optional[str] = None,
    ) -> bool:
        """Sparse update; None leaves a column unchanged."""
        with self._transaction():
            return self.memes.update(
                meme_id, extra_data=extra_data, summary=summary,
                desc=desc, thumbnail=thumbnail,
            )

    def touch_meme(self, meme_id: int) -> bool:
        with self._transaction():
            return self.memes.touch(meme_id)

    def get_meme(self, meme_id: int) -> Optional[Meme]:
        return self.memes.get(meme_id)

    def set_favorite(self, meme_id: int, value: bool) -> bool:
        with self._transaction():
            return self.memes.set_favorite(meme_id, value)

    def set_trash(self, meme_id: int, value: bool) -> bool:
        with self._transaction():
            return self.memes.set_trash(meme_id, value)

    def count_memes(self) -> int:
        return self.memes.count()

    def add_meme(
        self,
        file: PathLike,
        summary: str,
        desc: Optional[str] = None,
        tags: Iterable[TagLike] = (),
        delete_source: bool = False,
        extra_data: Optional[str] = None,
        thumbnail: Optional[str] = None,
    ) -> int:
        """Store *file*, create its record and attach *tags* in one go.

        The blob is written first; the record and tag edges are one
        transaction. The source file is only deleted once both succeeded.
        """
        tag_list = [_as_tag(t) for t in tags]
        digest = self.content.add_file(file)
        with self._transaction():
            meme_id = self.memes.create(
                digest, summary, extra_data=extra_data, desc=desc, thumbnail=thumbnail,
            )
            for tag in tag_list:
                self.tags.link(self.tags.get_or_create(tag.namespace, tag.value), meme_id)
        if delete_source:
            self.content.remove_source(file, digest)
        logger.info(f"Added meme {meme_id} ({digest}, {len(tag_list)} tag(s))")
        return meme_id

    def edit_meme(
        self,
        meme_id: int,
        summary: Optional[str] = None,
        desc: Optional[str] = None,
        tags: Optional[Iterable[TagLike]] = None,
        extra_data: Optional[str] = None,
        thumbnail: Optional[str] = None,
    ) -> bool:
        """Sparse update, optional tag replacement and touch, atomically.

        Returns False (and changes nothing) if the meme does not exist.
        """
        with self._transaction():
            if self.memes.get(meme_id) is None:
                return False
            self.memes.update(
                meme_id, extra_data=extra_data, summary=summary,
                desc=desc, thumbnail=thumbnail,
            )
            if tags is not None:
                self._replace_tags(meme_id, tags, reclaim_orphans=True)
            self.memes.touch(meme_id)
        return True

    # -- Tags --------------------------------------------------------------

    def get_or_create_tag(self, namespace: str, value: str) -> int:
        with self._transaction():
            return self.tags.get_or_create(namespace, value)

    def tag_id(self, namespace: str, value: str) -> Optional[int]:
        return self.tags.tag_id(namespace, value)

    def link_tag(self, tag_id: int, meme_id: int) -> None:
        with self._transaction():
            self.tags.link(tag_id, meme_id)

    def unlink_tag(self, tag_id: int, meme_id: int, reclaim_orphan: bool = False) -> bool:
        with self._transaction():
            return self.tags.unlink(tag_id, meme_id, reclaim_orphan=reclaim_orphan)

    def set_meme_tags(
        self, meme_id: int, tags: Iterable[TagLike], reclaim_orphans: bool = True,
    ) -> None:
        """Make the meme's tag set exactly *tags*."""
        with self._transaction():
            self._replace_tags(meme_id, tags, reclaim_orphans=reclaim_orphans)

    def _replace_tags(
        self, meme_id: int, tags: Iterable[TagLike], reclaim_orphans: bool,
    ) -> None:
        wanted = {(t.namespace, t.value) for t in map(_as_tag, tags)}
        current = {(t.namespace, t.value): t.id for t in self.tags.tags_of(meme_id)}
        for key, tid in current.items():
            if key not in wanted:
                self.tags.unlink(tid, meme_id, reclaim_orphan=reclaim_orphans)
        for namespace, value in sorted(wanted - set(current)):
            self.tags.link(self.tags.get_or_create(namespace, value), meme_id)

    def tags_of_meme(self, meme_id: int) -> List[Tag]:
        return self.tags.tags_of(meme_id)

    def namespaces_with_prefix(self, prefix: str) -> List[str]:
        return self.tags.namespaces_with_prefix(prefix)

    def values_with_prefix(self, namespace: str, prefix: str) -> List[str]:
        return self.tags.values_with_prefix(namespace, prefix)

    def values_fuzzy(self, keyword: str) -> List[Tag]:
        return self.tags.values_fuzzy(keyword)

    def count_tags(self) -> int:
        return self.tags.count()

    def sweep_orphan_tags(self) -> int:
        with self._transaction():
            return self.tags.sweep_orphans()

    # -- Search ------------------------------------------------------------

    def search(
        self,
        expression: str,
        mode: Union[SearchMode, str] = SearchMode.NORMAL,
        page: int = 0,
    ) -> List[Meme]:
        """One page of memes matching *expression*, most recently updated first.

        Raises:
            QuerySyntaxError: malformed expression.
            StorageError: SQLite failure while running the query.
        """
        if not isinstance(mode, SearchMode):
            mode = SearchMode.parse(mode)
        query = compile_search(expression, mode, page)
        with storage_errors("search"):
            rows = self._conn.execute(query.sql, query.params).fetchall()
        return [Meme.from_row(r) for r in rows]

    # -- Stats -------------------------------------------------------------

    def stats(self) -> Dict[str, Any]:
        """Library metrics."""
        with storage_errors("collect stats"):
            trashed = self._conn.execute(
                "SELECT COUNT(id) FROM meme WHERE trash = 1"
            ).fetchone()[0]
            favorites = self._conn.execute(
                "SELECT COUNT(id) FROM meme WHERE fav = 1 AND trash = 0"
            ).fetchone()[0]
            namespaces = self._conn.execute(
                "SELECT COUNT(DISTINCT namespace) FROM tag"
            ).fetchone()[0]
        return {
            "db_path": self._db_path,
            "files_dir": str(self.content.files_dir),
            "table_version": self.table_version(),
            "sqlite_version": self.sqlite_version(),
            "meme_count": self.count_memes(),
            "favorite_count": favorites,
            "trash_count": trashed,
            "tag_count": self.count_tags(),
            "namespace_count": namespaces,
        }
