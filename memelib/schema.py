"""
Schema bootstrap and migration.

Tables:
    table_version - singleton row (id = 1) holding the schema version
    meme          - one row per library entry
    tag           - (namespace, value) vocabulary
    meme_tag      - many-to-many edges between meme and tag

``migrate()`` runs once per process, before anything else touches the
connection. A fresh database gets the current layout directly; an older
one gets every upgrade script from its stored version up to
SCHEMA_VERSION, in order. Everything happens in one transaction: if any
statement fails the database is left exactly as it was.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Dict, Iterator, Optional

from memelib.errors import StorageError, storage_errors

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2  # v2: indexes on update_time, meme_tag.meme_id, tag.namespace

# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

_VERSION_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS table_version (
    id           INTEGER PRIMARY KEY CHECK(id = 1),
    version_code INTEGER NOT NULL
)
"""

_CREATE_SQL = """
CREATE TABLE IF NOT EXISTS meme (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    content     TEXT NOT NULL,                  -- sha256 of the blob file
    extra_data  TEXT,
    summary     TEXT NOT NULL DEFAULT '',
    desc        TEXT,
    thumbnail   TEXT,                           -- sha256 of the thumbnail blob
    fav         INTEGER NOT NULL DEFAULT 0,
    trash       INTEGER NOT NULL DEFAULT 0,
    create_time TEXT NOT NULL,
    update_time TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS tag (
    id        INTEGER PRIMARY KEY AUTOINCREMENT,
    namespace TEXT NOT NULL,
    value     TEXT NOT NULL,
    UNIQUE (namespace, value)
);

CREATE TABLE IF NOT EXISTS meme_tag (
    tag_id  INTEGER NOT NULL REFERENCES tag(id),
    meme_id INTEGER NOT NULL REFERENCES meme(id),
    UNIQUE (tag_id, meme_id)
);

CREATE INDEX IF NOT EXISTS idx_meme_update_time ON meme(update_time);
CREATE INDEX IF NOT EXISTS idx_meme_tag_meme ON meme_tag(meme_id);
CREATE INDEX IF NOT EXISTS idx_tag_namespace ON tag(namespace);
"""

# ---------------------------------------------------------------------------
# Upgrade scripts, keyed by the version they upgrade *from*
# ---------------------------------------------------------------------------

# v0 had no thumbnail and no fav/trash flags.
_UPGRADE_0_1 = """
ALTER TABLE meme ADD COLUMN thumbnail TEXT;
ALTER TABLE meme ADD COLUMN fav INTEGER NOT NULL DEFAULT 0;
ALTER TABLE meme ADD COLUMN trash INTEGER NOT NULL DEFAULT 0;
"""

_UPGRADE_1_2 = """
CREATE INDEX IF NOT EXISTS idx_meme_update_time ON meme(update_time);
CREATE INDEX IF NOT EXISTS idx_meme_tag_meme ON meme_tag(meme_id);
CREATE INDEX IF NOT EXISTS idx_tag_namespace ON tag(namespace);
"""

UPGRADES: Dict[int, str] = {
    0: _UPGRADE_0_1,
    1: _UPGRADE_1_2,
}


def _statements(script: str) -> Iterator[str]:
    """Split a script into complete statements.

    executescript() would COMMIT the migration transaction first, so
    scripts are run one statement at a time instead.
    """
    buf = ""
    for line in script.splitlines(keepends=True):
        buf += line
        if sqlite3.complete_statement(buf):
            stmt = buf.strip()
            if stmt:
                yield stmt
            buf = ""
    if buf.strip():
        yield buf.strip()


def _run_script(conn: sqlite3.Connection, script: str) -> None:
    for stmt in _statements(script):
        conn.execute(stmt)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def read_version(conn: sqlite3.Connection) -> Optional[int]:
    """Return the stored schema version, or None for an uninitialized file."""
    with storage_errors("read schema version"):
        exists = conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type='table' AND name='table_version'"
        ).fetchone()
        if exists is None:
            return None
        row = conn.execute(
            "SELECT version_code FROM table_version WHERE id = 1"
        ).fetchone()
    return None if row is None else int(row[0])


def migrate(conn: sqlite3.Connection) -> int:
    """Create or upgrade the schema. Returns the resulting version code.

    Raises:
        StorageError: if any statement fails (the transaction is rolled
            back) or the file was written by a newer schema version.
    """
    if conn.in_transaction:
        raise StorageError("migrate() needs a connection with no open transaction")

    with storage_errors("schema migration"):
        conn.execute("BEGIN IMMEDIATE")
        try:
            conn.execute(_VERSION_TABLE_SQL)
            row = conn.execute(
                "SELECT version_code FROM table_version WHERE id = 1"
            ).fetchone()

            if row is None:
                # New database
                conn.execute(
                    "INSERT INTO table_version (id, version_code) VALUES (1, ?)",
                    (SCHEMA_VERSION,),
                )
                _run_script(conn, _CREATE_SQL)
                logger.info(f"Created database schema version {SCHEMA_VERSION}")
                version = SCHEMA_VERSION
            else:
                version = int(row[0])
                if version > SCHEMA_VERSION:
                    raise StorageError(
                        f"Database schema version {version} is newer than "
                        f"supported version {SCHEMA_VERSION}"
                    )
                for source in range(version, SCHEMA_VERSION):
                    logger.info(f"Upgrade database to version {source + 1}")
                    _run_script(conn, UPGRADES[source])
                    conn.execute(
                        "UPDATE table_version SET version_code = ? WHERE id = 1",
                        (source + 1,),
                    )
                    version = source + 1
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
    return version


def open_database(db_path: str = ":memory:", wal_mode: bool = True) -> sqlite3.Connection:
    """Open (creating if needed) and migrate a library database."""
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    with storage_errors(f"open {db_path}"):
        conn = sqlite3.connect(db_path)
        conn.row_factory = sqlite3.Row
        if wal_mode and db_path != ":memory:":
            conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
    try:
        migrate(conn)
    except BaseException:
        conn.close()
        raise
    return conn
