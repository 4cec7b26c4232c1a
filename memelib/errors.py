"""
Error model — the failure kinds raised by the library.

    StorageError      - anything raised by SQLite (constraints, bad SQL, file I/O)
    QuerySyntaxError  - malformed search expression, raised before SQL is built
    AssetIOError      - reading, copying or deleting blob files

All kinds are opaque and non-recoverable at this layer: nothing retries,
the caller decides. The original exception is always chained.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from typing import Iterator


class MemeLibError(Exception):
    """Root of every error raised by memelib."""

    pass


class StorageError(MemeLibError):
    """Failure reported by the relational store."""

    pass


class QuerySyntaxError(StorageError):
    """Search expression could not be compiled."""

    def __init__(self, message: str, term: str = ""):
        super().__init__(message)
        self.term = term


class AssetIOError(MemeLibError):
    """Failure reading or writing a blob file."""

    pass


@contextmanager
def storage_errors(action: str) -> Iterator[None]:
    """Re-raise any sqlite3 error as StorageError, prefixed with *action*."""
    try:
        yield
    except sqlite3.Error as exc:
        raise StorageError(f"{action}: {exc}") from exc


@contextmanager
def asset_errors(action: str) -> Iterator[None]:
    """Re-raise any OSError as AssetIOError, prefixed with *action*."""
    try:
        yield
    except OSError as exc:
        raise AssetIOError(f"{action}: {exc}") from exc
