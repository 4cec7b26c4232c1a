"""
Shared fixtures: a deterministic clock, a migrated in-memory connection
and a disk-backed MemeLibrary.
"""

from datetime import datetime, timedelta, timezone

import pytest

from memelib.schema import open_database
from memelib.store import MemeLibrary


class FakeClock:
    """Returns strictly increasing ISO timestamps, one second apart."""

    def __init__(self):
        self.base = datetime(2026, 1, 1, tzinfo=timezone.utc)
        self.ticks = 0

    def __call__(self) -> str:
        self.ticks += 1
        return (self.base + timedelta(seconds=self.ticks)).isoformat()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def conn():
    """Migrated in-memory connection."""
    c = open_database(":memory:")
    yield c
    c.close()


@pytest.fixture
def library(tmp_path, clock):
    lib = MemeLibrary(
        db_path=str(tmp_path / "lib" / "memes.db"),
        files_dir=tmp_path / "lib" / "files",
        clock=clock,
    )
    yield lib
    lib.close()


@pytest.fixture
def make_file(tmp_path):
    """Write bytes to a fresh file under tmp_path/src and return its path."""
    counter = {"n": 0}

    def _make(data: bytes, name: str = "") -> str:
        counter["n"] += 1
        src = tmp_path / "src"
        src.mkdir(exist_ok=True)
        path = src / (name or f"file{counter['n']}.png")
        path.write_bytes(data)
        return str(path)

    return _make
