"""
memelib — persistence core of a personal meme library.

One SQLite file for records and tags, one directory of content-addressed
blobs. Tag-aware search with view modes and fixed-size pages.
"""

__version__ = "0.2.0"

from memelib.types import Meme, Tag, SearchMode
from memelib.errors import (
    MemeLibError,
    StorageError,
    QuerySyntaxError,
    AssetIOError,
)
from memelib.schema import SCHEMA_VERSION, migrate, open_database
from memelib.content import ContentStore
from memelib.tags import TagIndex
from memelib.memes import MemeRecords
from memelib.query import PAGE_SIZE, compile_search
from memelib.store import MemeLibrary
from memelib.config import MemeLibConfig, load_config

__all__ = [
    "__version__",
    "Meme",
    "Tag",
    "SearchMode",
    "MemeLibError",
    "StorageError",
    "QuerySyntaxError",
    "AssetIOError",
    "SCHEMA_VERSION",
    "migrate",
    "open_database",
    "ContentStore",
    "TagIndex",
    "MemeRecords",
    "PAGE_SIZE",
    "compile_search",
    "MemeLibrary",
    "MemeLibConfig",
    "load_config",
]
