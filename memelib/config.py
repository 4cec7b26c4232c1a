"""
memelib Configuration

Configuration dataclasses for the library store and search defaults.
Includes load_config() for reading a JSON config file with silent
fallback to compiled defaults.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ValidationError(ValueError):
    """Raised when config values are out of valid range."""

    pass


_VALID_MODES = ("Normal", "OnlyFav", "OnlyTrash")


@dataclass
class StoreConfig:
    """SQLite database and blob directory locations."""
    db_path: str = ".memes/memes.db"
    files_dir: str = ".memes/files"
    wal_mode: bool = True

    def validate(self) -> List[str]:
        """Return list of validation error messages (empty = valid)."""
        errors: List[str] = []
        if not self.db_path:
            errors.append("store.db_path: must not be empty")
        if not self.files_dir:
            errors.append("store.files_dir: must not be empty")
        return errors


@dataclass
class SearchConfig:
    """Defaults for the search command."""
    default_mode: str = "Normal"

    def validate(self) -> List[str]:
        """Return list of validation error messages (empty = valid)."""
        if self.default_mode not in _VALID_MODES:
            return [
                f"search.default_mode: {self.default_mode!r} not in "
                f"{', '.join(_VALID_MODES)}"
            ]
        return []


@dataclass
class MemeLibConfig:
    """Top-level memelib configuration."""
    store: StoreConfig = field(default_factory=StoreConfig)
    search: SearchConfig = field(default_factory=SearchConfig)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> MemeLibConfig:
        """Build config from a nested dict (e.g. JSON)."""
        kwargs: Dict[str, Any] = {}
        if "store" in d:
            kwargs["store"] = StoreConfig(**d["store"])
        if "search" in d:
            kwargs["search"] = SearchConfig(**d["search"])
        return cls(**kwargs)

    def validate(self) -> List[str]:
        """Validate all config sections. Returns list of error messages."""
        errors: List[str] = []
        errors.extend(self.store.validate())
        errors.extend(self.search.validate())
        return errors


def load_config(
    path: Optional[str] = None, *, strict: bool = False,
) -> MemeLibConfig:
    """Load config from a JSON file. Returns defaults if file missing/invalid.

    Args:
        path: Path to config.json. If None, returns compiled defaults.
        strict: If True, raise ValidationError on invalid config values.

    Returns:
        MemeLibConfig with values from file or defaults.

    Raises:
        ValidationError: If strict=True and config values are invalid.
    """
    if path is None:
        cfg = MemeLibConfig()
    else:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            cfg = MemeLibConfig.from_dict(data)
        except (FileNotFoundError, json.JSONDecodeError, TypeError, KeyError):
            cfg = MemeLibConfig()

    if strict:
        errors = cfg.validate()
        if errors:
            raise ValidationError(
                f"Config validation failed: {'; '.join(errors)}"
            )

    return cfg
