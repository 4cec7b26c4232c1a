"""
Tests for memelib.config — configuration loading and dataclasses.
"""

import json

import pytest

from memelib.config import (
    MemeLibConfig,
    SearchConfig,
    StoreConfig,
    ValidationError,
    load_config,
)


def _write(tmp_path, name, data):
    path = str(tmp_path / name)
    with open(path, "w") as f:
        if isinstance(data, str):
            f.write(data)
        else:
            json.dump(data, f)
    return path


class TestLoadConfig:
    def test_defaults_without_path(self):
        cfg = load_config()
        assert cfg.store.db_path == ".memes/memes.db"
        assert cfg.store.files_dir == ".memes/files"
        assert cfg.store.wal_mode is True
        assert cfg.search.default_mode == "Normal"

    def test_load_valid_json(self, tmp_path):
        """Parses all sections from a valid JSON config."""
        path = _write(tmp_path, "config.json", {
            "store": {"db_path": "/srv/memes.db", "files_dir": "/srv/blobs", "wal_mode": False},
            "search": {"default_mode": "OnlyFav"},
        })
        cfg = load_config(path)
        assert cfg.store.db_path == "/srv/memes.db"
        assert cfg.store.files_dir == "/srv/blobs"
        assert cfg.store.wal_mode is False
        assert cfg.search.default_mode == "OnlyFav"

    def test_load_missing_file(self, tmp_path):
        """Returns defaults silently when file is missing."""
        cfg = load_config(str(tmp_path / "nonexistent.json"))
        assert isinstance(cfg, MemeLibConfig)
        assert cfg.search.default_mode == "Normal"

    def test_load_invalid_json(self, tmp_path):
        """Returns defaults silently when file has invalid JSON."""
        cfg = load_config(_write(tmp_path, "bad.json", "not json {{{"))
        assert isinstance(cfg, MemeLibConfig)
        assert cfg.store.db_path == ".memes/memes.db"

    def test_unknown_key_falls_back(self, tmp_path):
        cfg = load_config(_write(tmp_path, "typo.json", {"store": {"dbpath": "x"}}))
        assert cfg.store.db_path == ".memes/memes.db"

    def test_partial_config(self, tmp_path):
        """Missing sections get defaults."""
        cfg = load_config(_write(tmp_path, "partial.json", {"search": {"default_mode": "OnlyTrash"}}))
        assert cfg.search.default_mode == "OnlyTrash"
        assert cfg.store.files_dir == ".memes/files"


class TestValidation:
    def test_defaults_valid(self):
        assert MemeLibConfig().validate() == []

    def test_bad_mode(self):
        errors = SearchConfig(default_mode="Bogus").validate()
        assert len(errors) == 1
        assert "search.default_mode" in errors[0]

    def test_empty_paths(self):
        errors = StoreConfig(db_path="", files_dir="").validate()
        assert len(errors) == 2

    def test_strict_raises(self, tmp_path):
        path = _write(tmp_path, "strict.json", {"search": {"default_mode": "Bogus"}})
        with pytest.raises(ValidationError, match="default_mode"):
            load_config(path, strict=True)

    def test_lenient_keeps_bad_value(self, tmp_path):
        path = _write(tmp_path, "lenient.json", {"search": {"default_mode": "Bogus"}})
        assert load_config(path).search.default_mode == "Bogus"

    def test_validation_error_is_value_error(self):
        assert issubclass(ValidationError, ValueError)
