"""Tests for configuration and building stores from it."""
from pathlib import Path

import pytest
from pydantic import ValidationError

from scribe_store.config import ScribeConfig
from scribe_store.exceptions import ConfigurationError, ErrorCode
from scribe_store.storage import FileTreeBackend, KeyValueBackend, RelationalBackend
from scribe_store.store import WELCOME_TITLE, build_backend, open_store


class TestScribeConfig:
    """Tests for environment-driven settings."""

    def test_defaults(self, monkeypatch):
        for name in ("SCRIBE_BACKEND", "SCRIBE_KDF_COST", "SCRIBE_SEED_DEFAULTS", "SCRIBE_KV_PATH"):
            monkeypatch.delenv(name, raising=False)
        cfg = ScribeConfig()
        assert cfg.backend == "file"
        assert cfg.kdf_cost == 14
        assert cfg.seed_defaults is False
        assert cfg.kv_path == Path("data/kv/scribe.json")

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("SCRIBE_BACKEND", " SQL ")
        monkeypatch.setenv("SCRIBE_KDF_COST", "12")
        monkeypatch.setenv("SCRIBE_SEED_DEFAULTS", "yes")
        monkeypatch.setenv("SCRIBE_KV_NAMESPACE", "work")
        cfg = ScribeConfig()
        assert cfg.backend == "sql"
        assert cfg.kdf_cost == 12
        assert cfg.seed_defaults is True
        assert cfg.kv_namespace == "work"

    def test_empty_kv_path_means_memory_only(self, monkeypatch):
        monkeypatch.setenv("SCRIBE_KV_PATH", "")
        cfg = ScribeConfig()
        assert cfg.kv_path is None
        assert cfg.get_kv_path() is None

    def test_unknown_backend_rejected(self):
        with pytest.raises(ValidationError):
            ScribeConfig(backend="mongodb")

    def test_log_level_default_and_normalized(self, monkeypatch):
        monkeypatch.delenv("SCRIBE_LOG_LEVEL", raising=False)
        assert ScribeConfig().log_level == "INFO"
        monkeypatch.setenv("SCRIBE_LOG_LEVEL", " debug ")
        assert ScribeConfig().log_level == "DEBUG"
        with pytest.raises(ValidationError):
            ScribeConfig(log_level="chatty")

    def test_kdf_cost_bounds(self):
        with pytest.raises(ValidationError):
            ScribeConfig(kdf_cost=9)
        with pytest.raises(ValidationError):
            ScribeConfig(kdf_cost=21)

    def test_assignment_validated(self):
        cfg = ScribeConfig()
        with pytest.raises(ValidationError):
            cfg.backend = "nope"

    def test_paths_resolved_against_base_dir(self, temp_dir):
        cfg = ScribeConfig(base_dir=temp_dir, database_path=Path("db/x.db"))
        assert cfg.get_absolute_path(Path("notes")) == temp_dir / "notes"
        assert cfg.get_absolute_path(temp_dir) == temp_dir
        assert cfg.get_db_url() == f"sqlite:///{temp_dir / 'db' / 'x.db'}"
        assert (temp_dir / "db").is_dir()


class TestOpenStore:
    """Tests for building stores from configuration."""

    @pytest.mark.parametrize(
        "backend_name, backend_type",
        [
            ("keyvalue", KeyValueBackend),
            ("file", FileTreeBackend),
            ("sql", RelationalBackend),
        ],
    )
    def test_builds_configured_backend(self, test_config, backend_name, backend_type):
        test_config.backend = backend_name
        assert isinstance(build_backend(test_config), backend_type)

        with open_store(test_config) as store:
            note = store.create_note("hello", "world")
        with open_store(test_config) as store:
            assert store.get_note(note.id).content == "world"

    def test_kv_namespace_used(self, test_config):
        test_config.backend = "keyvalue"
        test_config.kv_namespace = "work"
        backend = build_backend(test_config)
        assert backend.notes_key == "work-notes"
        assert backend.folders_key == "work-folders"

    def test_seed_defaults_from_config(self, test_config):
        test_config.seed_defaults = True
        with open_store(test_config) as store:
            assert [n.title for n in store.list_notes()] == [WELCOME_TITLE]

    def test_key_passed_through(self, test_config):
        with open_store(test_config, encryption_key="k") as store:
            assert store.has_encryption_key
            assert store.kdf_cost == test_config.kdf_cost

    def test_unknown_backend(self):
        cfg = ScribeConfig.model_construct(backend="mongodb")
        with pytest.raises(ConfigurationError) as exc_info:
            build_backend(cfg)
        assert exc_info.value.code == ErrorCode.CONFIG_INVALID
        assert exc_info.value.config_key == "backend"

    def test_error_serializes(self):
        error = ConfigurationError("Unknown backend 'x'", config_key="backend")
        assert error.to_dict() == {
            "error": "ConfigurationError",
            "code": ErrorCode.CONFIG_INVALID.value,
            "code_name": "CONFIG_INVALID",
            "message": "Unknown backend 'x'",
            "details": {"config_key": "backend"},
        }
        assert str(error) == "[CONFIG_INVALID] Unknown backend 'x' (config_key=backend)"
