"""Common test fixtures for the Scribe note store."""

import tempfile
from pathlib import Path

import pytest

from scribe_store.config import config
from scribe_store.storage import (
    FileTreeBackend,
    KeyValueBackend,
    KeyValueStore,
    RelationalBackend,
)
from scribe_store.store import NoteStore

# Cheap scrypt cost so encryption tests stay fast
TEST_KDF_COST = 4

BACKEND_NAMES = ["keyvalue", "file", "sql"]


@pytest.fixture
def temp_dir():
    """Create a temporary directory for store data."""
    with tempfile.TemporaryDirectory() as data_dir:
        yield Path(data_dir)


@pytest.fixture
def test_config(temp_dir, monkeypatch):
    """Point the global config at temporary paths (auto-restored)."""
    monkeypatch.setattr(config, "base_dir", temp_dir)
    monkeypatch.setattr(config, "data_dir", temp_dir / "notes")
    monkeypatch.setattr(config, "database_path", temp_dir / "db" / "scribe.db")
    monkeypatch.setattr(config, "kv_path", temp_dir / "kv" / "scribe.json")
    monkeypatch.setattr(config, "seed_defaults", False)
    monkeypatch.setattr(config, "kdf_cost", 10)
    # Tests may reassign these; monkeypatch restores the originals
    monkeypatch.setattr(config, "backend", config.backend)
    monkeypatch.setattr(config, "kv_namespace", config.kv_namespace)
    monkeypatch.setattr(config, "log_level", config.log_level)
    yield config


def make_backend(name: str, root: Path):
    """Build a fresh backend of the given kind over ``root``.

    Calling this twice with the same arguments gives two backends over the
    same persisted data.
    """
    if name == "keyvalue":
        return KeyValueBackend(KeyValueStore(root / "kv.json"))
    if name == "file":
        return FileTreeBackend(root / "tree")
    if name == "sql":
        return RelationalBackend(f"sqlite:///{root / 'scribe.db'}")
    raise ValueError(name)


@pytest.fixture(params=BACKEND_NAMES)
def backend_name(request):
    """Name of the backend under test; contract tests run once per backend."""
    return request.param


@pytest.fixture
def backend_factory(backend_name, temp_dir):
    """Factory for backends of the current kind sharing one data location."""
    created = []

    def factory():
        backend = make_backend(backend_name, temp_dir)
        created.append(backend)
        return backend

    yield factory
    for backend in created:
        backend.close()


@pytest.fixture
def backend(backend_factory):
    """An opened backend of the current kind."""
    b = backend_factory()
    b.open()
    return b


@pytest.fixture
def store(backend):
    """An open NoteStore over the current backend, with no key set."""
    note_store = NoteStore(backend, kdf_cost=TEST_KDF_COST)
    note_store.open()
    yield note_store
    note_store.close()


@pytest.fixture
def keyed_store(store):
    """The store with an encryption key set."""
    store.set_encryption_key("correct horse battery staple")
    return store
