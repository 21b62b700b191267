"""Tests for the key-value backend and its JSON-file store."""
import json

import pytest

from scribe_store.models.schema import FolderCreate, NoteCreate
from scribe_store.storage import KeyValueBackend, KeyValueStore


@pytest.fixture
def kv_path(temp_dir):
    return temp_dir / "kv" / "scribe.json"


@pytest.fixture
def kv_backend(kv_path):
    backend = KeyValueBackend(KeyValueStore(kv_path), namespace="test")
    backend.open()
    return backend


class TestKeyValueStore:
    """Tests for the string mapping underneath the backend."""

    def test_memory_only_store(self):
        store = KeyValueStore()
        store.set_item("a", "1")
        assert store.get_item("a") == "1"
        store.remove_item("a")
        assert store.get_item("a") is None
        assert list(store.keys()) == []

    def test_file_mirror_survives_reload(self, kv_path):
        KeyValueStore(kv_path).set_item("greeting", "hello")
        assert KeyValueStore(kv_path).get_item("greeting") == "hello"
        assert not kv_path.with_suffix(".json.tmp").exists()

    def test_unreadable_file_moved_aside(self, kv_path):
        kv_path.parent.mkdir(parents=True)
        kv_path.write_text("{not json", encoding="utf-8")
        store = KeyValueStore(kv_path)
        assert list(store.keys()) == []
        backup = kv_path.with_suffix(".json.corrupt")
        assert backup.read_text(encoding="utf-8") == "{not json"


class TestKeyValueLayout:
    """Tests for how records are laid out under keys."""

    def test_namespaced_collection_keys(self, kv_backend):
        kv_backend.create(NoteCreate(title="t", content="c"))
        kv_backend.create_folder(FolderCreate(name="f"))
        assert sorted(kv_backend.store.keys()) == ["test-folders", "test-notes"]

    def test_newest_note_stored_first(self, kv_backend):
        first = kv_backend.create(NoteCreate(title="first", content=""))
        second = kv_backend.create(NoteCreate(title="second", content=""))
        raw = json.loads(kv_backend.store.get_item("test-notes"))
        assert [r["id"] for r in raw] == [second.id, first.id]

    def test_ids_increase(self, kv_backend):
        ids = [kv_backend.create(NoteCreate(title=str(i), content="")).id for i in range(5)]
        assert ids == sorted(ids)
        assert len(set(ids)) == 5


class TestKeyValueCorruption:
    """Tests for corrupt records and collections."""

    def test_corrupt_record_skipped_and_preserved(self, kv_backend):
        good = kv_backend.create(NoteCreate(title="good", content="ok"))
        raw = json.loads(kv_backend.store.get_item("test-notes"))
        raw.append({"id": 99, "title": None})
        kv_backend.store.set_item("test-notes", json.dumps(raw))

        assert [n.id for n in kv_backend.get_all()] == [good.id]
        assert kv_backend.get(99) is None
        assert kv_backend.update(99, {"pinned": True}) is None

        # Writing other notes keeps the unreadable record as it was
        kv_backend.create(NoteCreate(title="another", content=""))
        raw = json.loads(kv_backend.store.get_item("test-notes"))
        assert {"id": 99, "title": None} in raw

    def test_unreadable_collection_kept_aside(self, kv_backend):
        kv_backend.store.set_item("test-notes", "[{broken")
        assert kv_backend.get_all() == []
        assert kv_backend.store.get_item("test-notes.corrupt") == "[{broken"
        assert kv_backend.store.get_item("test-notes") is None

        note = kv_backend.create(NoteCreate(title="fresh", content=""))
        assert [n.id for n in kv_backend.get_all()] == [note.id]

    def test_corrupt_note_can_still_be_deleted(self, kv_backend):
        kv_backend.store.set_item("test-notes", json.dumps([{"id": 5, "title": 1}]))
        assert kv_backend.delete(5) is True
        assert json.loads(kv_backend.store.get_item("test-notes")) == []


class TestKeyValueFolders:
    """Tests for folder deletion."""

    def test_delete_folder_clears_notes_without_touching_updated_at(self, kv_backend):
        folder = kv_backend.create_folder(FolderCreate(name="Work"))
        note = kv_backend.create(NoteCreate(title="t", content="c", folder_id=folder.id))

        assert kv_backend.delete_folder(folder.id) is True
        reloaded = kv_backend.get(note.id)
        assert reloaded.folder_id is None
        assert reloaded.updated_at == note.updated_at
        assert kv_backend.delete_folder(folder.id) is False
