"""Key-value backend: each collection is one JSON document under a namespaced key."""
import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from scribe_store.exceptions import ErrorCode, SerializationError, StorageError
from scribe_store.models.schema import (
    Folder,
    FolderCreate,
    Note,
    NoteCreate,
    generate_id,
)
from scribe_store.storage.base import StorageBackend, merge_note

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class KeyValueStore:
    """A string-to-string mapping, optionally mirrored to one JSON file.

    Without a path everything lives in memory and is gone when the process
    exits. With a path, every write replaces the file atomically.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else None
        self._items: Dict[str, str] = {}
        self._lock = threading.RLock()
        if self.path is not None:
            self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("top-level value is not an object")
        except (json.JSONDecodeError, ValueError, UnicodeDecodeError) as e:
            backup = self.path.with_suffix(self.path.suffix + ".corrupt")
            logger.error(
                f"Key-value file {self.path.name} is unreadable ({e}); "
                f"moved to {backup.name}, starting empty"
            )
            os.replace(self.path, backup)
            return
        self._items = {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _flush(self) -> None:
        if self.path is None:
            return
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(self._items, ensure_ascii=False), encoding="utf-8")
            tmp.replace(self.path)
        except OSError as e:
            raise StorageError(
                "Failed to write key-value file",
                operation="write",
                path=str(self.path),
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self._items[key] = value
            self._flush()

    def remove_item(self, key: str) -> None:
        with self._lock:
            if self._items.pop(key, None) is not None:
                self._flush()

    def keys(self) -> Iterator[str]:
        with self._lock:
            return iter(list(self._items))


def _record_id(raw: Any) -> Optional[int]:
    """The integer id of a raw record, if it has a usable one."""
    if isinstance(raw, dict) and isinstance(raw.get("id"), int):
        return raw["id"]
    return None


class KeyValueBackend(StorageBackend):
    """Notes and folders as JSON arrays in a :class:`KeyValueStore`.

    Every write reads the whole collection, changes it in memory and writes it
    back. Records that fail to parse are skipped on read but kept verbatim on
    write, so one bad record never takes its neighbours down with it.
    """

    name = "keyvalue"

    def __init__(self, store: Optional[KeyValueStore] = None, namespace: str = "scribe"):
        """Initialize the backend.

        Args:
            store: Key-value store to persist into. A fresh in-memory store
                   is used if omitted.
            namespace: Prefix for the collection keys.
        """
        self.store = store if store is not None else KeyValueStore()
        self.notes_key = f"{namespace}-notes"
        self.folders_key = f"{namespace}-folders"

    # ------------------------------------------------------------------
    # Raw collection access
    # ------------------------------------------------------------------

    def _read_raw(self, key: str) -> List[Any]:
        stored = self.store.get_item(key)
        if stored is None:
            return []
        try:
            records = json.loads(stored)
            if not isinstance(records, list):
                raise ValueError("collection is not a JSON array")
        except (json.JSONDecodeError, ValueError) as e:
            # Keep the unreadable document for inspection, then start over
            logger.error(f"Collection '{key}' is unreadable ({e}); kept as '{key}.corrupt'")
            self.store.set_item(f"{key}.corrupt", stored)
            self.store.remove_item(key)
            return []
        return records

    def _write_raw(self, key: str, records: List[Any]) -> None:
        self.store.set_item(key, json.dumps(records, ensure_ascii=False))

    @staticmethod
    def _parse(raw: Any, model: Type[M], key: str) -> M:
        try:
            return model.model_validate(raw)
        except PydanticValidationError as e:
            rid = _record_id(raw)
            raise SerializationError(
                f"Malformed record in '{key}'",
                record=f"{key}#{rid if rid is not None else '?'}",
                original_error=e,
            ) from e

    def _parse_all(self, records: List[Any], model: Type[M], key: str) -> List[M]:
        parsed = []
        skipped = 0
        for raw in records:
            try:
                parsed.append(self._parse(raw, model, key))
            except SerializationError as e:
                logger.warning(f"Skipping record: {e}")
                skipped += 1
        if skipped:
            logger.warning(f"Skipped {skipped} of {len(records)} records in '{key}'")
        return parsed

    @staticmethod
    def _index_of(records: List[Any], record_id: int) -> Optional[int]:
        for i, raw in enumerate(records):
            if _record_id(raw) == record_id:
                return i
        return None

    @staticmethod
    def _next_id(records: List[Any]) -> int:
        ids = [rid for rid in map(_record_id, records) if rid is not None]
        return generate_id(max(ids, default=0))

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    def create(self, data: NoteCreate) -> Note:
        records = self._read_raw(self.notes_key)
        note = data.build(self._next_id(records))
        # Newest first
        records.insert(0, note.model_dump(mode="json"))
        self._write_raw(self.notes_key, records)
        return note

    def get(self, note_id: int) -> Optional[Note]:
        records = self._read_raw(self.notes_key)
        index = self._index_of(records, note_id)
        if index is None:
            return None
        try:
            return self._parse(records[index], Note, self.notes_key)
        except SerializationError as e:
            logger.warning(f"Cannot read note {note_id}: {e}")
            return None

    def get_all(self) -> List[Note]:
        return self._parse_all(self._read_raw(self.notes_key), Note, self.notes_key)

    def update(self, note_id: int, fields: Dict[str, Any]) -> Optional[Note]:
        records = self._read_raw(self.notes_key)
        index = self._index_of(records, note_id)
        if index is None:
            return None
        try:
            existing = self._parse(records[index], Note, self.notes_key)
        except SerializationError as e:
            logger.warning(f"Cannot update unreadable note {note_id}: {e}")
            return None
        updated = merge_note(existing, fields)
        records[index] = updated.model_dump(mode="json")
        self._write_raw(self.notes_key, records)
        return updated

    def delete(self, note_id: int) -> bool:
        records = self._read_raw(self.notes_key)
        remaining = [raw for raw in records if _record_id(raw) != note_id]
        if len(remaining) == len(records):
            return False
        self._write_raw(self.notes_key, remaining)
        return True

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    def create_folder(self, data: FolderCreate) -> Folder:
        records = self._read_raw(self.folders_key)
        folder = data.build(self._next_id(records))
        records.append(folder.model_dump(mode="json"))
        self._write_raw(self.folders_key, records)
        return folder

    def list_folders(self) -> List[Folder]:
        return self._parse_all(self._read_raw(self.folders_key), Folder, self.folders_key)

    def get_folder(self, folder_id: int) -> Optional[Folder]:
        records = self._read_raw(self.folders_key)
        index = self._index_of(records, folder_id)
        if index is None:
            return None
        try:
            return self._parse(records[index], Folder, self.folders_key)
        except SerializationError as e:
            logger.warning(f"Cannot read folder {folder_id}: {e}")
            return None

    def delete_folder(self, folder_id: int) -> bool:
        folders = self._read_raw(self.folders_key)
        remaining = [raw for raw in folders if _record_id(raw) != folder_id]
        if len(remaining) == len(folders):
            return False
        self._write_raw(self.folders_key, remaining)

        notes = self._read_raw(self.notes_key)
        cleared = 0
        for raw in notes:
            if isinstance(raw, dict) and raw.get("folder_id") == folder_id:
                raw["folder_id"] = None
                cleared += 1
        if cleared:
            self._write_raw(self.notes_key, notes)
            logger.info(f"Cleared folder {folder_id} from {cleared} notes")
        return True
