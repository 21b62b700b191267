"""File-tree backend: one body file plus one metadata sidecar per note.

Layout under the root directory::

    notes/<id>.md          note body, stored verbatim
    notes/<id>.meta.json   every other note field
    folders/<id>.json      one folder record

The sidecar is what makes a note exist; a body file without one is ignored.
"""
import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

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

META_SUFFIX = ".meta.json"


def atomic_write_text(path: Path, text: str) -> None:
    """Write ``text`` as UTF-8 to ``path`` through a temp file and rename.

    Line endings are written as given.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_bytes(text.encode("utf-8"))
    tmp.replace(path)


class FileTreeBackend(StorageBackend):
    """Notes and folders as individual files under a root directory.

    Whole-collection reads scan the directory; there is no index to keep in
    sync. Safe only while no other process writes to the same tree.
    """

    name = "file"

    def __init__(self, root: Path):
        """Initialize the backend.

        Args:
            root: Directory that holds the ``notes/`` and ``folders/`` trees.
                  Created on open() if missing.
        """
        self.root = Path(root)
        self.notes_dir = self.root / "notes"
        self.folders_dir = self.root / "folders"
        self.file_lock = threading.RLock()

    def open(self) -> None:
        try:
            self.notes_dir.mkdir(parents=True, exist_ok=True)
            self.folders_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(
                "Cannot create note directories",
                operation="open",
                path=str(self.root),
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e

    # ------------------------------------------------------------------
    # Paths and ids
    # ------------------------------------------------------------------

    def _body_path(self, note_id: int) -> Path:
        return self.notes_dir / f"{note_id}.md"

    def _meta_path(self, note_id: int) -> Path:
        return self.notes_dir / f"{note_id}{META_SUFFIX}"

    def _folder_path(self, folder_id: int) -> Path:
        return self.folders_dir / f"{folder_id}.json"

    def _note_ids(self) -> List[int]:
        ids = []
        if not self.notes_dir.exists():
            return ids
        for path in self.notes_dir.glob(f"*{META_SUFFIX}"):
            stem = path.name[: -len(META_SUFFIX)]
            if stem.isdigit():
                ids.append(int(stem))
            else:
                logger.warning(f"Ignoring stray sidecar {path.name}")
        return sorted(ids)

    def _folder_ids(self) -> List[int]:
        if not self.folders_dir.exists():
            return []
        return sorted(int(p.stem) for p in self.folders_dir.glob("*.json") if p.stem.isdigit())

    # ------------------------------------------------------------------
    # Record (de)serialization
    # ------------------------------------------------------------------

    def _read_meta(self, note_id: int) -> Dict[str, Any]:
        path = self._meta_path(note_id)
        try:
            meta = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
            raise SerializationError(
                f"Cannot read metadata for note {note_id}",
                record=path.name,
                original_error=e,
            ) from e
        if not isinstance(meta, dict):
            raise SerializationError(
                f"Metadata for note {note_id} is not an object", record=path.name
            )
        return meta

    def _load_note(self, note_id: int) -> Note:
        meta = self._read_meta(note_id)
        body_path = self._body_path(note_id)
        try:
            content = body_path.read_bytes().decode("utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise SerializationError(
                f"Cannot read body of note {note_id}",
                record=body_path.name,
                original_error=e,
            ) from e
        if meta.get("id") != note_id:
            raise SerializationError(
                f"Sidecar id {meta.get('id')!r} does not match file name",
                record=self._meta_path(note_id).name,
            )
        try:
            return Note.model_validate({**meta, "content": content})
        except PydanticValidationError as e:
            raise SerializationError(
                f"Invalid metadata for note {note_id}",
                record=self._meta_path(note_id).name,
                original_error=e,
            ) from e

    def _write_note(self, note: Note, operation: str) -> None:
        meta = note.model_dump(mode="json", exclude={"content"})
        try:
            with self.file_lock:
                # Body first: a sidecar never points at a missing body
                atomic_write_text(self._body_path(note.id), note.content)
                atomic_write_text(
                    self._meta_path(note.id),
                    json.dumps(meta, ensure_ascii=False, indent=2),
                )
        except OSError as e:
            raise StorageError(
                f"Failed to write note {note.id}",
                operation=operation,
                path=str(self._meta_path(note.id)),
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e

    def _load_folder(self, folder_id: int) -> Folder:
        path = self._folder_path(folder_id)
        try:
            return Folder.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, PydanticValidationError) as e:
            raise SerializationError(
                f"Cannot read folder {folder_id}", record=path.name, original_error=e
            ) from e

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    def create(self, data: NoteCreate) -> Note:
        with self.file_lock:
            note = data.build(generate_id(max(self._note_ids(), default=0)))
            self._write_note(note, "create")
        return note

    def get(self, note_id: int) -> Optional[Note]:
        if not self._meta_path(note_id).exists():
            return None
        try:
            return self._load_note(note_id)
        except SerializationError as e:
            logger.warning(f"Cannot read note {note_id}: {e}")
            return None

    def get_all(self) -> List[Note]:
        notes = []
        failed: List[int] = []
        for note_id in self._note_ids():
            try:
                notes.append(self._load_note(note_id))
            except SerializationError as e:
                logger.warning(f"Skipping note: {e}")
                failed.append(note_id)
        if failed:
            logger.warning(
                f"Failed to read {len(failed)} notes: "
                f"{failed[:5]}{'...' if len(failed) > 5 else ''}"
            )
        return notes

    def update(self, note_id: int, fields: Dict[str, Any]) -> Optional[Note]:
        with self.file_lock:
            existing = self.get(note_id)
            if existing is None:
                return None
            updated = merge_note(existing, fields)
            self._write_note(updated, "update")
        return updated

    def delete(self, note_id: int) -> bool:
        with self.file_lock:
            meta_path = self._meta_path(note_id)
            if not meta_path.exists():
                return False
            try:
                meta_path.unlink()
                self._body_path(note_id).unlink(missing_ok=True)
            except OSError as e:
                raise StorageError(
                    f"Failed to delete note {note_id}",
                    operation="delete",
                    path=str(meta_path),
                    code=ErrorCode.STORAGE_DELETE_FAILED,
                    original_error=e,
                ) from e
        return True

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    def create_folder(self, data: FolderCreate) -> Folder:
        with self.file_lock:
            folder = data.build(generate_id(max(self._folder_ids(), default=0)))
            path = self._folder_path(folder.id)
            try:
                atomic_write_text(path, folder.model_dump_json(indent=2))
            except OSError as e:
                raise StorageError(
                    f"Failed to write folder {folder.id}",
                    operation="create_folder",
                    path=str(path),
                    code=ErrorCode.STORAGE_WRITE_FAILED,
                    original_error=e,
                ) from e
        return folder

    def list_folders(self) -> List[Folder]:
        folders = []
        for folder_id in self._folder_ids():
            try:
                folders.append(self._load_folder(folder_id))
            except SerializationError as e:
                logger.warning(f"Skipping folder: {e}")
        return folders

    def get_folder(self, folder_id: int) -> Optional[Folder]:
        if not self._folder_path(folder_id).exists():
            return None
        try:
            return self._load_folder(folder_id)
        except SerializationError as e:
            logger.warning(f"Cannot read folder {folder_id}: {e}")
            return None

    def delete_folder(self, folder_id: int) -> bool:
        with self.file_lock:
            path = self._folder_path(folder_id)
            if not path.exists():
                return False
            try:
                path.unlink()
            except OSError as e:
                raise StorageError(
                    f"Failed to delete folder {folder_id}",
                    operation="delete_folder",
                    path=str(path),
                    code=ErrorCode.STORAGE_DELETE_FAILED,
                    original_error=e,
                ) from e

            cleared = 0
            for note_id in self._note_ids():
                try:
                    meta = self._read_meta(note_id)
                except SerializationError:
                    continue
                if meta.get("folder_id") != folder_id:
                    continue
                meta["folder_id"] = None
                meta_path = self._meta_path(note_id)
                try:
                    atomic_write_text(meta_path, json.dumps(meta, ensure_ascii=False, indent=2))
                except OSError as e:
                    raise StorageError(
                        f"Failed to clear folder {folder_id} from note {note_id}",
                        operation="delete_folder",
                        path=str(meta_path),
                        code=ErrorCode.STORAGE_WRITE_FAILED,
                        original_error=e,
                    ) from e
                cleared += 1
        if cleared:
            logger.info(f"Cleared folder {folder_id} from {cleared} notes")
        return True

    def __repr__(self) -> str:
        return f"<FileTreeBackend(root='{self.root}')>"
