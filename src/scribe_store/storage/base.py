"""Storage backend contract shared by every persistence medium."""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from scribe_store.models.schema import (
    Folder,
    FolderCreate,
    Note,
    NoteCreate,
    next_timestamp,
)

logger = logging.getLogger(__name__)

# Fields a partial update may touch. id and created_at are immutable.
UPDATABLE_FIELDS = frozenset(
    {"title", "content", "tags", "pinned", "folder_id", "encrypted"}
)


def merge_note(note: Note, fields: Dict[str, Any]) -> Note:
    """Return a copy of ``note`` with ``fields`` applied and updated_at refreshed."""
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
    data = note.model_dump()
    data.update(fields)
    data["updated_at"] = next_timestamp(note.updated_at)
    return Note.model_validate(data)


class StorageBackend(ABC):
    """Persistence of the raw note and folder record sets.

    Every backend offers the same observable semantics. Backends store
    whatever content they are handed; encryption happens above them.
    Missing ids are reported as ``None``/``False``, never raised.
    """

    name: str = "abstract"

    def open(self) -> None:
        """Prepare the underlying medium. Safe to call more than once."""

    def close(self) -> None:
        """Release resources held by the backend."""

    @abstractmethod
    def create(self, data: NoteCreate) -> Note:
        """Assign id and timestamps, persist, and return the stored note."""

    @abstractmethod
    def get(self, note_id: int) -> Optional[Note]:
        """Get a note by ID, or None."""

    @abstractmethod
    def get_all(self) -> List[Note]:
        """Every readable note, in no particular order.

        A record that cannot be parsed is skipped and logged.
        """

    @abstractmethod
    def update(self, note_id: int, fields: Dict[str, Any]) -> Optional[Note]:
        """Merge ``fields`` into the note and refresh updated_at, or None."""

    @abstractmethod
    def delete(self, note_id: int) -> bool:
        """Hard-delete a note. False if it did not exist."""

    @abstractmethod
    def create_folder(self, data: FolderCreate) -> Folder:
        """Persist a new folder."""

    @abstractmethod
    def list_folders(self) -> List[Folder]:
        """Every readable folder, in no particular order."""

    @abstractmethod
    def get_folder(self, folder_id: int) -> Optional[Folder]:
        """Get a folder by ID, or None."""

    @abstractmethod
    def delete_folder(self, folder_id: int) -> bool:
        """Delete a folder and clear ``folder_id`` on notes that pointed at it.

        Referencing notes keep their ``updated_at``.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"
