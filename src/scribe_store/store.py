"""The note store facade: one backend, the codec and the query engine."""
import logging
import threading
from typing import Any, Dict, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from scribe_store.codec import (
    DECRYPTION_FAILED_PLACEHOLDER,
    DEFAULT_COST,
    decrypt_text,
    encrypt_text,
)
from scribe_store.config import ScribeConfig, config as default_config
from scribe_store.exceptions import (
    CodecError,
    ConfigurationError,
    ErrorCode,
    StoreClosedError,
    ValidationError,
)
from scribe_store.models.schema import (
    Folder,
    FolderCreate,
    Note,
    NoteCreate,
    NoteFilter,
    NoteUpdate,
    StoreStats,
    TagSummary,
)
from scribe_store.observability import traced
from scribe_store.query import (
    compute_stats,
    derive_folder_listing,
    derive_tags,
    filter_notes,
)
from scribe_store.storage import (
    FileTreeBackend,
    KeyValueBackend,
    KeyValueStore,
    RelationalBackend,
    StorageBackend,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

WELCOME_TITLE = "Welcome to Scribe"
WELCOME_CONTENT = (
    "Start writing your first note here...\n\n"
    "This is your personal, offline note-taking space. "
    "All your data is stored locally on your computer."
)
DEFAULT_FOLDER_NAME = "General"
DEFAULT_FOLDER_COLOR = "#3b82f6"


def _validated(model: Type[M], **data: Any) -> M:
    """Build ``model`` from ``data``, reporting failures as ValidationError."""
    try:
        return model(**data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ValidationError(
            f"Invalid {model.__name__}: {first.get('msg', 'validation failed')}",
            field=field,
            value=first.get("input"),
        ) from e


class NoteStore:
    """The single surface the application talks to.

    Writes go facade -> codec -> backend; reads come back backend -> codec ->
    query engine. The encryption key is held in memory for the session only
    and is dropped on close(). Operations are serialized by a lock.
    """

    def __init__(
        self,
        backend: StorageBackend,
        encryption_key: Optional[str] = None,
        kdf_cost: int = DEFAULT_COST,
        seed_defaults: bool = False,
    ):
        """Initialize the store.

        Args:
            backend: Storage backend to persist into.
            encryption_key: Passphrase for encrypted notes, if known up front.
            kdf_cost: scrypt cost (log2 N) used for newly encrypted content.
            seed_defaults: Create the default folder and welcome note when
                           open() finds an empty store.
        """
        self.backend = backend
        self.kdf_cost = kdf_cost
        self.seed_on_open = seed_defaults
        self._key = encryption_key or None
        self._lock = threading.RLock()
        self._is_open = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> "NoteStore":
        with self._lock:
            if not self._is_open:
                self.backend.open()
                self._is_open = True
                logger.info(f"Note store opened on {self.backend!r}")
                if self.seed_on_open:
                    self.seed_defaults()
        return self

    def close(self) -> None:
        with self._lock:
            if self._is_open:
                self.backend.close()
                self._is_open = False
                logger.info("Note store closed")
            self._key = None

    @property
    def is_open(self) -> bool:
        return self._is_open

    def __enter__(self) -> "NoteStore":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _ensure_open(self) -> None:
        if not self._is_open:
            raise StoreClosedError()

    # ------------------------------------------------------------------
    # Encryption key
    # ------------------------------------------------------------------

    def set_encryption_key(self, key: str) -> None:
        """Use ``key`` for encrypted notes until close() or clear_encryption_key()."""
        if not key:
            raise CodecError("Encryption key is empty", code=ErrorCode.CODEC_KEY_MISSING)
        self._key = key

    def clear_encryption_key(self) -> None:
        self._key = None

    @property
    def has_encryption_key(self) -> bool:
        return self._key is not None

    def _seal(self, plaintext: str) -> str:
        if self._key is None:
            raise CodecError(
                "No encryption key set; refusing to store an encrypted note as plaintext",
                code=ErrorCode.CODEC_KEY_MISSING,
            )
        return encrypt_text(plaintext, self._key, self.kdf_cost)

    def _unseal(self, note: Note) -> Note:
        """The caller's view of a stored note."""
        if not note.encrypted:
            return note
        if self._key is None:
            logger.debug(f"Note {note.id} is encrypted and no key is set")
            return note.model_copy(update={"content": DECRYPTION_FAILED_PLACEHOLDER})
        try:
            plaintext = decrypt_text(note.content, self._key)
        except CodecError as e:
            logger.warning(f"Failed to decrypt note {note.id}: {e}")
            return note.model_copy(update={"content": DECRYPTION_FAILED_PLACEHOLDER})
        return note.model_copy(update={"content": plaintext})

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    @traced("create_note")
    def create_note(
        self,
        title: str,
        content: str,
        tags: Optional[List[str]] = None,
        pinned: bool = False,
        folder_id: Optional[int] = None,
        encrypted: bool = False,
    ) -> Note:
        """Create a note and return it with plaintext content.

        Raises:
            ValidationError: If title or content is missing or tags are malformed.
            CodecError: If ``encrypted`` is set and no key is available.
            ConstraintError: If the relational backend rejects ``folder_id``.
        """
        data = _validated(
            NoteCreate,
            title=title,
            content=content,
            tags=tags or [],
            pinned=pinned,
            folder_id=folder_id,
            encrypted=encrypted,
        )
        return self._create(data)

    def _create(self, data: NoteCreate) -> Note:
        with self._lock:
            self._ensure_open()
            plaintext = data.content
            if data.encrypted:
                data = data.model_copy(update={"content": self._seal(plaintext)})
            created = self.backend.create(data)
            logger.info(f"Created note {created.id}")
            return created.model_copy(update={"content": plaintext})

    @traced("get_note")
    def get_note(self, note_id: int) -> Optional[Note]:
        """Get a note by ID, or None if it does not exist."""
        with self._lock:
            self._ensure_open()
            note = self.backend.get(note_id)
            return self._unseal(note) if note is not None else None

    @traced("update_note")
    def update_note(self, note_id: int, **fields: Any) -> Optional[Note]:
        """Apply a partial update and return the note, or None if missing.

        Only the keyword arguments given change; ``updated_at`` always moves
        forward. Pass ``folder_id=None`` to take a note out of its folder.

        Raises:
            ValidationError: If a field is unknown or has the wrong type.
            CodecError: If the change needs the key (new content for an
                encrypted note, turning encryption on or off) and the key is
                missing or wrong.
        """
        changes = _validated(NoteUpdate, **fields).changes()
        with self._lock:
            self._ensure_open()
            existing = self.backend.get(note_id)
            if existing is None:
                return None

            target_encrypted = changes.get("encrypted", existing.encrypted)
            if "content" in changes:
                if target_encrypted:
                    changes["content"] = self._seal(changes["content"])
            elif target_encrypted and not existing.encrypted:
                changes["content"] = self._seal(existing.content)
            elif existing.encrypted and not target_encrypted:
                if self._key is None:
                    raise CodecError(
                        "No encryption key set; cannot decrypt note to remove encryption",
                        code=ErrorCode.CODEC_KEY_MISSING,
                    )
                # Decrypting needs the key
                changes["content"] = decrypt_text(existing.content, self._key)

            updated = self.backend.update(note_id, changes)
            if updated is None:
                return None
            logger.debug(f"Updated note {note_id}: {sorted(changes)}")
            return self._unseal(updated)

    @traced("delete_note")
    def delete_note(self, note_id: int) -> bool:
        """Hard-delete a note. Returns False if it did not exist."""
        with self._lock:
            self._ensure_open()
            deleted = self.backend.delete(note_id)
            if deleted:
                logger.info(f"Deleted note {note_id}")
            return deleted

    @traced("list_notes")
    def list_notes(self, note_filter: Optional[NoteFilter] = None, **criteria: Any) -> List[Note]:
        """Notes matching ``note_filter`` (or keyword criteria), pinned first then newest.

        Criteria: query, pinned, tags, folder_id, date_from, date_to.
        """
        if note_filter is None:
            note_filter = _validated(NoteFilter, **criteria)
        elif criteria:
            raise ValidationError("Pass either a NoteFilter or keyword criteria, not both")
        with self._lock:
            self._ensure_open()
            notes = [self._unseal(note) for note in self.backend.get_all()]
            return filter_notes(notes, note_filter)

    # ------------------------------------------------------------------
    # Tags and folders
    # ------------------------------------------------------------------

    @traced("list_tags")
    def list_tags(self) -> List[TagSummary]:
        """Every tag in use, most used first."""
        with self._lock:
            self._ensure_open()
            return derive_tags(self.backend.get_all())

    @traced("create_folder")
    def create_folder(self, name: str, color: Optional[str] = None) -> Folder:
        data = _validated(FolderCreate, name=name, color=color)
        with self._lock:
            self._ensure_open()
            folder = self.backend.create_folder(data)
            logger.info(f"Created folder {folder.id} ({folder.name})")
            return folder

    def get_folder(self, folder_id: int) -> Optional[Folder]:
        with self._lock:
            self._ensure_open()
            return self.backend.get_folder(folder_id)

    @traced("list_folders")
    def list_folders(self) -> List[Folder]:
        """Folders sorted by name."""
        with self._lock:
            self._ensure_open()
            return derive_folder_listing(self.backend.list_folders())

    @traced("delete_folder")
    def delete_folder(self, folder_id: int) -> bool:
        """Delete a folder. Notes filed under it stay, with no folder."""
        with self._lock:
            self._ensure_open()
            return self.backend.delete_folder(folder_id)

    # ------------------------------------------------------------------
    # Stats, import/export, defaults
    # ------------------------------------------------------------------

    def get_stats(self) -> StoreStats:
        with self._lock:
            self._ensure_open()
            return compute_stats(self.backend.get_all(), self.backend.list_folders())

    @traced("import_note")
    def import_note(self, record: Union[Note, Dict[str, Any]]) -> Note:
        """Store a Note-shaped record from an importer.

        The record keeps its title, content (plaintext), tags, flags, folder
        and timestamps; the store assigns a fresh id.
        """
        if isinstance(record, Note):
            record = record.model_dump()
        fields = {k: v for k, v in record.items() if k in NoteCreate.model_fields}
        return self._create(_validated(NoteCreate, **fields))

    def export_notes(self, note_filter: Optional[NoteFilter] = None) -> List[Note]:
        """Notes as Note records for an exporter, in listing order."""
        return self.list_notes(note_filter)

    def seed_defaults(self) -> bool:
        """Create the default folder and welcome note if the store is empty.

        Returns:
            True if anything was created.
        """
        with self._lock:
            self._ensure_open()
            if self.backend.get_all() or self.backend.list_folders():
                return False
            self.backend.create_folder(
                FolderCreate(name=DEFAULT_FOLDER_NAME, color=DEFAULT_FOLDER_COLOR)
            )
            self.backend.create(
                NoteCreate(
                    title=WELCOME_TITLE,
                    content=WELCOME_CONTENT,
                    tags=["welcome"],
                    pinned=True,
                )
            )
            logger.info("Seeded default folder and welcome note")
            return True

    def __repr__(self) -> str:
        state = "open" if self._is_open else "closed"
        return f"<NoteStore({self.backend!r}, {state})>"


def build_backend(cfg: ScribeConfig) -> StorageBackend:
    """Construct the backend named by ``cfg.backend``."""
    if cfg.backend == "keyvalue":
        return KeyValueBackend(KeyValueStore(cfg.get_kv_path()), namespace=cfg.kv_namespace)
    if cfg.backend == "file":
        return FileTreeBackend(cfg.get_absolute_path(cfg.data_dir))
    if cfg.backend == "sql":
        return RelationalBackend(cfg.get_db_url())
    raise ConfigurationError(f"Unknown backend '{cfg.backend}'", config_key="backend")


def open_store(
    cfg: Optional[ScribeConfig] = None, encryption_key: Optional[str] = None
) -> NoteStore:
    """Build and open a store from configuration.

    The caller owns the returned store and should close() it (or use it as a
    context manager).
    """
    cfg = cfg or default_config
    store = NoteStore(
        build_backend(cfg),
        encryption_key=encryption_key,
        kdf_cost=cfg.kdf_cost,
        seed_defaults=cfg.seed_defaults,
    )
    return store.open()
