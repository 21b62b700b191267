"""Relational backend on SQLite through SQLAlchemy."""
import json
import logging
from typing import Any, Dict, List, Optional, Set

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from scribe_store.exceptions import (
    ConstraintError,
    ErrorCode,
    SerializationError,
    StorageError,
)
from scribe_store.models.db_models import (
    DBFolder,
    DBNote,
    DBTag,
    get_session_factory,
    init_db,
)
from scribe_store.models.schema import (
    Folder,
    FolderCreate,
    Note,
    NoteCreate,
    ensure_timezone_aware,
)
from scribe_store.storage.base import StorageBackend, merge_note

logger = logging.getLogger(__name__)


def _constraint_field(error: IntegrityError) -> Optional[str]:
    """Best guess at which column an integrity error is about."""
    message = str(error.orig).lower()
    if "foreign key" in message:
        return "folder_id"
    if "unique" in message and "tags.name" in message:
        return "tags"
    if "not null" in message:
        # "NOT NULL constraint failed: notes.title"
        return message.rsplit(".", 1)[-1].strip() or None
    return None


class RelationalBackend(StorageBackend):
    """Notes, folders and a tag registry in three SQLite tables.

    Tags stay denormalized as a JSON array on each note row. The ``tags``
    table tracks which names are in use and is rewritten after every note
    write; listings are always derived from the notes themselves.
    """

    name = "sql"

    def __init__(self, db_url: str, engine: Optional[Engine] = None):
        """Initialize the backend.

        Args:
            db_url: SQLAlchemy URL, e.g. ``sqlite:///path/to/scribe.db``.
            engine: Pre-configured engine. When provided, ``db_url`` is only
                    used for logging and the caller owns the schema.
        """
        self.db_url = db_url
        self.engine = engine
        self.session_factory = get_session_factory(engine) if engine else None
        self._owns_engine = engine is None

    def open(self) -> None:
        if self.engine is not None:
            return
        try:
            self.engine = init_db(self.db_url)
        except OperationalError as e:
            raise StorageError(
                "Cannot open database",
                operation="open",
                path=self.db_url,
                code=ErrorCode.STORAGE_READ_FAILED,
                original_error=e,
            ) from e
        self.session_factory = get_session_factory(self.engine)
        logger.info(f"Opened relational store at {self.db_url}")

    def close(self) -> None:
        if self.engine is not None and self._owns_engine:
            self.engine.dispose()
            self.engine = None
            self.session_factory = None

    def _session(self) -> Session:
        if self.session_factory is None:
            self.open()
        return self.session_factory()

    # ------------------------------------------------------------------
    # Row conversion
    # ------------------------------------------------------------------

    @staticmethod
    def _db_note_to_model(db_note: DBNote) -> Note:
        try:
            tags = json.loads(db_note.tags or "[]")
            if not isinstance(tags, list):
                raise ValueError("tags column is not a JSON array")
            return Note(
                id=db_note.id,
                title=db_note.title,
                content=db_note.content,
                tags=tags,
                pinned=bool(db_note.pinned),
                folder_id=db_note.folder_id,
                encrypted=bool(db_note.encrypted),
                created_at=ensure_timezone_aware(db_note.created_at),
                updated_at=ensure_timezone_aware(db_note.updated_at),
            )
        except (ValueError, PydanticValidationError) as e:
            raise SerializationError(
                f"Malformed row for note {db_note.id}",
                record=f"notes#{db_note.id}",
                original_error=e,
            ) from e

    @staticmethod
    def _db_folder_to_model(db_folder: DBFolder) -> Folder:
        return Folder(
            id=db_folder.id,
            name=db_folder.name,
            color=db_folder.color,
            created_at=ensure_timezone_aware(db_folder.created_at),
            updated_at=ensure_timezone_aware(db_folder.updated_at),
        )

    @staticmethod
    def _apply_to_row(db_note: DBNote, note: Note) -> None:
        db_note.title = note.title
        db_note.content = note.content
        db_note.tags = json.dumps(note.tags, ensure_ascii=False)
        db_note.pinned = note.pinned
        db_note.folder_id = note.folder_id
        db_note.encrypted = note.encrypted
        db_note.created_at = note.created_at
        db_note.updated_at = note.updated_at

    # ------------------------------------------------------------------
    # Tag registry
    # ------------------------------------------------------------------

    def _used_tag_names(self, session: Session) -> Set[str]:
        names: Set[str] = set()
        for note_id, raw in session.execute(select(DBNote.id, DBNote.tags)):
            try:
                tags = json.loads(raw or "[]")
            except json.JSONDecodeError:
                logger.warning(f"Ignoring corrupt tag list on note {note_id}")
                continue
            if isinstance(tags, list):
                names.update(t for t in tags if isinstance(t, str))
        return names

    def _sync_tag_registry(self, session: Session) -> None:
        """Insert names now in use and prune names no note references."""
        used = self._used_tag_names(session)
        for name in used:
            session.execute(
                text("INSERT OR IGNORE INTO tags (name, created_at) VALUES (:name, CURRENT_TIMESTAMP)"),
                {"name": name},
            )
        if used:
            session.execute(delete(DBTag).where(DBTag.name.not_in(used)))
        else:
            session.execute(delete(DBTag))

    def tag_registry(self) -> List[str]:
        """Names currently recorded in the ``tags`` table, sorted."""
        with self._session() as session:
            return sorted(session.scalars(select(DBTag.name)).all())

    @staticmethod
    def _checked(session: Session, operation: str, commit: bool) -> None:
        """Flush or commit, turning integrity errors into ConstraintError."""
        try:
            if commit:
                session.commit()
            else:
                session.flush()
        except IntegrityError as e:
            session.rollback()
            field = _constraint_field(e)
            logger.warning(f"{operation} rejected by constraint on {field}: {e.orig}")
            raise ConstraintError(
                f"{operation} violates a database constraint",
                field=field,
                original_error=e,
            ) from e

    def _flush(self, session: Session, operation: str) -> None:
        self._checked(session, operation, commit=False)

    def _commit(self, session: Session, operation: str) -> None:
        self._checked(session, operation, commit=True)

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    def create(self, data: NoteCreate) -> Note:
        with self._session() as session:
            # id 0 is a placeholder; the row gets its autoincrement id on flush
            draft = data.build(0)
            db_note = DBNote()
            self._apply_to_row(db_note, draft)
            session.add(db_note)
            self._flush(session, "create")
            self._sync_tag_registry(session)
            self._commit(session, "create")
            return draft.model_copy(update={"id": db_note.id})

    def get(self, note_id: int) -> Optional[Note]:
        with self._session() as session:
            db_note = session.get(DBNote, note_id)
            if db_note is None:
                return None
            try:
                return self._db_note_to_model(db_note)
            except SerializationError as e:
                logger.warning(f"Cannot read note {note_id}: {e}")
                return None

    def get_all(self) -> List[Note]:
        with self._session() as session:
            db_notes = session.scalars(select(DBNote)).all()

        notes = []
        failed_ids: List[int] = []
        for db_note in db_notes:
            try:
                notes.append(self._db_note_to_model(db_note))
            except SerializationError as e:
                logger.warning(f"Skipping note: {e}")
                failed_ids.append(db_note.id)

        if failed_ids:
            logger.warning(
                f"Failed to convert {len(failed_ids)} of {len(db_notes)} notes: "
                f"{failed_ids[:5]}{'...' if len(failed_ids) > 5 else ''}"
            )
        return notes

    def update(self, note_id: int, fields: Dict[str, Any]) -> Optional[Note]:
        with self._session() as session:
            db_note = session.get(DBNote, note_id)
            if db_note is None:
                return None
            try:
                existing = self._db_note_to_model(db_note)
            except SerializationError as e:
                logger.warning(f"Cannot update unreadable note {note_id}: {e}")
                return None
            updated = merge_note(existing, fields)
            self._apply_to_row(db_note, updated)
            if "tags" in fields:
                self._flush(session, "update")
                self._sync_tag_registry(session)
            self._commit(session, "update")
            return updated

    def delete(self, note_id: int) -> bool:
        with self._session() as session:
            db_note = session.get(DBNote, note_id)
            if db_note is None:
                return False
            session.delete(db_note)
            self._flush(session, "delete")
            self._sync_tag_registry(session)
            self._commit(session, "delete")
            return True

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    def create_folder(self, data: FolderCreate) -> Folder:
        with self._session() as session:
            draft = data.build(0)
            db_folder = DBFolder(
                name=draft.name,
                color=draft.color,
                created_at=draft.created_at,
                updated_at=draft.updated_at,
            )
            session.add(db_folder)
            self._commit(session, "create_folder")
            return draft.model_copy(update={"id": db_folder.id})

    def list_folders(self) -> List[Folder]:
        with self._session() as session:
            return [
                self._db_folder_to_model(f)
                for f in session.scalars(select(DBFolder)).all()
            ]

    def get_folder(self, folder_id: int) -> Optional[Folder]:
        with self._session() as session:
            db_folder = session.get(DBFolder, folder_id)
            return self._db_folder_to_model(db_folder) if db_folder else None

    def delete_folder(self, folder_id: int) -> bool:
        with self._session() as session:
            db_folder = session.get(DBFolder, folder_id)
            if db_folder is None:
                return False
            # notes.folder_id is cleared by ON DELETE SET NULL
            session.delete(db_folder)
            self._commit(session, "delete_folder")
            return True

    def __repr__(self) -> str:
        return f"<RelationalBackend(url='{self.db_url}')>"
