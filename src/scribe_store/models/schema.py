"""Data models for the Scribe note store."""

import datetime
import threading
import time
from datetime import timezone
from typing import Iterable, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Current time with UTC timezone info attached.
    """
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(dt_value: Optional[datetime.datetime]) -> datetime.datetime:
    """Normalize a datetime to aware UTC, treating naive datetimes as UTC.

    SQLite hands back naive datetimes, and older exported records may carry
    them too; both are assumed to be UTC.

    Args:
        dt_value: A datetime that may or may not have timezone info.

    Returns:
        The same instant as an aware UTC datetime.
    """
    if dt_value is None:
        return utc_now()
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value.astimezone(timezone.utc)


def next_timestamp(previous: Optional[datetime.datetime] = None) -> datetime.datetime:
    """Current UTC time, nudged past ``previous`` if the clock has not moved.

    Keeps ``updated_at`` strictly increasing across back-to-back mutations.
    """
    now = utc_now()
    if previous is not None:
        previous = ensure_timezone_aware(previous)
        if now <= previous:
            now = previous + datetime.timedelta(microseconds=1)
    return now


_id_lock = threading.Lock()
_last_id = 0


def generate_id(existing_max: int = 0) -> int:
    """Generate a millisecond timestamp id that never repeats.

    The id is the current epoch time in milliseconds, bumped past both the
    last id handed out by this process and ``existing_max`` (the highest id
    already persisted), so ids stay strictly increasing within a store.

    Args:
        existing_max: Highest id currently stored by the caller.

    Returns:
        A positive integer id.
    """
    global _last_id

    with _id_lock:
        candidate = int(time.time() * 1000)
        floor = max(_last_id, existing_max)
        if candidate <= floor:
            candidate = floor + 1
        _last_id = candidate
        return candidate


def normalize_tags(tags: Optional[Iterable[str]]) -> List[str]:
    """Strip tag names, drop blanks and collapse duplicates (first one wins)."""
    if not tags:
        return []
    seen = set()
    result = []
    for tag in tags:
        if not isinstance(tag, str):
            raise ValueError(f"Tag names must be strings, got {type(tag).__name__}")
        name = tag.strip()
        if name and name not in seen:
            seen.add(name)
            result.append(name)
    return result


class Note(BaseModel):
    """A persisted note.

    ``content`` is whatever the caller should see: plaintext for readable
    notes, or the decryption placeholder when an encrypted note could not be
    opened.
    """

    id: int = Field(..., description="Unique ID of the note, assigned by the store")
    title: str = Field(..., description="Title of the note")
    content: str = Field(..., description="Body text of the note")
    tags: List[str] = Field(default_factory=list, description="Tag names")
    pinned: bool = Field(default=False, description="Pinned notes list first")
    folder_id: Optional[int] = Field(
        default=None, description="Weak reference to a Folder"
    )
    encrypted: bool = Field(
        default=False, description="Whether content is encrypted at rest"
    )
    created_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the note was created (UTC)"
    )
    updated_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the note was last updated (UTC)"
    )

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("tags", mode="before")
    @classmethod
    def validate_tags(cls, v: Optional[Iterable[str]]) -> List[str]:
        """Collapse duplicates and drop blank tag names."""
        return normalize_tags(v)

    @field_validator("created_at", "updated_at")
    @classmethod
    def validate_timestamps(cls, v: datetime.datetime) -> datetime.datetime:
        """Store every timestamp as timezone-aware UTC."""
        return ensure_timezone_aware(v)

    def has_any_tag(self, names: Iterable[str]) -> bool:
        """True if the note carries at least one of ``names``."""
        own = set(self.tags)
        return any(name in own for name in names)


class NoteCreate(BaseModel):
    """Input for creating a note.

    ``created_at``/``updated_at`` are only set when importing a record that
    already has a history; otherwise the backend stamps them.
    """

    title: str
    content: str
    tags: List[str] = Field(default_factory=list)
    pinned: bool = False
    folder_id: Optional[int] = None
    encrypted: bool = False
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None

    model_config = {"extra": "forbid"}

    @field_validator("tags", mode="before")
    @classmethod
    def validate_tags(cls, v: Optional[Iterable[str]]) -> List[str]:
        return normalize_tags(v)

    def build(self, note_id: int) -> Note:
        """Turn the input into a stored Note with the given id."""
        created = ensure_timezone_aware(self.created_at) if self.created_at else utc_now()
        updated = ensure_timezone_aware(self.updated_at) if self.updated_at else created
        return Note(
            id=note_id,
            title=self.title,
            content=self.content,
            tags=self.tags,
            pinned=self.pinned,
            folder_id=self.folder_id,
            encrypted=self.encrypted,
            created_at=created,
            updated_at=max(created, updated),
        )


class NoteUpdate(BaseModel):
    """Partial update for a note. Only fields that were explicitly set apply.

    ``folder_id=None`` passed explicitly clears the folder; leaving it out
    keeps the current one.
    """

    title: Optional[str] = None
    content: Optional[str] = None
    tags: Optional[List[str]] = None
    pinned: Optional[bool] = None
    folder_id: Optional[int] = None
    encrypted: Optional[bool] = None

    model_config = {"extra": "forbid"}

    @field_validator("tags", mode="before")
    @classmethod
    def validate_tags(cls, v: Optional[Iterable[str]]) -> Optional[List[str]]:
        if v is None:
            return None
        return normalize_tags(v)

    @model_validator(mode="after")
    def check_required_fields(self) -> "NoteUpdate":
        """title, content and the flags may be omitted but never nulled."""
        for name in ("title", "content", "pinned", "encrypted", "tags"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be set to null")
        return self

    def changes(self) -> dict:
        """The explicitly supplied fields."""
        return {name: getattr(self, name) for name in self.model_fields_set}


class Folder(BaseModel):
    """A folder notes can be filed under. Names need not be unique."""

    id: int = Field(..., description="Unique ID of the folder")
    name: str = Field(..., description="Display name")
    color: Optional[str] = Field(default=None, description="Optional display color")
    created_at: datetime.datetime = Field(default_factory=utc_now)
    updated_at: datetime.datetime = Field(default_factory=utc_now)

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate that the name is not empty."""
        if not v.strip():
            raise ValueError("Folder name cannot be empty")
        return v

    @field_validator("created_at", "updated_at")
    @classmethod
    def validate_timestamps(cls, v: datetime.datetime) -> datetime.datetime:
        return ensure_timezone_aware(v)


class FolderCreate(BaseModel):
    """Input for creating a folder."""

    name: str
    color: Optional[str] = None

    model_config = {"extra": "forbid"}

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Folder name cannot be empty")
        return v

    def build(self, folder_id: int) -> Folder:
        now = utc_now()
        return Folder(
            id=folder_id, name=self.name, color=self.color,
            created_at=now, updated_at=now,
        )


class TagSummary(BaseModel):
    """A tag derived from the notes that reference it."""

    name: str
    usage_count: int
    first_seen: datetime.datetime

    model_config = {"frozen": True}

    def __str__(self) -> str:
        """Return string representation of tag."""
        return self.name


class NoteFilter(BaseModel):
    """Criteria for listing notes. Unset fields do not constrain the result.

    All set fields must match (AND); ``tags`` matches a note carrying any of
    the listed names (OR).
    """

    query: Optional[str] = None
    pinned: Optional[bool] = None
    tags: Optional[List[str]] = None
    folder_id: Optional[int] = None
    date_from: Optional[datetime.datetime] = None
    date_to: Optional[datetime.datetime] = None

    model_config = {"extra": "forbid"}

    @field_validator("date_from", "date_to")
    @classmethod
    def validate_dates(
        cls, v: Optional[datetime.datetime]
    ) -> Optional[datetime.datetime]:
        return ensure_timezone_aware(v) if v is not None else None


class StoreStats(BaseModel):
    """Counts describing the contents of a store."""

    total_notes: int = 0
    total_folders: int = 0
    total_tags: int = 0
    pinned_notes: int = 0
    encrypted_notes: int = 0
