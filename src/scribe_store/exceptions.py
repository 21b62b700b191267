"""Exception hierarchy for the Scribe note store.

Every error carries a machine-readable :class:`ErrorCode` and a ``details``
dict, so callers can log it or hand it to a UI without parsing messages.
Nothing here is process-fatal; each error concerns one record or one operation.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Notes and folders (1xxx / 2xxx)
    NOTE_NOT_FOUND = 1001
    FOLDER_NOT_FOUND = 2001

    # Codec (3xxx)
    CODEC_KEY_MISSING = 3001
    CODEC_MALFORMED = 3002
    CODEC_DECRYPT_FAILED = 3003

    # Storage (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_DELETE_FAILED = 4003
    STORAGE_CLOSED = 4004
    RECORD_CORRUPTED = 4005
    CONSTRAINT_VIOLATION = 4006

    # Configuration and input (6xxx / 7xxx)
    CONFIG_INVALID = 6001
    VALIDATION_FAILED = 7001


def _path_hint(path: str) -> str:
    """Last path component only; full paths stay out of error details."""
    return path.rstrip("/").rsplit("/", 1)[-1]


class ScribeError(Exception):
    """Base exception for all Scribe store errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Extra context; ``None`` values are dropped
    """

    default_code = ErrorCode.VALIDATION_FAILED

    def __init__(self, message: str, code: Optional[ErrorCode] = None, **details: Any):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details: Dict[str, Any] = {k: v for k, v in details.items() if v is not None}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": type(self).__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": dict(self.details),
        }

    def __str__(self) -> str:
        text = f"[{self.code.name}] {self.message}"
        if self.details:
            text += " (" + ", ".join(f"{k}={v}" for k, v in self.details.items()) + ")"
        return text


class NotFoundError(ScribeError):
    """A note or folder id has no record.

    Store reads report missing ids as ``None``/``False``; this is for callers
    that would rather raise.
    """

    def __init__(self, record_id: Any, kind: str = "Note"):
        code = ErrorCode.FOLDER_NOT_FOUND if kind == "Folder" else ErrorCode.NOTE_NOT_FOUND
        super().__init__(f"{kind} with ID '{record_id}' not found", code, id=record_id, kind=kind)
        self.record_id = record_id
        self.kind = kind


class CodecError(ScribeError):
    """Note content could not be encrypted or decrypted."""

    default_code = ErrorCode.CODEC_DECRYPT_FAILED

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message,
            code,
            original_error=type(original_error).__name__ if original_error else None,
        )
        self.original_error = original_error


class StorageError(ScribeError):
    """Reading or writing the storage medium failed."""

    default_code = ErrorCode.STORAGE_READ_FAILED

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        path: Optional[str] = None,
        code: Optional[ErrorCode] = None,
        original_error: Optional[Exception] = None,
        **details: Any,
    ):
        super().__init__(
            message,
            code,
            operation=operation,
            path_hint=_path_hint(path) if path else None,
            original_error=str(original_error)[:200] if original_error else None,
            **details,
        )
        self.operation = operation
        self.path = path
        self.original_error = original_error


class SerializationError(StorageError):
    """A stored record cannot be parsed back into a model.

    Collection reads catch this per record, log it and move on.
    """

    def __init__(
        self,
        message: str,
        record: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message,
            operation="deserialize",
            path=record,
            code=ErrorCode.RECORD_CORRUPTED,
            original_error=original_error,
        )
        self.record = record


class ConstraintError(StorageError):
    """A relational write broke a foreign key or uniqueness rule."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message,
            operation="write",
            code=ErrorCode.CONSTRAINT_VIOLATION,
            original_error=original_error,
            field=field,
        )
        self.field = field


class StoreClosedError(ScribeError):
    """An operation was attempted on a store that is not open."""

    default_code = ErrorCode.STORAGE_CLOSED

    def __init__(self, message: str = "Note store is not open"):
        super().__init__(message)


class ConfigurationError(ScribeError):
    """A configuration value cannot be used."""

    default_code = ErrorCode.CONFIG_INVALID

    def __init__(self, message: str, config_key: Optional[str] = None):
        super().__init__(message, config_key=config_key)
        self.config_key = config_key


class ValidationError(ScribeError):
    """Input rejected by the data model."""

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        super().__init__(
            message,
            field=field,
            value=str(value)[:100] if value is not None else None,
        )
        self.field = field
        self.value = value
