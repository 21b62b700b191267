"""Logging setup and operation metrics for the Scribe note store.

``configure_logging`` attaches a rotating log file (and optionally the
console) to the ``scribe_store`` logger hierarchy. ``traced`` wraps store
operations: each call gets a short correlation id, is timed, logged at DEBUG
and counted per backend and operation in a process-wide
:class:`MetricsCollector`. Calls slower than ``SLOW_OPERATION_MS`` are logged
as warnings.
"""
import functools
import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Iterator, Optional, Tuple, TypeVar, Union

logger = logging.getLogger(__name__)

DEFAULT_LOG_DIR = Path.home() / ".scribe" / "logs"
LOG_FILE_NAME = "scribe.log"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"
ROOT_LOGGER = "scribe_store"

SLOW_OPERATION_MS = 500.0

F = TypeVar("F", bound=Callable[..., Any])

_logging_configured = False


def _has_file_handler(target: logging.Logger, log_file: Path) -> bool:
    return any(
        isinstance(h, RotatingFileHandler) and Path(h.baseFilename) == log_file
        for h in target.handlers
    )


def _has_console_handler(target: logging.Logger) -> bool:
    return any(type(h) is logging.StreamHandler for h in target.handlers)


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    console: bool = True,
) -> Path:
    """Send ``scribe_store`` logs to a rotating file under ``log_dir``.

    Calling this again with the same directory does not add a second file
    handler, so it is safe to call from every entry point.

    Args:
        log_dir: Directory for ``scribe.log``. Defaults to ~/.scribe/logs/
        level: Level for the package logger and its handlers
        max_bytes: Size at which the log file is rotated (default: 10 MB)
        backup_count: Number of rotated files to keep
        console: Also log to stderr

    Returns:
        Path to the log directory
    """
    global _logging_configured

    log_path = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)
    log_file = (log_path / LOG_FILE_NAME).resolve()

    package_logger = logging.getLogger(ROOT_LOGGER)
    package_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    handlers = []
    if not _has_file_handler(package_logger, log_file):
        handlers.append(
            RotatingFileHandler(
                log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
            )
        )
    if console and not _has_console_handler(package_logger):
        handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        package_logger.addHandler(handler)

    _logging_configured = True
    package_logger.debug(f"Logging to {log_file} (rotating at {max_bytes} bytes, {backup_count} kept)")
    return log_path


def is_logging_configured() -> bool:
    """Whether configure_logging() has run in this process."""
    return _logging_configured


@dataclass
class OperationStats:
    """Running totals for one (backend, operation) pair."""

    count: int = 0
    errors: int = 0
    slow: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None

    def add(self, duration_ms: float, error: Optional[str], slow: bool) -> None:
        self.count += 1
        self.total_ms += duration_ms
        self.max_ms = max(self.max_ms, duration_ms)
        if slow:
            self.slow += 1
        if error is not None:
            self.errors += 1
            self.last_error = error
            self.last_error_at = datetime.now(timezone.utc)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "success_count": self.count - self.errors,
            "error_count": self.errors,
            "slow_count": self.slow,
            "avg_duration_ms": round(self.total_ms / self.count, 2) if self.count else 0.0,
            "max_duration_ms": round(self.max_ms, 2),
            "last_error": self.last_error,
            "last_error_time": self.last_error_at.isoformat() if self.last_error_at else None,
        }


class MetricsCollector:
    """In-memory, thread-safe operation counters.

    Entries are keyed by operation name, or ``"<backend>.<operation>"`` when
    the call was made on a specific backend.
    """

    def __init__(self, slow_ms: float = SLOW_OPERATION_MS):
        self.slow_ms = slow_ms
        self._stats: Dict[str, OperationStats] = {}
        self._lock = Lock()
        self._started = datetime.now(timezone.utc)

    @staticmethod
    def key(operation: str, backend: Optional[str] = None) -> str:
        return f"{backend}.{operation}" if backend else operation

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None,
        backend: Optional[str] = None,
    ) -> bool:
        """Count one call. Returns True if it was slower than ``slow_ms``."""
        slow = duration_ms >= self.slow_ms
        with self._lock:
            stats = self._stats.setdefault(self.key(operation, backend), OperationStats())
            stats.add(duration_ms, None if success else (error or "unknown error"), slow)
        return slow

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Snapshot of every entry as plain dicts."""
        with self._lock:
            return {name: stats.as_dict() for name, stats in self._stats.items()}

    def get_summary(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "uptime_seconds": (datetime.now(timezone.utc) - self._started).total_seconds(),
                "total_operations": sum(s.count for s in self._stats.values()),
                "total_errors": sum(s.errors for s in self._stats.values()),
                "slow_operations": sum(s.slow for s in self._stats.values()),
                "operations_tracked": sorted(self._stats),
            }

    def reset(self) -> None:
        with self._lock:
            self._stats.clear()
            self._started = datetime.now(timezone.utc)


# Process-wide collector used by traced()
metrics = MetricsCollector()


def _describe(context: Dict[str, Any]) -> str:
    return ", ".join(f"{k}={v}" for k, v in context.items())


@contextmanager
def timed_operation(
    operation: str,
    collector: Optional[MetricsCollector] = None,
    backend: Optional[str] = None,
    **context: Any,
) -> Iterator[Dict[str, Any]]:
    """Time a block, log it with a correlation id and record it.

    Yields a dict the block can add result details to (e.g. ``result_count``);
    they are included in the closing log line. Exceptions propagate after
    being counted.

    Example:
        with timed_operation("list_notes", backend="sql") as op:
            notes = backend.get_all()
            op["result_count"] = len(notes)
    """
    collector = collector or metrics
    info: Dict[str, Any] = {"correlation_id": uuid.uuid4().hex[:8]}
    cid = info["correlation_id"]
    label = collector.key(operation, backend)

    logger.debug(f"[{cid}] START {label} ({_describe(context)})")
    started = time.perf_counter()
    error: Optional[str] = None
    try:
        yield info
    except Exception as e:
        error = f"{type(e).__name__}: {e}"
        raise
    finally:
        elapsed = (time.perf_counter() - started) * 1000
        slow = collector.record_operation(operation, elapsed, error is None, error, backend)
        results = _describe({k: v for k, v in info.items() if k != "correlation_id"})
        status = "OK" if error is None else f"ERROR: {error}"
        logger.debug(f"[{cid}] END {label} ({elapsed:.2f}ms) [{status}] {results}")
        if slow:
            logger.warning(f"[{cid}] Slow {label}: {elapsed:.0f}ms ({_describe(context)})")


def _call_context(args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> Dict[str, Any]:
    """Pick the record id out of a call, if there is one."""
    for name in ("note_id", "folder_id"):
        if name in kwargs:
            return {name: kwargs[name]}
    if len(args) > 1 and isinstance(args[1], int) and not isinstance(args[1], bool):
        return {"id": args[1]}
    return {}


def traced(operation_name: Optional[str] = None) -> Callable[[F], F]:
    """Decorator that runs the wrapped call inside :func:`timed_operation`.

    On methods of an object with a ``backend`` attribute, the backend's
    ``name`` is recorded too.

    Example:
        @traced("create_note")
        def create_note(self, title: str, content: str) -> Note:
            ...
    """
    def decorator(func: F) -> F:
        op_name = operation_name or func.__name__

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            owner_backend = getattr(args[0], "backend", None) if args else None
            backend = getattr(owner_backend, "name", None)
            with timed_operation(op_name, backend=backend, **_call_context(args, kwargs)) as op:
                result = func(*args, **kwargs)
                if isinstance(result, (list, tuple)):
                    op["result_count"] = len(result)
                elif result is not None:
                    op["has_result"] = True
                return result

        return wrapper  # type: ignore
    return decorator
