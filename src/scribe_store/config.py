"""Configuration module for the Scribe note store."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config, lives alongside the default data directory
_USER_ENV = Path.home() / ".scribe" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)

BACKENDS = ("keyvalue", "file", "sql")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class ScribeConfig(BaseModel):
    """Configuration for the Scribe note store."""

    # Base directory for relative paths
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("SCRIBE_BASE_DIR", "."))
    )
    # Which storage backend open_store() builds
    backend: str = Field(
        default_factory=lambda: os.getenv("SCRIBE_BACKEND", "file")
    )
    # File-tree backend root (holds notes/ and folders/)
    data_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("SCRIBE_DATA_DIR", "data/notes"))
    )
    # Relational backend database file
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("SCRIBE_DATABASE_PATH", "data/db/scribe.db")
        )
    )
    # Key-value backend mirror file. Empty keeps the store in memory only.
    kv_path: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("SCRIBE_KV_PATH", "data/kv/scribe.json"))
            if os.getenv("SCRIBE_KV_PATH", "data/kv/scribe.json")
            else None
        )
    )
    kv_namespace: str = Field(
        default_factory=lambda: os.getenv("SCRIBE_KV_NAMESPACE", "scribe")
    )
    # log2 of the scrypt N parameter used when encrypting note content
    kdf_cost: int = Field(
        default_factory=lambda: int(os.getenv("SCRIBE_KDF_COST", "14"))
    )
    # Create the "General" folder and the welcome note in an empty store
    seed_defaults: bool = Field(
        default_factory=lambda: _env_flag("SCRIBE_SEED_DEFAULTS", "false")
    )
    log_level: str = Field(
        default_factory=lambda: os.getenv("SCRIBE_LOG_LEVEL", "INFO")
    )

    model_config = {"validate_assignment": True}

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        """Normalize and check the backend name."""
        v = v.strip().lower()
        if v not in BACKENDS:
            raise ValueError(
                f"Unknown backend '{v}'. Expected one of: {', '.join(BACKENDS)}"
            )
        return v

    @field_validator("kdf_cost")
    @classmethod
    def validate_kdf_cost(cls, v: int) -> int:
        """Keep scrypt cost in a range that is both safe and usable."""
        if not 10 <= v <= 20:
            raise ValueError("kdf_cost must be between 10 and 20")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.strip().upper()
        if v not in LOG_LEVELS:
            raise ValueError(f"Unknown log level '{v}'")
        return v

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_db_url(self) -> str:
        """Get the database URL for SQLite."""
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"

    def get_kv_path(self) -> Optional[Path]:
        """Absolute path of the key-value mirror file, or None for memory only."""
        if self.kv_path is None:
            return None
        return self.get_absolute_path(self.kv_path)


# Create a global config instance
config = ScribeConfig()
