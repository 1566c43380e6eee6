"""Configuration module for the Notetaker core."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from notetaker import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config: lives alongside the notes
_USER_ENV = Path.home() / ".notetaker" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)

STORAGE_BACKENDS = ("sqlite", "markdown")


class NotetakerConfig(BaseModel):
    """Configuration for the Notetaker core."""

    # Base directory for the project
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("NOTETAKER_BASE_DIR", "."))
    )
    # Storage configuration: "sqlite" keeps one row per note,
    # "markdown" keeps one <id>.md file per note
    storage_backend: str = Field(
        default_factory=lambda: os.getenv("NOTETAKER_STORAGE_BACKEND", "sqlite").lower()
    )
    notes_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("NOTETAKER_NOTES_DIR", "data/notes"))
    )
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("NOTETAKER_DATABASE_PATH", "data/db/notetaker.db")
        )
    )
    # When True the sqlite backend lives in memory and nothing survives a restart
    in_memory_db: bool = Field(
        default_factory=lambda: os.getenv("NOTETAKER_IN_MEMORY_DB", "true").lower()
        in ("true", "1", "yes")
    )
    # Input limits
    max_tags_per_note: int = Field(
        default_factory=lambda: int(os.getenv("NOTETAKER_MAX_TAGS", "10"))
    )
    max_title_length: int = Field(
        default_factory=lambda: int(os.getenv("NOTETAKER_MAX_TITLE_LENGTH", "500"))
    )
    max_body_length: int = Field(
        default_factory=lambda: int(
            os.getenv("NOTETAKER_MAX_BODY_LENGTH", "1000000")
        )
    )
    # Search: notes scanned between two cancellation checks
    search_page_size: int = Field(
        default_factory=lambda: int(os.getenv("NOTETAKER_SEARCH_PAGE_SIZE", "200"))
    )
    # Characters of plain text shown in list previews
    excerpt_length: int = Field(
        default_factory=lambda: int(os.getenv("NOTETAKER_EXCERPT_LENGTH", "160"))
    )
    # Logging
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("NOTETAKER_LOG_DIR"))
            if os.getenv("NOTETAKER_LOG_DIR")
            else None
        )
    )
    # Operation metrics written at shutdown
    metrics_file: Path = Field(
        default_factory=lambda: Path(
            os.getenv(
                "NOTETAKER_METRICS_FILE",
                str(Path.home() / ".notetaker" / "metrics.json"),
            )
        )
    )
    # Server configuration
    server_name: str = Field(default=os.getenv("NOTETAKER_SERVER_NAME", "notetaker"))
    server_version: str = Field(default=__version__)

    @model_validator(mode="after")
    def _validate_limits(self) -> "NotetakerConfig":
        """Reject unknown storage backends and non-positive limits."""
        if self.storage_backend not in STORAGE_BACKENDS:
            raise ValueError(
                f"storage_backend must be one of {', '.join(STORAGE_BACKENDS)}, "
                f"got '{self.storage_backend}'"
            )
        for name in (
            "max_tags_per_note",
            "max_title_length",
            "max_body_length",
            "search_page_size",
            "excerpt_length",
        ):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1")
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_db_url(self) -> str:
        """Get the database URL for SQLite."""
        if self.in_memory_db:
            return "sqlite://"
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"

    def get_notes_dir(self) -> Path:
        """Get the absolute notes directory, creating it if needed."""
        notes_dir = self.get_absolute_path(self.notes_dir)
        notes_dir.mkdir(parents=True, exist_ok=True)
        return notes_dir


# Create a global config instance
config = NotetakerConfig()
