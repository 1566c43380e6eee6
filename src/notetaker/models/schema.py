"""Data models for the Notetaker core."""

import datetime
import os
import re
import threading
from dataclasses import dataclass, field
from datetime import timezone
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

from notetaker.exceptions import ErrorCode, ValidationError
from notetaker.utils import html_to_text

# Note IDs: alphanumeric, underscores and hyphens. Generated IDs also
# match (YYYYMMDDTHHMMSSssssssccc).
SAFE_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_\-]+$")

TAG_PREFIX = "#"


def validate_note_id(value: str, field_name: str = "Note ID") -> str:
    """Validate that a value can be used as a note identifier.

    IDs double as markdown file names and as ``[[id]]`` link targets, so
    path separators, parent references and whitespace are all rejected.

    Args:
        value: The string to validate
        field_name: Name of the field for error messages

    Returns:
        The validated value (unchanged)

    Raises:
        ValueError: If the value is empty or contains unsafe characters
    """
    if not value:
        raise ValueError(f"{field_name} cannot be empty")

    if ".." in value:
        raise ValueError(f"{field_name} cannot contain '..' (path traversal)")

    if not SAFE_ID_PATTERN.match(value):
        raise ValueError(
            f"{field_name} contains invalid characters. "
            "Only alphanumeric characters, underscores and hyphens are allowed."
        )

    return value


def is_valid_note_id(value: str) -> bool:
    """Return True if ``value`` would pass :func:`validate_note_id`."""
    try:
        validate_note_id(value)
    except ValueError:
        return False
    return True


def normalize_tag(tag: str) -> str:
    """Normalize one tag: strip, ensure the ``#`` prefix, lowercase.

    Examples:
        "Work" -> "#work"
        "  #Ideas " -> "#ideas"

    Raises:
        ValidationError: If the tag is empty or contains whitespace or a
            second ``#``.
    """
    if not isinstance(tag, str):
        raise ValidationError(
            "Tags must be strings", field="tags", value=tag,
            code=ErrorCode.TAG_INVALID,
        )
    name = tag.strip()
    if name.startswith(TAG_PREFIX):
        name = name[len(TAG_PREFIX):]
    if not name:
        raise ValidationError(
            "Tag cannot be empty", field="tags", value=tag,
            code=ErrorCode.TAG_INVALID,
        )
    if TAG_PREFIX in name or any(c.isspace() for c in name):
        raise ValidationError(
            f"Invalid tag '{tag}': tags cannot contain whitespace or '#'",
            field="tags", value=tag, code=ErrorCode.TAG_INVALID,
        )
    return TAG_PREFIX + name.lower()


def normalize_tags(tags: Optional[Iterable[str]]) -> Tuple[str, ...]:
    """Normalize a tag sequence, dropping duplicates but keeping first-seen order."""
    if not tags:
        return ()
    if isinstance(tags, str):
        tags = [tags]
    seen: Dict[str, None] = {}
    for tag in tags:
        seen.setdefault(normalize_tag(tag), None)
    return tuple(seen)


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(dt_value: datetime.datetime) -> datetime.datetime:
    """Ensure a datetime is timezone-aware, treating naive datetimes as UTC.

    SQLite hands back naive datetimes; every timestamp written by this
    package is UTC.
    """
    if dt_value is None:
        return utc_now()
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value.astimezone(timezone.utc)


def next_timestamp(previous: Optional[datetime.datetime]) -> datetime.datetime:
    """Current UTC time, bumped past ``previous`` when the clock has not moved.

    Keeps ``updated_at`` strictly increasing for a note even when two
    mutations land in the same microsecond or the wall clock steps back.
    """
    now = utc_now()
    if previous is not None and now <= previous:
        return previous + datetime.timedelta(microseconds=1)
    return now


# Thread-safe counter for uniqueness (seeded from PID for cross-process safety)
_id_lock = threading.Lock()
_last_timestamp = 0
_counter = (os.getpid() * 7) % 1_000_000


def generate_id() -> str:
    """Generate a timestamp-based ID with guaranteed uniqueness.

    Returns:
        A string in format "YYYYMMDDTHHMMSSsssssscccccc" where:
        - YYYYMMDD is the date
        - T is the ISO 8601 date/time separator
        - HHMMSS is the time (hours, minutes, seconds)
        - ssssss is the 6-digit microsecond component
        - cccccc is a 6-digit counter for same-microsecond uniqueness
    """
    global _last_timestamp, _counter

    with _id_lock:
        now = utc_now()
        current_timestamp = int(now.timestamp() * 1_000_000)

        if current_timestamp == _last_timestamp:
            _counter += 1
        else:
            _last_timestamp = current_timestamp
            _counter = (os.getpid() * 7) % 1_000_000

        _counter %= 1_000_000

        date_time = now.strftime("%Y%m%dT%H%M%S")
        return f"{date_time}{now.microsecond:06d}{_counter:06d}"


class Note(BaseModel):
    """A user-authored note.

    Instances are frozen snapshots: mutations go through the note service,
    which stores a new snapshot built with ``model_copy``.
    """

    id: str = Field(default_factory=generate_id, description="Unique ID of the note")
    title: str = Field(..., description="Title of the note")
    body: str = Field(default="", description="Rich-text body serialized as markup")
    tags: Tuple[str, ...] = Field(
        default=(), description="Normalized '#tags', first-seen order"
    )
    created_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the note was created (UTC)"
    )
    updated_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the note was last modified (UTC)"
    )

    model_config = {"frozen": True, "extra": "forbid"}

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        """Validate that the ID is safe for filesystem and link use."""
        return validate_note_id(v)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Validate that the title is not empty."""
        if not v.strip():
            raise ValueError("Title cannot be empty")
        return v

    @field_validator("tags", mode="before")
    @classmethod
    def validate_tags(cls, v) -> Tuple[str, ...]:
        return normalize_tags(v)

    @field_validator("created_at", "updated_at")
    @classmethod
    def validate_timestamps(cls, v: datetime.datetime) -> datetime.datetime:
        return ensure_timezone_aware(v)

    @model_validator(mode="after")
    def _check_timestamp_order(self) -> "Note":
        if self.updated_at < self.created_at:
            raise ValueError("updated_at cannot precede created_at")
        return self

    @property
    def plain_text(self) -> str:
        """The body with markup stripped, as used by full-text search."""
        return html_to_text(self.body)

    def has_tag(self, tag: str) -> bool:
        return normalize_tag(tag) in self.tags


@dataclass(frozen=True)
class NotePreview:
    """List-view summary of a note.

    Attributes:
        id: Note identifier.
        title: Note title.
        excerpt: Leading plain text of the body.
        tags: The note's tags.
        updated_at: Last modification time.
    """

    id: str
    title: str
    excerpt: str
    tags: Tuple[str, ...]
    updated_at: datetime.datetime


@dataclass(frozen=True)
class NotesSnapshot:
    """A consistent, immutable view of the store and its derived indexes.

    Taken under the note service's commit lock, so every note in
    ``notes`` is reflected in ``tag_index`` and ``references`` and
    vice versa.

    Attributes:
        notes: Every active note.
        tag_index: Tag -> ids of notes carrying it.
        references: Source id -> ids its body links to.
    """

    notes: Tuple[Note, ...]
    tag_index: Mapping[str, FrozenSet[str]] = field(default_factory=dict)
    references: Mapping[str, FrozenSet[str]] = field(default_factory=dict)

    def by_id(self) -> Dict[str, Note]:
        return {note.id: note for note in self.notes}

    def notes_with_all_tags(self, tags: Iterable[str]) -> List[Note]:
        """Notes that carry every tag in ``tags`` (already normalized)."""
        tags = list(tags)
        if not tags:
            return list(self.notes)
        ids = set(self.tag_index.get(tags[0], frozenset()))
        for tag in tags[1:]:
            ids &= self.tag_index.get(tag, frozenset())
        return [note for note in self.notes if note.id in ids]
