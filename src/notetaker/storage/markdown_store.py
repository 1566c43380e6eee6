"""Markdown-file note store."""
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import List, Optional

import yaml

from notetaker.exceptions import ErrorCode, NotetakerError, StorageError
from notetaker.models.schema import Note, validate_note_id
from notetaker.storage.base import Repository, resolve_put
from notetaker.storage.markdown_parser import MarkdownParser

logger = logging.getLogger(__name__)


class MarkdownNoteStore(Repository[Note]):
    """Note store keeping one ``<id>.md`` file per note.

    Files carry YAML frontmatter and are human-editable. Writes go to a
    temporary file in the same directory and are renamed into place, so
    a reader never sees a half-written note.
    """

    def __init__(self, notes_dir: Path, parser: Optional[MarkdownParser] = None):
        """Initialize the store.

        Args:
            notes_dir: Directory holding the note files. Created if missing.
            parser: Markdown parser; a default one is created if None.
        """
        self.notes_dir = Path(notes_dir)
        self.notes_dir.mkdir(parents=True, exist_ok=True)
        self.parser = parser or MarkdownParser()
        self._lock = threading.RLock()

    def _path_for(self, note_id: str) -> Path:
        # Validate ID to prevent path traversal
        validate_note_id(note_id)
        return self.notes_dir / f"{note_id}.md"

    def _read(self, path: Path) -> Note:
        with open(path, "r", encoding="utf-8", newline="") as f:
            return self.parser.parse_note(f.read())

    def put(self, note: Note) -> Note:
        file_path = self._path_for(note.id)
        with self._lock:
            existing = self.get(note.id)
            winner = resolve_put(existing, note)
            if winner is None:
                return existing
            markdown = self.parser.render_to_markdown(winner)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.notes_dir, prefix=f".{winner.id}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                    f.write(markdown)
                os.replace(tmp_name, file_path)
            except OSError as e:
                if os.path.exists(tmp_name):
                    os.remove(tmp_name)
                raise StorageError(
                    f"Failed to write note {note.id}",
                    operation="put",
                    path=str(file_path),
                    code=ErrorCode.STORAGE_WRITE_FAILED,
                    original_error=e,
                ) from e
            return winner

    def get(self, id: str) -> Optional[Note]:
        file_path = self._path_for(id)
        with self._lock:
            if not file_path.exists():
                return None
            try:
                return self._read(file_path)
            except (OSError, ValueError, yaml.YAMLError, NotetakerError) as e:
                raise StorageError(
                    f"Failed to read note {id}",
                    operation="get",
                    path=f"{id}.md",
                    original_error=e,
                ) from e

    def delete(self, id: str) -> bool:
        file_path = self._path_for(id)
        with self._lock:
            if not file_path.exists():
                return False
            try:
                os.remove(file_path)
            except OSError as e:
                raise StorageError(
                    f"Failed to delete note {id}",
                    operation="delete",
                    path=f"{id}.md",
                    code=ErrorCode.STORAGE_DELETE_FAILED,
                    original_error=e,
                ) from e
            return True

    def list(self) -> List[Note]:
        """Read every note file.

        Files that fail to parse are logged and skipped so one bad file
        cannot hide the rest of the notes.
        """
        notes: List[Note] = []
        failed_files: List[str] = []
        with self._lock:
            for file_path in sorted(self.notes_dir.glob("*.md")):
                try:
                    notes.append(self._read(file_path))
                except OSError as e:
                    logger.error(f"Cannot read file {file_path.name}: {e}")
                    failed_files.append(file_path.name)
                except (ValueError, yaml.YAMLError, NotetakerError) as e:
                    logger.error(f"Invalid note format in {file_path.name}: {e}")
                    failed_files.append(file_path.name)

        if failed_files:
            logger.warning(
                f"Skipped {len(failed_files)} unreadable note files: "
                f"{failed_files[:5]}{'...' if len(failed_files) > 5 else ''}"
            )
        return notes

    def count(self) -> int:
        with self._lock:
            return sum(1 for _ in self.notes_dir.glob("*.md"))
