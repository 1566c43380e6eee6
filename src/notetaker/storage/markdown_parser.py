"""Markdown parsing and serialization for notes.

Handles conversion between Note domain objects and markdown files
with YAML frontmatter. Kept separate from MarkdownNoteStore so the
format is independently testable.
"""
import datetime
import logging
import re
from typing import Any, Dict

import frontmatter

from notetaker.models.schema import Note, ensure_timezone_aware, utc_now

logger = logging.getLogger(__name__)

# Opening delimiter line, frontmatter, closing delimiter line. The body is
# everything after the closing line, byte for byte.
_FRONTMATTER_RE = re.compile(
    r"\A---[ \t]*\r?\n(.*?)^---[ \t]*(?:\r?\n|\Z)", re.DOTALL | re.MULTILINE
)


class MarkdownParser:
    """Parses and serializes notes as markdown with frontmatter.

    The body is stored verbatim after the frontmatter block and a blank
    separator line; id, title, tags and timestamps live in the frontmatter.
    The body is cut out of the raw text rather than read from
    ``post.content``, which python-frontmatter returns stripped.
    """

    def parse_note(self, content: str) -> Note:
        """Parse a note from markdown content with YAML frontmatter.

        Args:
            content: Raw markdown string with ``---`` frontmatter delimiters.

        Returns:
            A fully populated Note.

        Raises:
            ValueError: If required fields (id, title) are missing.
        """
        post = frontmatter.loads(content)
        metadata = post.metadata

        note_id = metadata.get("id")
        if not note_id:
            raise ValueError("Note ID missing from frontmatter")

        title = metadata.get("title")
        if not title:
            raise ValueError(f"Note title missing from frontmatter of {note_id}")

        tags_value = metadata.get("tags", [])
        if isinstance(tags_value, str):
            tag_names = [t.strip() for t in tags_value.split(",") if t.strip()]
        elif isinstance(tags_value, list):
            tag_names = [str(t).strip() for t in tags_value if str(t).strip()]
        else:
            logger.warning(f"Ignoring malformed tags in note {note_id}: {tags_value!r}")
            tag_names = []

        created_at = self._parse_timestamp(metadata.get("created"))
        updated_value = metadata.get("updated")
        updated_at = (
            self._parse_timestamp(updated_value) if updated_value else created_at
        )

        return Note(
            id=str(note_id),
            title=str(title),
            body=self._extract_body(content),
            tags=tag_names,
            created_at=created_at,
            updated_at=updated_at,
        )

    def render_to_markdown(self, note: Note) -> str:
        """Convert a Note to markdown with frontmatter.

        Args:
            note: The note to serialize.

        Returns:
            Markdown string with YAML frontmatter.
        """
        metadata: Dict[str, Any] = {
            "id": note.id,
            "title": note.title,
            "tags": list(note.tags),
            "created": note.created_at.isoformat(),
            "updated": note.updated_at.isoformat(),
        }
        header = frontmatter.YAMLHandler().export(metadata)
        return f"---\n{header}\n---\n\n{note.body}"

    @staticmethod
    def _extract_body(content: str) -> str:
        match = _FRONTMATTER_RE.match(content)
        if match is None:
            return content
        body = content[match.end():]
        # Drop the one separator line written by render_to_markdown
        if body.startswith("\r\n"):
            return body[2:]
        if body.startswith("\n"):
            return body[1:]
        return body

    @staticmethod
    def _parse_timestamp(value: Any) -> datetime.datetime:
        # PyYAML turns unquoted ISO timestamps into datetimes already
        if isinstance(value, datetime.datetime):
            return ensure_timezone_aware(value)
        if value:
            return ensure_timezone_aware(datetime.datetime.fromisoformat(str(value)))
        return utc_now()
