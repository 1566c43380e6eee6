"""Service for searching and discovering notes."""

from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, List, Optional, Set

from notetaker.exceptions import ErrorCode, SearchError
from notetaker.models.schema import Note, NotePreview, NotesSnapshot, normalize_tags
from notetaker.observability import timed_operation
from notetaker.services.note_service import NoteService, sort_by_recency
from notetaker.utils import make_excerpt

logger = logging.getLogger(__name__)


class SearchService:
    """Full-text and tag-filtered search over consistent snapshots."""

    def __init__(self, note_service: Optional[NoteService] = None):
        """Initialize the search service.

        Args:
            note_service: Source of snapshots. Created with defaults if None.
        """
        self.note_service = note_service or NoteService()

    def search(
        self,
        text: str = "",
        tags: Optional[Iterable[str]] = None,
        cancel_event: Optional[threading.Event] = None,
        limit: Optional[int] = None,
    ) -> List[Note]:
        """Search notes by text and tags.

        With no text, ``tags`` is a strict filter: only notes carrying every
        tag are returned, most recently updated first. With text, every
        whitespace-separated term must occur (case-insensitively) in the
        title, the plain-text body or the tags, and when ``tags`` is given a
        note must carry at least one of them. Text results rank exact title
        matches first, then notes carrying more of ``tags``, then the most
        recently updated, then by ID.

        Args:
            text: Query text. Blank means "no text constraint".
            tags: Tag filter, normalized like note tags.
            cancel_event: When set between pages of the scan, the search
                stops with a SearchError.
            limit: Maximum number of notes to return.

        Returns:
            Matching notes in rank order.

        Raises:
            ValidationError: If a tag in ``tags`` is malformed.
            SearchError: If the search was cancelled.
        """
        tag_filter = normalize_tags(tags)
        query = (text or "").strip()

        with timed_operation("search", query=query[:30], tags=len(tag_filter)) as op:
            snapshot = self.note_service.snapshot()

            if not query:
                results = sort_by_recency(snapshot.notes_with_all_tags(tag_filter))
            else:
                results = self._text_search(snapshot, query, tag_filter, cancel_event)

            if limit is not None:
                results = results[:limit]
            op["result_count"] = len(results)
            return results

    def _text_search(
        self,
        snapshot: NotesSnapshot,
        query: str,
        tag_filter: tuple,
        cancel_event: Optional[threading.Event],
    ) -> List[Note]:
        terms = query.lower().split()
        query_lower = query.lower()
        filter_set = set(tag_filter)
        page_size = self.note_service.settings.search_page_size

        tag_hits: Dict[str, int] = {}
        matched: List[Note] = []
        notes = snapshot.notes
        for start in range(0, len(notes), page_size):
            if cancel_event is not None and cancel_event.is_set():
                logger.info(f"Search cancelled after scanning {start} notes")
                raise SearchError(
                    "Search cancelled", query=query, code=ErrorCode.SEARCH_CANCELLED
                )
            for note in notes[start : start + page_size]:
                hits = len(filter_set.intersection(note.tags))
                if filter_set and hits == 0:
                    continue
                haystack = " ".join(
                    (note.title, note.plain_text, " ".join(note.tags))
                ).lower()
                if all(term in haystack for term in terms):
                    matched.append(note)
                    tag_hits[note.id] = hits

        ranked = sort_by_recency(matched)
        ranked.sort(
            key=lambda n: (n.title.strip().lower() != query_lower, -tag_hits[n.id])
        )
        return ranked

    def notes_by_tag(self, tag: str) -> List[Note]:
        """Notes carrying ``tag``, most recently updated first."""
        return self.search("", [tag])

    def tags_with_counts(self) -> Dict[str, int]:
        """Tags in use with the number of notes carrying each."""
        return dict(sorted(
            (tag, len(ids)) for tag, ids in self.note_service.snapshot().tag_index.items()
        ))

    def recent_notes(self, limit: int = 10) -> List[Note]:
        """The ``limit`` most recently updated notes."""
        return self.search("", limit=limit)

    def previews(self, notes: Iterable[Note]) -> List[NotePreview]:
        """List-view summaries: title, plain-text excerpt, tags, update time."""
        excerpt_length = self.note_service.settings.excerpt_length
        return [
            NotePreview(
                id=note.id,
                title=note.title,
                excerpt=make_excerpt(note.plain_text, excerpt_length),
                tags=note.tags,
                updated_at=note.updated_at,
            )
            for note in notes
        ]

    def find_orphaned_notes(self) -> List[Note]:
        """Notes that reference nothing and that nothing references."""
        snapshot = self.note_service.snapshot()
        linked: Set[str] = set()
        for source, targets in snapshot.references.items():
            linked.add(source)
            linked.update(targets)
        return sort_by_recency(n for n in snapshot.notes if n.id not in linked)

    def find_dangling_references(self) -> Dict[str, List[str]]:
        """Map each note ID to the referenced IDs that have no note yet."""
        snapshot = self.note_service.snapshot()
        existing = {note.id for note in snapshot.notes}
        result = {}
        for source, targets in sorted(snapshot.references.items()):
            missing = sorted(t for t in targets if t not in existing)
            if missing:
                result[source] = missing
        return result
