"""Service layer for note operations.

NoteService is the only writer of notes. Every mutation updates the
store, the tag index and the reference graph together, so callers and
readers always observe the three in agreement.
"""

import logging
import threading
import weakref
from typing import Dict, Iterable, List, Optional, Set, Tuple

from notetaker.config import NotetakerConfig, config
from notetaker.exceptions import (
    ConsistencyError,
    ErrorCode,
    NoteNotFoundError,
    ValidationError,
)
from notetaker.models.schema import (
    Note,
    NotesSnapshot,
    generate_id,
    is_valid_note_id,
    next_timestamp,
    normalize_tags,
    validate_note_id,
)
from notetaker.observability import traced
from notetaker.storage import create_store
from notetaker.storage.base import Repository
from notetaker.storage.reference_graph import ReferenceGraph, extract_references
from notetaker.storage.tag_index import TagIndex

logger = logging.getLogger(__name__)


def sort_by_recency(notes: Iterable[Note]) -> List[Note]:
    """Order notes by updated_at descending, ties broken by ID ascending."""
    ordered = sorted(notes, key=lambda n: n.id)
    ordered.sort(key=lambda n: n.updated_at, reverse=True)
    return ordered


class NoteService:
    """Service for creating, editing, deleting and reading notes."""

    def __init__(
        self,
        store: Optional[Repository[Note]] = None,
        tag_index: Optional[TagIndex] = None,
        reference_graph: Optional[ReferenceGraph] = None,
        settings: Optional[NotetakerConfig] = None,
    ):
        """Initialize the service and rebuild the derived indexes.

        Args:
            store: Note storage backend. Built from config if None.
            tag_index: Tag index to maintain. A fresh one if None.
            reference_graph: Reference graph to maintain. A fresh one if None.
            settings: Limits and options. Defaults to the global config.
        """
        self.settings = settings or config
        self.store = store if store is not None else create_store(self.settings)
        self.tag_index = tag_index if tag_index is not None else TagIndex()
        self.reference_graph = (
            reference_graph if reference_graph is not None else ReferenceGraph()
        )

        # Per-note locks serialize mutations of one ID; the commit lock makes
        # store + index + graph updates a single step for readers.
        self._note_locks: weakref.WeakValueDictionary[str, threading.RLock] = (
            weakref.WeakValueDictionary()
        )
        self._note_locks_lock = threading.Lock()
        self._commit_lock = threading.RLock()
        # IDs of deleted notes; they are never handed out again
        self._deleted_ids: Set[str] = set()

        self.rebuild_index()

    def _get_note_lock(self, note_id: str) -> threading.RLock:
        """Get or create the lock for a specific note.

        Uses WeakValueDictionary so locks are garbage collected when no
        longer held.
        """
        with self._note_locks_lock:
            lock = self._note_locks.get(note_id)
            if lock is None:
                lock = threading.RLock()
                self._note_locks[note_id] = lock
            return lock

    # =========================================================================
    # Validation
    # =========================================================================

    def _validate_title(self, title: str) -> str:
        if title is None or not str(title).strip():
            raise ValidationError(
                "Title is required", field="title", code=ErrorCode.NOTE_TITLE_REQUIRED
            )
        if len(title) > self.settings.max_title_length:
            raise ValidationError(
                f"Title exceeds maximum length of {self.settings.max_title_length} characters",
                field="title",
            )
        return title

    def _validate_body(self, body: str) -> str:
        if body is None:
            return ""
        if len(body) > self.settings.max_body_length:
            raise ValidationError(
                f"Body exceeds maximum length of {self.settings.max_body_length} characters",
                field="body",
            )
        return body

    def _validate_tags(self, tags: Optional[Iterable[str]]) -> Tuple[str, ...]:
        normalized = normalize_tags(tags)
        if len(normalized) > self.settings.max_tags_per_note:
            raise ValidationError(
                f"A note can carry at most {self.settings.max_tags_per_note} tags",
                field="tags",
                value=len(normalized),
                code=ErrorCode.TOO_MANY_TAGS,
            )
        return normalized

    def _validate_new_id(self, note_id: str) -> str:
        try:
            validate_note_id(note_id)
        except ValueError as e:
            raise ValidationError(
                str(e), field="note_id", value=note_id, code=ErrorCode.INVALID_NOTE_ID
            ) from e
        if note_id in self._deleted_ids or self.store.get(note_id) is not None:
            raise ValidationError(
                f"Note ID '{note_id}' is already in use",
                field="note_id",
                value=note_id,
                code=ErrorCode.NOTE_ALREADY_EXISTS,
            )
        return note_id

    def _require(self, note_id: str) -> Note:
        if not is_valid_note_id(note_id):
            raise NoteNotFoundError(note_id)
        note = self.store.get(note_id)
        if note is None:
            raise NoteNotFoundError(note_id)
        return note

    # =========================================================================
    # Commit path
    # =========================================================================

    def _commit(self, note: Note, old_tags: Tuple[str, ...]) -> Note:
        """Write ``note`` to the store and bring both derived structures along.

        A store failure propagates with nothing applied. A failure while
        updating the derived structures is logged as a ConsistencyError and
        repaired by rebuilding them from the store.
        """
        with self._commit_lock:
            stored = self.store.put(note)
            try:
                self.tag_index.reindex(stored.id, old_tags, stored.tags)
                self.reference_graph.update_edges(
                    stored.id, extract_references(stored.body)
                )
            except Exception as e:
                error = ConsistencyError(
                    "Derived index update failed",
                    note_id=stored.id,
                    original_error=e,
                )
                logger.error(f"{error}; rebuilding from store", exc_info=True)
                self._rebuild_locked()
            return stored

    # =========================================================================
    # Contract operations
    # =========================================================================

    @traced("create_note")
    def create_note(
        self,
        title: str,
        body: str = "",
        tags: Optional[Iterable[str]] = None,
        note_id: Optional[str] = None,
    ) -> Note:
        """Create a new note.

        Args:
            title: Non-empty title.
            body: Rich-text body; ``[[id]]`` markers become references.
            tags: Tags, normalized to lowercase ``#tag`` form.
            note_id: Optional caller-chosen ID. Generated if omitted.

        Returns:
            The stored note, with ``created_at == updated_at``.

        Raises:
            ValidationError: On empty title, bad tags or an unusable ID.
        """
        title = self._validate_title(title)
        body = self._validate_body(body)
        normalized_tags = self._validate_tags(tags)

        new_id = note_id if note_id is not None else generate_id()
        with self._get_note_lock(new_id):
            if note_id is not None:
                self._validate_new_id(note_id)
            now = next_timestamp(None)
            note = Note(
                id=new_id,
                title=title,
                body=body,
                tags=normalized_tags,
                created_at=now,
                updated_at=now,
            )
            stored = self._commit(note, old_tags=())
            logger.info(f"Created note {stored.id} ({len(stored.tags)} tags)")
            return stored

    @traced("update_note")
    def update_note(
        self,
        note_id: str,
        title: Optional[str] = None,
        body: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
    ) -> Note:
        """Apply a partial update to an active note.

        Fields left as None keep their value; ``tags=[]`` clears the tags.

        Returns:
            The updated note. Its ``updated_at`` is later than before and
            ``created_at`` is unchanged.

        Raises:
            NoteNotFoundError: If the note is not active.
            ValidationError: If no field is given or a field is invalid.
        """
        if title is None and body is None and tags is None:
            raise ValidationError("Update requires at least one of title, body or tags")

        changes: Dict[str, object] = {}
        if title is not None:
            changes["title"] = self._validate_title(title)
        if body is not None:
            changes["body"] = self._validate_body(body)
        if tags is not None:
            changes["tags"] = self._validate_tags(tags)

        with self._get_note_lock(note_id):
            existing = self._require(note_id)
            changes["updated_at"] = next_timestamp(existing.updated_at)
            updated = existing.model_copy(update=changes)
            stored = self._commit(updated, old_tags=existing.tags)
            logger.debug(f"Updated note {note_id}: {sorted(k for k in changes if k != 'updated_at')}")
            return stored

    @traced("delete_note")
    def delete_note(self, note_id: str) -> None:
        """Delete an active note.

        The note leaves the store and the tag index and loses its outgoing
        references. References other notes hold to it stay in place and
        become dangling.

        Raises:
            NoteNotFoundError: If the note is not active.
        """
        with self._get_note_lock(note_id):
            existing = self._require(note_id)
            with self._commit_lock:
                if not self.store.delete(note_id):
                    raise NoteNotFoundError(note_id)
                self._deleted_ids.add(note_id)
                try:
                    self.tag_index.reindex(note_id, existing.tags, ())
                    self.reference_graph.update_edges(note_id, ())
                except Exception as e:
                    error = ConsistencyError(
                        "Derived index purge failed", note_id=note_id, original_error=e
                    )
                    logger.error(f"{error}; rebuilding from store", exc_info=True)
                    self._rebuild_locked()
            logger.info(f"Deleted note {note_id}")

    def get_note(self, note_id: str) -> Note:
        """Get an active note.

        Raises:
            NoteNotFoundError: If the note is not active.
        """
        return self._require(note_id)

    @traced("list_notes")
    def list_notes(self) -> List[Note]:
        """All active notes, most recently updated first."""
        with self._commit_lock:
            notes = self.store.list()
        return sort_by_recency(notes)

    def backlinks_for(self, note_id: str) -> List[str]:
        """IDs of notes whose bodies reference ``note_id``, sorted.

        Works for IDs that do not exist (yet): references to a missing
        note are kept and resolve once it is created.
        """
        return sorted(self.reference_graph.backlinks(note_id))

    def outgoing_references(self, note_id: str) -> List[str]:
        """IDs referenced by the body of an active note, sorted.

        Raises:
            NoteNotFoundError: If the note is not active.
        """
        self._require(note_id)
        return sorted(self.reference_graph.outgoing(note_id))

    def get_all_tags(self) -> List[str]:
        return sorted(self.tag_index.all_tags())

    def snapshot(self) -> NotesSnapshot:
        """Take a consistent snapshot of notes, tags and references."""
        with self._commit_lock:
            return NotesSnapshot(
                notes=tuple(self.store.list()),
                tag_index=self.tag_index.snapshot(),
                references=self.reference_graph.snapshot(),
            )

    # =========================================================================
    # Recovery
    # =========================================================================

    def _rebuild_locked(self) -> Tuple[int, int]:
        notes = self.store.list()
        note_count = self.tag_index.rebuild(notes)
        edge_count = self.reference_graph.rebuild(notes)
        return note_count, edge_count

    def rebuild_index(self) -> Dict[str, int]:
        """Discard the tag index and reference graph and rebuild them from the store.

        Returns:
            Counts of notes, tags and references after the rebuild.
        """
        with self._commit_lock:
            note_count, edge_count = self._rebuild_locked()
            tag_count = len(self.tag_index.all_tags())
        logger.info(
            f"Index rebuilt: {note_count} notes, {tag_count} tags, {edge_count} references"
        )
        return {"notes": note_count, "tags": tag_count, "references": edge_count}

    def check_consistency(self) -> bool:
        """Compare the derived structures with a fresh scan of the store.

        Any disagreement is logged as a ConsistencyError and repaired by
        swapping in the freshly built structures.

        Returns:
            True if a repair was needed, False if everything agreed.
        """
        with self._commit_lock:
            notes = self.store.list()
            fresh_tags = TagIndex()
            fresh_tags.rebuild(notes)
            fresh_graph = ReferenceGraph()
            fresh_graph.rebuild(notes)

            mismatched = []
            if fresh_tags.snapshot() != self.tag_index.snapshot():
                mismatched.append("tag_index")
            if fresh_graph.snapshot() != self.reference_graph.snapshot():
                mismatched.append("reference_graph")
            if not mismatched:
                return False

            for structure in mismatched:
                error = ConsistencyError(
                    "Derived structure disagrees with store", structure=structure
                )
                logger.warning(f"{error}; rebuilding")
            self._rebuild_locked()
            return True
