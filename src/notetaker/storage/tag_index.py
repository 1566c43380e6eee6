"""In-memory inverted index from tag to note IDs."""
import logging
import threading
from typing import Dict, FrozenSet, Iterable, Set

from notetaker.models.schema import Note, normalize_tag

logger = logging.getLogger(__name__)


class TagIndex:
    """Inverted index mapping each tag to the IDs of notes carrying it.

    A derived cache of ``Note.tags``: it is never persisted and can be
    rebuilt at any time from a full store scan. Tags whose last note
    goes away are dropped, so ``all_tags()`` only lists tags in use.
    """

    def __init__(self):
        self._index: Dict[str, Set[str]] = {}
        self._lock = threading.RLock()

    def reindex(
        self, note_id: str, old_tags: Iterable[str], new_tags: Iterable[str]
    ) -> None:
        """Move ``note_id`` from its old tag set to its new one.

        The note is removed from tags only in ``old_tags`` and added to
        tags only in ``new_tags``; tags in both are left alone.

        Args:
            note_id: The note being mutated.
            old_tags: Tags the note carried before the mutation.
            new_tags: Tags the note carries after it (empty on delete).
        """
        old = set(old_tags)
        new = set(new_tags)
        with self._lock:
            for tag in old - new:
                ids = self._index.get(tag)
                if ids is None:
                    continue
                ids.discard(note_id)
                if not ids:
                    del self._index[tag]
            for tag in new - old:
                self._index.setdefault(tag, set()).add(note_id)

    def notes_for_tag(self, tag: str) -> FrozenSet[str]:
        """Get the IDs of notes carrying ``tag`` (normalized first)."""
        tag = normalize_tag(tag)
        with self._lock:
            return frozenset(self._index.get(tag, ()))

    def all_tags(self) -> Set[str]:
        """Get every tag carried by at least one note."""
        with self._lock:
            return set(self._index)

    def tags_with_counts(self) -> Dict[str, int]:
        """Get all tags with the number of notes carrying each."""
        with self._lock:
            return {tag: len(ids) for tag, ids in sorted(self._index.items())}

    def snapshot(self) -> Dict[str, FrozenSet[str]]:
        """Copy of the whole index, safe to read without the lock."""
        with self._lock:
            return {tag: frozenset(ids) for tag, ids in self._index.items()}

    def clear(self) -> None:
        with self._lock:
            self._index.clear()

    def rebuild(self, notes: Iterable[Note]) -> int:
        """Replace the index contents with the tags of ``notes``.

        Returns:
            Number of notes indexed.
        """
        fresh: Dict[str, Set[str]] = {}
        count = 0
        for note in notes:
            for tag in note.tags:
                fresh.setdefault(tag, set()).add(note.id)
            count += 1
        with self._lock:
            self._index = fresh
        logger.debug(f"Tag index rebuilt: {len(fresh)} tags over {count} notes")
        return count
