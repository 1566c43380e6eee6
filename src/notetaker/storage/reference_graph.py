"""Directed graph of note references extracted from note bodies."""
import logging
import re
import threading
from typing import Dict, FrozenSet, Iterable, Set

from notetaker.models.schema import Note, is_valid_note_id

logger = logging.getLogger(__name__)

REFERENCE_RE = re.compile(r"\[\[([^\[\]]+)\]\]")

# Everything after one of these inside [[...]] is display text or a
# heading/block anchor, not part of the target ID.
_TARGET_TERMINATORS = ("|", "#", "^")


def extract_references(body: str) -> Set[str]:
    """Extract the IDs referenced by ``[[note-id]]`` markers in a body.

    Aliased and anchored forms resolve to their target ID::

        [[20240101T120000]]             -> "20240101T120000"
        [[project-plan|the plan]]       -> "project-plan"
        [[project-plan#Milestones]]     -> "project-plan"

    Markers whose target is not a valid note ID are ignored.

    Args:
        body: Note body (markup or plain text).

    Returns:
        Referenced IDs, duplicates removed.
    """
    targets: Set[str] = set()
    for match in REFERENCE_RE.finditer(body or ""):
        target = match.group(1)
        for terminator in _TARGET_TERMINATORS:
            target = target.split(terminator, 1)[0]
        target = target.strip()
        if not target:
            continue
        if not is_valid_note_id(target):
            logger.debug(f"Ignoring reference to invalid note ID: {target!r}")
            continue
        targets.add(target)
    return targets


class ReferenceGraph:
    """Directed graph of references between notes.

    Stores each source's outgoing edge set plus the inverse (incoming)
    map for backlink lookups. Targets need not exist: a dangling edge is
    kept as-is and starts resolving as soon as a note with that ID is
    created. A derived cache, rebuildable from the store.
    """

    def __init__(self):
        self._outgoing: Dict[str, FrozenSet[str]] = {}
        self._incoming: Dict[str, Set[str]] = {}
        self._lock = threading.RLock()

    def update_edges(self, note_id: str, targets: Iterable[str]) -> None:
        """Replace the outgoing edges of ``note_id`` with ``targets``.

        Passing no targets removes the note as a source entirely; edges
        other notes hold towards it are not touched.
        """
        new = frozenset(targets)
        with self._lock:
            old = self._outgoing.get(note_id, frozenset())
            for target in old - new:
                sources = self._incoming.get(target)
                if sources is None:
                    continue
                sources.discard(note_id)
                if not sources:
                    del self._incoming[target]
            for target in new - old:
                self._incoming.setdefault(target, set()).add(note_id)
            if new:
                self._outgoing[note_id] = new
            else:
                self._outgoing.pop(note_id, None)

    def backlinks(self, note_id: str) -> FrozenSet[str]:
        """IDs of notes whose bodies reference ``note_id``."""
        with self._lock:
            return frozenset(self._incoming.get(note_id, ()))

    def outgoing(self, note_id: str) -> FrozenSet[str]:
        """IDs referenced by the body of ``note_id``."""
        with self._lock:
            return self._outgoing.get(note_id, frozenset())

    def snapshot(self) -> Dict[str, FrozenSet[str]]:
        """Copy of the outgoing edge map, safe to read without the lock."""
        with self._lock:
            return dict(self._outgoing)

    def clear(self) -> None:
        with self._lock:
            self._outgoing.clear()
            self._incoming.clear()

    def rebuild(self, notes: Iterable[Note]) -> int:
        """Replace the graph with the references found in ``notes``.

        Returns:
            Number of edges in the rebuilt graph.
        """
        outgoing: Dict[str, FrozenSet[str]] = {}
        incoming: Dict[str, Set[str]] = {}
        edges = 0
        for note in notes:
            targets = frozenset(extract_references(note.body))
            if not targets:
                continue
            outgoing[note.id] = targets
            for target in targets:
                incoming.setdefault(target, set()).add(note.id)
            edges += len(targets)
        with self._lock:
            self._outgoing = outgoing
            self._incoming = incoming
        logger.debug(f"Reference graph rebuilt: {edges} edges from {len(outgoing)} notes")
        return edges
