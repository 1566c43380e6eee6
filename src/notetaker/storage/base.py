"""Base repository interface for note storage."""
import logging
from abc import ABC, abstractmethod
from typing import Generic, List, Optional, TypeVar

from notetaker.models.schema import Note

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Repository(ABC, Generic[T]):
    """Keyed storage for records of type T.

    Implementations must make ``put`` all-or-nothing and serialize
    concurrent writes to the same key.
    """

    @abstractmethod
    def put(self, item: T) -> T:
        """Insert or overwrite a record. Returns the record now stored."""

    @abstractmethod
    def get(self, id: str) -> Optional[T]:
        """Get a record by ID, or None if it does not exist."""

    @abstractmethod
    def delete(self, id: str) -> bool:
        """Delete a record. Returns False if it did not exist."""

    @abstractmethod
    def list(self) -> List[T]:
        """Return every stored record."""

    @abstractmethod
    def count(self) -> int:
        """Return the number of stored records."""


def resolve_put(existing: Optional[Note], incoming: Note) -> Optional[Note]:
    """Decide what a ``put`` of ``incoming`` over ``existing`` should store.

    The write with the later ``updated_at`` wins, independent of the order
    the writes arrived in; on equal timestamps the incoming write wins.
    The original ``created_at`` always survives an overwrite.

    Returns:
        The note to store, or None when ``incoming`` is stale and must be
        discarded.
    """
    if existing is None:
        return incoming
    if incoming.updated_at < existing.updated_at:
        logger.debug(
            f"Discarding stale write for note {incoming.id}: "
            f"{incoming.updated_at.isoformat()} < {existing.updated_at.isoformat()}"
        )
        return None
    if incoming.created_at != existing.created_at:
        return incoming.model_copy(update={"created_at": existing.created_at})
    return incoming
