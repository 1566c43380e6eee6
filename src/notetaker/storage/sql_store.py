"""SQLite-backed note store."""
import logging
import threading
from datetime import timezone
from typing import Any, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from notetaker.exceptions import ErrorCode, StorageError
from notetaker.models.db_models import DBNote, get_session_factory, init_db
from notetaker.models.schema import Note, ensure_timezone_aware
from notetaker.storage.base import Repository, resolve_put

logger = logging.getLogger(__name__)


def _to_naive_utc(value):
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class SqlNoteStore(Repository[Note]):
    """Note store keeping one row per note in SQLite.

    All access goes through one lock: the in-memory database shares a
    single connection, and put's read-compare-write must be atomic.
    """

    def __init__(self, engine: Optional[Any] = None):
        """Initialize the store.

        Args:
            engine: Pre-configured SQLAlchemy engine. When None, one is
                created from config with ``init_db()``.
        """
        self.engine = engine if engine is not None else init_db()
        self.session_factory = get_session_factory(self.engine)
        self._lock = threading.RLock()

    @staticmethod
    def _db_note_to_model(db_note: DBNote) -> Note:
        return Note(
            id=db_note.id,
            title=db_note.title,
            body=db_note.body or "",
            tags=tuple(db_note.tags or ()),
            created_at=ensure_timezone_aware(db_note.created_at),
            updated_at=ensure_timezone_aware(db_note.updated_at),
        )

    def put(self, note: Note) -> Note:
        with self._lock:
            try:
                with self.session_factory() as session:
                    db_note = session.get(DBNote, note.id)
                    existing = self._db_note_to_model(db_note) if db_note else None
                    winner = resolve_put(existing, note)
                    if winner is None:
                        return existing
                    if db_note is None:
                        db_note = DBNote(id=winner.id)
                        session.add(db_note)
                    db_note.title = winner.title
                    db_note.body = winner.body
                    db_note.tags = list(winner.tags)
                    db_note.created_at = _to_naive_utc(winner.created_at)
                    db_note.updated_at = _to_naive_utc(winner.updated_at)
                    session.commit()
                    return winner
            except SQLAlchemyError as e:
                raise StorageError(
                    f"Failed to write note {note.id}",
                    operation="put",
                    code=ErrorCode.STORAGE_WRITE_FAILED,
                    original_error=e,
                ) from e

    def get(self, id: str) -> Optional[Note]:
        with self._lock:
            try:
                with self.session_factory() as session:
                    db_note = session.get(DBNote, id)
                    return self._db_note_to_model(db_note) if db_note else None
            except SQLAlchemyError as e:
                raise StorageError(
                    f"Failed to read note {id}", operation="get", original_error=e
                ) from e

    def delete(self, id: str) -> bool:
        with self._lock:
            try:
                with self.session_factory() as session:
                    db_note = session.get(DBNote, id)
                    if db_note is None:
                        return False
                    session.delete(db_note)
                    session.commit()
                    return True
            except SQLAlchemyError as e:
                raise StorageError(
                    f"Failed to delete note {id}",
                    operation="delete",
                    code=ErrorCode.STORAGE_DELETE_FAILED,
                    original_error=e,
                ) from e

    def list(self) -> List[Note]:
        with self._lock:
            try:
                with self.session_factory() as session:
                    db_notes = session.scalars(
                        select(DBNote).order_by(DBNote.id)
                    ).all()
                    return [self._db_note_to_model(n) for n in db_notes]
            except SQLAlchemyError as e:
                raise StorageError(
                    "Failed to list notes", operation="list", original_error=e
                ) from e

    def count(self) -> int:
        with self._lock:
            with self.session_factory() as session:
                return session.scalar(select(func.count(DBNote.id))) or 0
