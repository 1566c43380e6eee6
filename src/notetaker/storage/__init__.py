"""Storage layer for the Notetaker core."""
import logging
from typing import Optional

from notetaker.config import NotetakerConfig, config
from notetaker.exceptions import ConfigurationError
from notetaker.models.db_models import init_db
from notetaker.models.schema import Note
from notetaker.storage.base import Repository
from notetaker.storage.markdown_store import MarkdownNoteStore
from notetaker.storage.reference_graph import ReferenceGraph, extract_references
from notetaker.storage.sql_store import SqlNoteStore
from notetaker.storage.tag_index import TagIndex

logger = logging.getLogger(__name__)


def create_store(cfg: Optional[NotetakerConfig] = None) -> Repository[Note]:
    """Build the note store selected by ``cfg.storage_backend``."""
    cfg = cfg or config
    if cfg.storage_backend == "sqlite":
        logger.info(f"Using SQLite note store: {cfg.get_db_url()}")
        return SqlNoteStore(engine=init_db(cfg.get_db_url()))
    if cfg.storage_backend == "markdown":
        notes_dir = cfg.get_notes_dir()
        logger.info(f"Using markdown note store: {notes_dir}")
        return MarkdownNoteStore(notes_dir)
    raise ConfigurationError(
        f"Unknown storage backend '{cfg.storage_backend}'",
        config_key="storage_backend",
    )


__all__ = [
    "Repository",
    "SqlNoteStore",
    "MarkdownNoteStore",
    "TagIndex",
    "ReferenceGraph",
    "extract_references",
    "create_store",
]
