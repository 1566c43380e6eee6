"""Common test fixtures for the Notetaker core."""

import tempfile
from pathlib import Path

import pytest

from notetaker.config import config
from notetaker.models.db_models import init_db
from notetaker.services.note_service import NoteService
from notetaker.services.search_service import SearchService
from notetaker.storage.markdown_store import MarkdownNoteStore
from notetaker.storage.sql_store import SqlNoteStore


@pytest.fixture
def temp_dirs():
    """Create temporary directories for notes and database."""
    with tempfile.TemporaryDirectory() as notes_dir:
        with tempfile.TemporaryDirectory() as db_dir:
            yield Path(notes_dir), Path(db_dir)


@pytest.fixture
def test_config(temp_dirs, monkeypatch):
    """Configure with test paths (auto-restored even on crash)."""
    notes_dir, db_dir = temp_dirs
    monkeypatch.setattr(config, "notes_dir", notes_dir)
    monkeypatch.setattr(config, "database_path", db_dir / "test_notetaker.db")
    monkeypatch.setattr(config, "in_memory_db", True)
    monkeypatch.setattr(config, "storage_backend", "sqlite")
    monkeypatch.setattr(config, "metrics_file", db_dir / "metrics.json")
    yield config


@pytest.fixture
def note_store(test_config):
    """An in-memory SQLite note store."""
    yield SqlNoteStore(engine=init_db("sqlite://"))


@pytest.fixture
def markdown_store(test_config):
    """A markdown note store in a temporary directory."""
    yield MarkdownNoteStore(test_config.notes_dir)


@pytest.fixture(params=["sqlite", "markdown"])
def any_store(request, test_config):
    """Each store backend in turn."""
    if request.param == "sqlite":
        yield SqlNoteStore(engine=init_db("sqlite://"))
    else:
        yield MarkdownNoteStore(test_config.notes_dir)


@pytest.fixture
def note_service(note_store):
    """Create a test NoteService."""
    yield NoteService(store=note_store)


@pytest.fixture
def search_service(note_service):
    """Create a test SearchService."""
    yield SearchService(note_service)
