"""Tests for the SearchService class."""
import threading

import pytest

from notetaker.config import NotetakerConfig
from notetaker.exceptions import ErrorCode, SearchError, ValidationError
from notetaker.services.note_service import NoteService
from notetaker.services.search_service import SearchService


class CancelAfter(threading.Event):
    """An event that reports itself set once it has been checked ``checks`` times."""

    def __init__(self, checks):
        super().__init__()
        self.checks = checks

    def is_set(self):
        self.checks -= 1
        return self.checks < 0


@pytest.fixture
def populated(note_service):
    """A few notes with overlapping tags, created oldest first."""
    notes = {}
    notes["both_old"] = note_service.create_note(
        title="Old both", body="<p>alpha beta</p>", tags=["x", "y"], note_id="both_old"
    )
    notes["x_only"] = note_service.create_note(
        title="Only x", body="alpha", tags=["x"], note_id="x_only"
    )
    notes["both_new"] = note_service.create_note(
        title="New both", body="gamma", tags=["y", "x"], note_id="both_new"
    )
    notes["untagged"] = note_service.create_note(
        title="Plain", body="alpha gamma", note_id="untagged"
    )
    return notes


class TestTagSearch:
    """Searches with empty text."""

    def test_and_filter_by_recency(self, search_service, populated):
        results = search_service.search("", ["#x", "#y"])
        assert [n.id for n in results] == ["both_new", "both_old"]

    def test_tags_are_normalized(self, search_service, populated):
        results = search_service.search("", ["X", "Y"])
        assert [n.id for n in results] == ["both_new", "both_old"]

    def test_no_text_no_tags_lists_everything(self, search_service, populated):
        results = search_service.search()
        assert [n.id for n in results] == ["untagged", "both_new", "x_only", "both_old"]

    def test_unknown_tag_matches_nothing(self, search_service, populated):
        assert search_service.search("", ["#nope"]) == []

    def test_blank_text_is_empty(self, search_service, populated):
        results = search_service.search("   ", ["#x", "#y"])
        assert [n.id for n in results] == ["both_new", "both_old"]

    def test_invalid_tag(self, search_service, populated):
        with pytest.raises(ValidationError):
            search_service.search("", ["two words"])

    def test_limit(self, search_service, populated):
        assert len(search_service.search("", limit=2)) == 2

    def test_reflects_updates(self, search_service, note_service, populated):
        note_service.update_note("x_only", tags=["x", "y"])
        results = search_service.search("", ["#x", "#y"])
        assert [n.id for n in results] == ["x_only", "both_new", "both_old"]


class TestTextSearch:
    """Searches with text."""

    def test_all_terms_must_match(self, search_service, populated):
        results = search_service.search("alpha gamma")
        assert [n.id for n in results] == ["untagged"]

    def test_case_insensitive_and_markup_ignored(self, search_service, populated):
        results = search_service.search("ALPHA BETA")
        assert [n.id for n in results] == ["both_old"]

    def test_markup_is_not_searchable(self, search_service, populated):
        assert search_service.search("<p>") == []

    def test_matches_title_and_tags(self, search_service, populated):
        assert [n.id for n in search_service.search("plain")] == ["untagged"]
        results = search_service.search("#y")
        assert {n.id for n in results} == {"both_old", "both_new"}

    def test_tag_filter_requires_one_tag(self, search_service, populated):
        results = search_service.search("alpha", ["#x"])
        assert {n.id for n in results} == {"both_old", "x_only"}

    def test_more_tag_hits_rank_first(self, search_service, populated):
        results = search_service.search("alpha", ["#x", "#y"])
        assert [n.id for n in results] == ["both_old", "x_only"]

    def test_recency_breaks_ties(self, search_service, populated):
        results = search_service.search("alpha")
        assert [n.id for n in results] == ["untagged", "x_only", "both_old"]

    def test_exact_title_match_ranks_first(self, search_service, note_service, populated):
        note_service.create_note(title="Notes about alpha", note_id="newest")
        note_service.create_note(title="Alpha", body="old", note_id="exact")
        note_service.update_note("newest", body="still alpha")
        results = search_service.search("alpha")
        assert results[0].id == "exact"
        assert results[1].id == "newest"


class TestCancellation:
    """Cooperative cancellation."""

    def test_cancelled_before_start(self, search_service, populated):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(SearchError) as exc_info:
            search_service.search("alpha", cancel_event=cancel)
        assert exc_info.value.code == ErrorCode.SEARCH_CANCELLED

    def test_cancelled_between_pages(self, search_service, note_service, monkeypatch):
        monkeypatch.setattr(note_service.settings, "search_page_size", 1)
        for i in range(3):
            note_service.create_note(title=f"Note {i}", body="common")
        cancel = CancelAfter(checks=1)
        with pytest.raises(SearchError):
            search_service.search("common", cancel_event=cancel)
        assert cancel.checks < 0

    def test_unset_event_is_ignored(self, search_service, populated):
        results = search_service.search("gamma", cancel_event=threading.Event())
        assert {n.id for n in results} == {"both_new", "untagged"}


class TestDiscovery:
    """Tests for the discovery helpers."""

    def test_notes_by_tag(self, search_service, populated):
        assert [n.id for n in search_service.notes_by_tag("y")] == ["both_new", "both_old"]

    def test_tags_with_counts(self, search_service, populated):
        assert search_service.tags_with_counts() == {"#x": 3, "#y": 2}

    def test_recent_notes(self, search_service, populated):
        assert [n.id for n in search_service.recent_notes(limit=1)] == ["untagged"]

    def test_previews(self, search_service, note_service, monkeypatch):
        monkeypatch.setattr(note_service.settings, "excerpt_length", 12)
        note = note_service.create_note(
            title="T", body="<p>The quick brown fox</p>", tags=["a"]
        )
        (preview,) = search_service.previews([note])
        assert preview.id == note.id
        assert preview.title == "T"
        assert preview.excerpt == "The quick…"
        assert preview.tags == ("#a",)
        assert preview.updated_at == note.updated_at

    def test_find_orphaned_notes(self, search_service, note_service):
        note_service.create_note(title="A", body="[[B]]", note_id="A")
        note_service.create_note(title="B", note_id="B")
        note_service.create_note(title="C", note_id="C")
        assert [n.id for n in search_service.find_orphaned_notes()] == ["C"]

    def test_find_dangling_references(self, search_service, note_service):
        note_service.create_note(title="A", body="[[B]] [[ghost]]", note_id="A")
        note_service.create_note(title="B", note_id="B")
        assert search_service.find_dangling_references() == {"A": ["ghost"]}


class TestServiceSettings:
    """Limits come from the settings the note service was built with."""

    @pytest.fixture
    def custom_search(self, note_store):
        settings = NotetakerConfig(excerpt_length=8, search_page_size=1)
        note_service = NoteService(store=note_store, settings=settings)
        return SearchService(note_service)

    def test_excerpt_length_from_settings(self, custom_search):
        note = custom_search.note_service.create_note(title="T", body="alpha beta gamma")
        (preview,) = custom_search.previews([note])
        assert preview.excerpt == "alpha…"

    def test_page_size_from_settings(self, custom_search):
        for i in range(3):
            custom_search.note_service.create_note(title=f"Note {i}", body="common")
        cancel = CancelAfter(checks=2)
        with pytest.raises(SearchError):
            custom_search.search("common", cancel_event=cancel)
