"""Tests for failure recovery and robustness.

These tests verify the system handles failures gracefully:
1. Corrupted derived structures are detected and rebuilt from the store
2. A failing index update never surfaces to the caller
3. A failing store write leaves the indexes untouched
"""

import logging
from unittest.mock import patch

import pytest

from notetaker.exceptions import ErrorCode, StorageError
from notetaker.services.note_service import NoteService


@pytest.fixture
def linked_service(note_service):
    note_service.create_note(title="A", body="see [[B]]", tags=["x", "y"], note_id="A")
    note_service.create_note(title="B", body="[[C]] and [[A]]", tags=["x"], note_id="B")
    note_service.create_note(title="C", tags=["z"], note_id="C")
    return note_service


class TestIndexRebuild:
    """Recovery of the tag index and reference graph."""

    def test_rebuild_reproduces_snapshots(self, linked_service):
        tags_before = linked_service.tag_index.snapshot()
        refs_before = linked_service.reference_graph.snapshot()

        # Simulate corruption
        linked_service.tag_index.reindex("A", ("#x",), ("#bogus",))
        linked_service.reference_graph.update_edges("C", {"nowhere"})
        linked_service.reference_graph.update_edges("A", ())

        linked_service.rebuild_index()

        assert linked_service.tag_index.snapshot() == tags_before
        assert linked_service.reference_graph.snapshot() == refs_before
        assert linked_service.backlinks_for("B") == ["A"]
        assert linked_service.backlinks_for("nowhere") == []

    def test_rebuild_after_total_loss(self, linked_service):
        tags_before = linked_service.tag_index.snapshot()
        refs_before = linked_service.reference_graph.snapshot()
        linked_service.tag_index.clear()
        linked_service.reference_graph.clear()

        linked_service.rebuild_index()

        assert linked_service.tag_index.snapshot() == tags_before
        assert linked_service.reference_graph.snapshot() == refs_before

    def test_check_consistency_repairs(self, linked_service, caplog):
        tags_before = linked_service.tag_index.snapshot()
        linked_service.tag_index.reindex("C", ("#z",), ())

        with caplog.at_level(logging.WARNING, logger="notetaker"):
            assert linked_service.check_consistency() is True

        assert linked_service.tag_index.snapshot() == tags_before
        assert "INDEX_INCONSISTENT" in caplog.text
        assert linked_service.check_consistency() is False

    def test_check_consistency_clean(self, linked_service):
        assert linked_service.check_consistency() is False


class TestCommitFailures:
    """Failures inside a mutation."""

    def test_failed_index_update_is_healed(self, linked_service, caplog):
        with patch.object(
            linked_service.tag_index, "reindex", side_effect=RuntimeError("boom")
        ):
            with caplog.at_level(logging.ERROR, logger="notetaker"):
                note = linked_service.update_note("C", tags=["w"], body="[[A]]")

        assert note.tags == ("#w",)
        assert "INDEX_INCONSISTENT" in caplog.text
        # The rebuild picked the change up from the store
        assert linked_service.tag_index.notes_for_tag("#w") == frozenset({"C"})
        assert linked_service.tag_index.notes_for_tag("#z") == frozenset()
        assert linked_service.backlinks_for("A") == ["B", "C"]
        assert linked_service.check_consistency() is False

    def test_failed_purge_on_delete_is_healed(self, linked_service):
        with patch.object(
            linked_service.reference_graph,
            "update_edges",
            side_effect=RuntimeError("boom"),
        ):
            linked_service.delete_note("B")

        assert linked_service.backlinks_for("C") == []
        assert linked_service.backlinks_for("B") == ["A"]
        assert linked_service.check_consistency() is False

    def test_store_failure_leaves_indexes_alone(self, linked_service):
        tags_before = linked_service.tag_index.snapshot()
        refs_before = linked_service.reference_graph.snapshot()
        error = StorageError(
            "disk full", operation="put", code=ErrorCode.STORAGE_WRITE_FAILED
        )

        with patch.object(linked_service.store, "put", side_effect=error):
            with pytest.raises(StorageError):
                linked_service.update_note("A", tags=["other"], body="[[C]]")

        assert linked_service.tag_index.snapshot() == tags_before
        assert linked_service.reference_graph.snapshot() == refs_before
        assert linked_service.get_note("A").tags == ("#x", "#y")


class TestMarkdownRecovery:
    """Recovery from files edited outside the service."""

    def test_rebuild_picks_up_external_edits(self, markdown_store):
        service = NoteService(store=markdown_store)
        service.create_note(title="A", tags=["x"], note_id="A")
        (markdown_store.notes_dir / "ext.md").write_text(
            "---\nid: ext\ntitle: External\ntags: [x]\n"
            "created: 2024-01-01T12:00:00+00:00\n---\nLinks to [[A]]\n"
        )

        assert service.check_consistency() is True
        assert service.backlinks_for("A") == ["ext"]
        assert service.tag_index.notes_for_tag("#x") == frozenset({"A", "ext"})

    def test_corrupt_file_does_not_block_startup(self, markdown_store):
        (markdown_store.notes_dir / "bad.md").write_text("---\ntitle: [\n---\n")
        service = NoteService(store=markdown_store)
        note = service.create_note(title="Fine")
        assert [n.id for n in service.list_notes()] == [note.id]
