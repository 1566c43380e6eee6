"""Tests for the MCP server implementation."""
from unittest.mock import MagicMock, patch

import pytest

from notetaker.exceptions import NoteNotFoundError
from notetaker.server.mcp_server import NotetakerMcpServer


class TestMcpServer:
    """Tests for the NotetakerMcpServer class."""

    @pytest.fixture(autouse=True)
    def server(self, note_service, search_service):
        """Build a server over real services with FastMCP mocked out."""
        # Capture the tool decorator functions when registering
        self.registered_tools = {}
        self.mock_mcp = MagicMock()

        def mock_tool_decorator(*args, **kwargs):
            def tool_wrapper(func):
                self.registered_tools[kwargs.get("name")] = func
                return func
            return tool_wrapper
        self.mock_mcp.tool = mock_tool_decorator

        self.note_service = note_service
        with patch("notetaker.server.mcp_server.FastMCP", return_value=self.mock_mcp):
            self.server = NotetakerMcpServer(
                note_service=note_service, search_service=search_service
            )
        yield self.server

    def test_all_tools_registered(self):
        assert set(self.registered_tools) == {
            "notes_create",
            "notes_get",
            "notes_update",
            "notes_delete",
            "notes_list",
            "notes_search",
            "notes_backlinks",
            "notes_tags",
            "notes_rebuild_index",
            "notes_status",
        }

    def test_create_note_tool(self):
        result = self.registered_tools["notes_create"](
            title="Test Note", body="see [[B]]", tags="Work, ideas", note_id="A"
        )
        assert "successfully" in result
        assert "A" in result
        note = self.note_service.get_note("A")
        assert note.tags == ("#work", "#ideas")

    def test_create_note_validation_error(self):
        result = self.registered_tools["notes_create"](title="  ")
        assert result.startswith("Error:")
        assert "Title is required" in result
        assert self.note_service.list_notes() == []

    def test_get_note_tool(self):
        self.note_service.create_note(title="Target", body="Body", note_id="B", tags=["x"])
        self.note_service.create_note(title="Source", body="[[B]]", note_id="A")
        result = self.registered_tools["notes_get"](note_id="B")
        assert "# Target" in result
        assert "ID: B" in result
        assert "Tags: #x" in result
        assert "Referenced by: A" in result
        assert "Body" in result

    def test_get_missing_note(self):
        result = self.registered_tools["notes_get"](note_id="missing")
        assert result == "Error: Note with ID 'missing' not found"

    def test_update_note_tool(self):
        self.note_service.create_note(title="Old", tags=["a"], note_id="n1")
        result = self.registered_tools["notes_update"](note_id="n1", title="New", tags="")
        assert "successfully" in result
        note = self.note_service.get_note("n1")
        assert note.title == "New"
        assert note.tags == ()

    def test_update_without_fields(self):
        self.note_service.create_note(title="Old", note_id="n1")
        result = self.registered_tools["notes_update"](note_id="n1")
        assert result.startswith("Error:")

    def test_delete_note_tool(self):
        self.note_service.create_note(title="Doomed", note_id="n1")
        result = self.registered_tools["notes_delete"](note_id="n1")
        assert "successfully" in result
        assert self.registered_tools["notes_get"](note_id="n1").startswith("Error:")

    def test_list_notes_tool(self):
        assert self.registered_tools["notes_list"]() == "No notes found."
        self.note_service.create_note(title="First", body="<p>Hello</p>")
        self.note_service.create_note(title="Second")
        result = self.registered_tools["notes_list"](limit=1)
        assert "Found 1 notes" in result
        assert "Second" in result
        assert "First" not in result

    def test_search_notes_tool(self):
        self.note_service.create_note(title="Both", tags=["x", "y"], body="alpha")
        self.note_service.create_note(title="One", tags=["x"], body="alpha")
        result = self.registered_tools["notes_search"](tags="x, y")
        assert "Found 1 matching notes" in result
        assert "Both" in result
        result = self.registered_tools["notes_search"](query="alpha")
        assert "Found 2 matching notes" in result
        result = self.registered_tools["notes_search"](query="nothing")
        assert result == "No matching notes found."

    def test_search_invalid_tag(self):
        result = self.registered_tools["notes_search"](tags="two words")
        assert result.startswith("Error:")

    def test_backlinks_tool(self):
        self.note_service.create_note(title="Source", body="[[B]]", note_id="A")
        self.note_service.create_note(title="Gone", body="[[B]]", note_id="G")
        self.note_service.delete_note("G")
        result = self.registered_tools["notes_backlinks"](note_id="B")
        assert "- Source (ID: A)" in result
        assert "(ID: G)" not in result
        assert "No notes reference" in self.registered_tools["notes_backlinks"](
            note_id="nobody"
        )

    def test_tags_tool(self):
        assert self.registered_tools["notes_tags"]() == "No tags found."
        self.note_service.create_note(title="T", tags=["x", "y"])
        self.note_service.create_note(title="U", tags=["x"])
        result = self.registered_tools["notes_tags"]()
        assert "- #x (2)" in result
        assert "- #y (1)" in result

    def test_rebuild_index_tool(self):
        self.note_service.create_note(title="T", tags=["x"], body="[[other]]")
        self.note_service.tag_index.clear()
        result = self.registered_tools["notes_rebuild_index"]()
        assert "Notes: 1" in result
        assert "Tags: 1" in result
        assert "References: 1" in result
        assert self.note_service.get_all_tags() == ["#x"]

    def test_status_tool(self):
        self.note_service.create_note(title="T", tags=["x"])
        result = self.registered_tools["notes_status"]()
        assert "Notes: 1" in result
        assert "Tags: 1" in result

    def test_error_handling(self):
        """Test error handling in the server."""
        not_found = self.server.format_error_response(NoteNotFoundError("abc"))
        assert not_found == "Error: Note with ID 'abc' not found"

        value_error = self.server.format_error_response(ValueError("Invalid input"))
        assert "Invalid input" in value_error
        assert "ref:" in value_error

        os_error = self.server.format_error_response(OSError("/secret/path"))
        assert "file system error" in os_error
        assert "/secret/path" not in os_error

        general = self.server.format_error_response(Exception("Something went wrong"))
        assert "unexpected error" in general
        assert "Something went wrong" not in general

    def test_run_delegates_to_fastmcp(self):
        self.server.run()
        self.mock_mcp.run.assert_called_once_with()
