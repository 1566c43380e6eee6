"""MCP server exposing the note core as tools."""

import logging
import uuid
from typing import List, Optional

from mcp.server.fastmcp import FastMCP

from notetaker.config import config
from notetaker.exceptions import ErrorCode, NotetakerError
from notetaker.models.schema import Note, NotePreview
from notetaker.observability import metrics, timed_operation
from notetaker.services.note_service import NoteService
from notetaker.services.search_service import SearchService

logger = logging.getLogger(__name__)


def _split_tags(tags: Optional[str]) -> Optional[List[str]]:
    """Turn a comma-separated tag string into a list; None stays None."""
    if tags is None:
        return None
    return [t.strip() for t in tags.split(",") if t.strip()]


def _format_note(note: Note, backlinks: List[str]) -> str:
    result = f"# {note.title}\n"
    result += f"ID: {note.id}\n"
    result += f"Created: {note.created_at.isoformat()}\n"
    result += f"Updated: {note.updated_at.isoformat()}\n"
    if note.tags:
        result += f"Tags: {', '.join(note.tags)}\n"
    if backlinks:
        result += f"Referenced by: {', '.join(backlinks)}\n"
    result += f"\n{note.body}\n"
    return result


def _format_previews(previews: List[NotePreview]) -> str:
    lines = []
    for i, preview in enumerate(previews, 1):
        line = f"{i}. {preview.title} (ID: {preview.id})"
        if preview.tags:
            line += f" [{', '.join(preview.tags)}]"
        line += f" - updated {preview.updated_at.isoformat()}"
        lines.append(line)
        if preview.excerpt:
            lines.append(f"   {preview.excerpt}")
    return "\n".join(lines)


class NotetakerMcpServer:
    """MCP server for the note core."""

    def __init__(
        self,
        note_service: Optional[NoteService] = None,
        search_service: Optional[SearchService] = None,
    ):
        """Initialize the MCP server.

        Args:
            note_service: Note service to expose. Built from config if None.
            search_service: Search service to expose. Built over
                ``note_service`` if None.
        """
        self.mcp = FastMCP(config.server_name)
        self.note_service = note_service or NoteService()
        self.search_service = search_service or SearchService(self.note_service)
        self._register_tools()
        logger.info("Notetaker MCP server initialized")

    def format_error_response(self, error: Exception) -> str:
        """Format an error response in a consistent way.

        Domain errors carry a message meant for the caller and are returned
        as-is; anything else is logged in full and answered with a short
        reference to the log entry.
        """
        error_id = str(uuid.uuid4())[:8]

        if isinstance(error, NotetakerError):
            logger.error(
                f"[{error.code.name}] [{error_id}]: {error.message}",
                extra={"error_details": error.details},
            )
            return f"Error: {error.message}"
        elif isinstance(error, ValueError):
            logger.error(f"Validation error [{error_id}]: {str(error)}")
            return f"Error: Invalid input (ref: {error_id})"
        elif isinstance(error, (IOError, OSError)):
            logger.error(f"File system error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: A file system error occurred (ref: {error_id})"
        else:
            logger.error(f"Unexpected error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: An unexpected error occurred (ref: {error_id})"

    def _register_tools(self) -> None:
        """Register MCP tools."""

        @self.mcp.tool(name="notes_create")
        def notes_create(
            title: str,
            body: str = "",
            tags: Optional[str] = None,
            note_id: Optional[str] = None,
        ) -> str:
            """Create a new note.
            Args:
                title: The title of the note
                body: Rich-text body; [[note-id]] links to another note
                tags: Comma-separated list of tags (optional)
                note_id: Explicit ID for the note (optional, generated if omitted)
            """
            with timed_operation("notes_create", title=title[:30]) as op:
                try:
                    note = self.note_service.create_note(
                        title=title,
                        body=body,
                        tags=_split_tags(tags),
                        note_id=note_id,
                    )
                    op["note_id"] = note.id
                    return f"Note created successfully with ID: {note.id}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notes_get")
        def notes_get(note_id: str) -> str:
            """Retrieve a note by ID.
            Args:
                note_id: The ID of the note
            """
            with timed_operation("notes_get", note_id=note_id) as op:
                try:
                    note = self.note_service.get_note(str(note_id))
                    op["found"] = True
                    return _format_note(note, self.note_service.backlinks_for(note.id))
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notes_update")
        def notes_update(
            note_id: str,
            title: Optional[str] = None,
            body: Optional[str] = None,
            tags: Optional[str] = None,
        ) -> str:
            """Update an existing note.
            Args:
                note_id: The ID of the note to update
                title: New title (optional)
                body: New body (optional)
                tags: Comma-separated tags replacing the current ones (optional,
                    pass an empty string to clear them)
            """
            with timed_operation("notes_update", note_id=note_id):
                try:
                    note = self.note_service.update_note(
                        str(note_id),
                        title=title,
                        body=body,
                        tags=_split_tags(tags),
                    )
                    return f"Note updated successfully: {note.id}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notes_delete")
        def notes_delete(note_id: str) -> str:
            """Delete a note.
            Args:
                note_id: The ID of the note to delete
            """
            with timed_operation("notes_delete", note_id=note_id):
                try:
                    self.note_service.delete_note(str(note_id))
                    return f"Note deleted successfully: {note_id}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notes_list")
        def notes_list(limit: int = 20) -> str:
            """List notes, most recently updated first.
            Args:
                limit: Maximum number of notes to list (default: 20)
            """
            with timed_operation("notes_list", limit=limit) as op:
                try:
                    notes = self.note_service.list_notes()[:limit]
                    op["result_count"] = len(notes)
                    if not notes:
                        return "No notes found."
                    previews = self.search_service.previews(notes)
                    return f"Found {len(notes)} notes:\n\n" + _format_previews(previews)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notes_search")
        def notes_search(
            query: Optional[str] = None,
            tags: Optional[str] = None,
            limit: int = 20,
        ) -> str:
            """Search notes by text and tags.

            Without a query, only notes carrying every given tag match.
            With a query, every word must appear in the title, body or tags,
            and a note must carry at least one of the given tags.
            Args:
                query: Words to search for (optional)
                tags: Comma-separated tags to filter by (optional)
                limit: Maximum number of results (default: 20)
            """
            with timed_operation(
                "notes_search", query=query[:30] if query else None
            ) as op:
                try:
                    notes = self.search_service.search(
                        text=query or "",
                        tags=_split_tags(tags),
                        limit=limit,
                    )
                    op["result_count"] = len(notes)
                    if not notes:
                        return "No matching notes found."
                    previews = self.search_service.previews(notes)
                    return f"Found {len(notes)} matching notes:\n\n" + _format_previews(
                        previews
                    )
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notes_backlinks")
        def notes_backlinks(note_id: str) -> str:
            """List the notes that reference a note.

            Works for IDs that have no note yet.
            Args:
                note_id: The referenced note ID
            """
            with timed_operation("notes_backlinks", note_id=note_id) as op:
                try:
                    sources = self.note_service.backlinks_for(str(note_id))
                    op["result_count"] = len(sources)
                    if not sources:
                        return f"No notes reference {note_id}."
                    lines = [f"Notes referencing {note_id}:"]
                    for source in sources:
                        try:
                            title = self.note_service.get_note(source).title
                        except NotetakerError as e:
                            if e.code != ErrorCode.NOTE_NOT_FOUND:
                                raise
                            title = "(deleted)"
                        lines.append(f"- {title} (ID: {source})")
                    return "\n".join(lines)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notes_tags")
        def notes_tags() -> str:
            """List all tags with the number of notes carrying each."""
            with timed_operation("notes_tags") as op:
                try:
                    counts = self.search_service.tags_with_counts()
                    op["result_count"] = len(counts)
                    if not counts:
                        return "No tags found."
                    lines = [f"Found {len(counts)} tags:"]
                    lines.extend(f"- {tag} ({count})" for tag, count in counts.items())
                    return "\n".join(lines)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notes_rebuild_index")
        def notes_rebuild_index() -> str:
            """Rebuild the tag index and reference graph from stored notes."""
            with timed_operation("notes_rebuild_index"):
                try:
                    counts = self.note_service.rebuild_index()
                    return (
                        "Index rebuilt successfully.\n"
                        f"Notes: {counts['notes']}\n"
                        f"Tags: {counts['tags']}\n"
                        f"References: {counts['references']}"
                    )
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notes_status")
        def notes_status() -> str:
            """Show note counts and operation metrics."""
            try:
                snapshot = self.note_service.snapshot()
                summary = metrics.get_summary()
                lines = [
                    f"Notes: {len(snapshot.notes)}",
                    f"Tags: {len(snapshot.tag_index)}",
                    f"Storage backend: {config.storage_backend}",
                    f"Operations: {summary['total_operations']} "
                    f"({summary['total_errors']} errors)",
                ]
                return "\n".join(lines)
            except Exception as e:
                return self.format_error_response(e)

    def run(self) -> None:
        """Run the MCP server."""
        self.mcp.run()
