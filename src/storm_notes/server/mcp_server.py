"""MCP server implementation for Storm Notes."""

import atexit
import logging
import uuid
from typing import Optional

from mcp.server.fastmcp import FastMCP

from storm_notes.config import config
from storm_notes.exceptions import StormError
from storm_notes.models.db_models import get_session_factory
from storm_notes.models.schema import Note, SharedPayload
from storm_notes.observability import metrics, timed_operation
from storm_notes.services.browse_service import BrowseService
from storm_notes.services.color_service import TagColorService
from storm_notes.services.note_service import NoteService
from storm_notes.storage.kv_store import DebouncedWriter, SqlKeyValueStore
from storm_notes.storage.note_repository import NoteRepository
from storm_notes.storage.tag_color_repository import TagColorRepository
from storm_notes.text import parse_tag_list

logger = logging.getLogger(__name__)

MAX_BODY_LENGTH = 1_000_000  # 1 MB
MAX_IMAGE_LENGTH = 10_000_000  # data URLs get large


def _validate_input_lengths(
    body: Optional[str] = None, image: Optional[str] = None
) -> None:
    """Validate input string lengths at the MCP boundary."""
    if body and len(body) > MAX_BODY_LENGTH:
        raise ValueError(f"Body exceeds maximum length of {MAX_BODY_LENGTH} characters")
    if image and len(image) > MAX_IMAGE_LENGTH:
        raise ValueError(
            f"Image exceeds maximum length of {MAX_IMAGE_LENGTH} characters"
        )


def _format_note_line(note: Note) -> str:
    tags = f" [{', '.join(note.tags)}]" if note.tags else ""
    return f"- {note.title or '(untitled)'} (ID: {note.id}){tags}"


class StormMcpServer:
    """MCP server for Storm Notes."""

    def __init__(self, engine=None):
        """Initialize the MCP server.

        Args:
            engine: Pre-configured SQLAlchemy engine holding the key-value
                table. Created from the global config when None.
        """
        self.mcp = FastMCP(config.server_name)

        store = SqlKeyValueStore(get_session_factory(engine))
        # One writer for both keys so a single flush persists everything
        self.writer = DebouncedWriter(store, delay_ms=config.persist_debounce_ms)
        note_repository = NoteRepository(
            store,
            writer=self.writer,
            notes_key=config.notes_key,
            seed_on_empty=config.seed_on_empty,
        )
        color_service = TagColorService(
            TagColorRepository(store, writer=self.writer, key=config.tag_colors_key),
            settings=config.contrast_settings(),
        )

        self.note_service = NoteService(note_repository, color_service)
        self.browse_service = BrowseService(
            self.note_service, settings=config.ranking_settings()
        )
        self.initialize()
        # Register shutdown hook so pending writes are not lost
        atexit.register(self._shutdown)
        self._register_tools()

    def initialize(self) -> None:
        """Load the collection so the first tool call sees seeded notes."""
        notes = self.note_service.get_all_notes()
        logger.info(f"Storm Notes MCP server initialized with {len(notes)} notes")

    def _shutdown(self) -> None:
        """Flush pending writes on server exit."""
        self.note_service.shutdown()

    def format_error_response(self, error: Exception) -> str:
        """Format an error response in a consistent way.

        Args:
            error: The exception that occurred

        Returns:
            Formatted error message with appropriate level of detail
        """
        error_id = str(uuid.uuid4())[:8]

        if isinstance(error, StormError):
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

        @self.mcp.tool(name="storm_create_note")
        def storm_create_note(
            body: str = "",
            tags: Optional[str] = None,
            selected: Optional[str] = None,
        ) -> str:
            """Create a new note.
            Args:
                body: Note text; the first non-empty line becomes the title
                tags: Comma-separated list of tags (optional)
                selected: Comma-separated active filter; its tags are added first
            """
            with timed_operation("storm_create_note") as op:
                try:
                    _validate_input_lengths(body=body)
                    note = self.note_service.create_note(
                        body=body,
                        tags=parse_tag_list(tags),
                        seed_tags_from=parse_tag_list(selected),
                    )
                    op["note_id"] = note.id
                    return f"Note created successfully with ID: {note.id}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="storm_get_note")
        def storm_get_note(note_id: str) -> str:
            """Retrieve a note by ID.
            Args:
                note_id: The ID of the note
            """
            with timed_operation("storm_get_note", note_id=note_id) as op:
                try:
                    note = self.note_service.get_note(str(note_id))
                    if not note:
                        op["found"] = False
                        return f"Note not found: {note_id}"
                    op["found"] = True

                    result = f"# {note.title}\n"
                    result += f"ID: {note.id}\n"
                    result += f"Created: {note.created_at.isoformat()}\n"
                    result += f"Updated: {note.updated_at.isoformat()}\n"
                    if note.tags:
                        result += f"Tags: {', '.join(note.tags)}\n"
                    if note.image_url:
                        result += f"Image: {note.image_url}\n"
                    elif note.image:
                        result += "Image: (attached)\n"
                    result += f"\n{note.body}\n"
                    return result
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="storm_update_note")
        def storm_update_note(
            note_id: str,
            body: Optional[str] = None,
            tags: Optional[str] = None,
        ) -> str:
            """Update the body and/or tags of a note.
            Args:
                note_id: The ID of the note
                body: New text (optional)
                tags: Comma-separated tags replacing the current ones (optional)
            """
            with timed_operation("storm_update_note", note_id=note_id):
                try:
                    _validate_input_lengths(body=body)
                    tag_list = parse_tag_list(tags) if tags is not None else None
                    note = self.note_service.update_note(
                        str(note_id), body=body, tags=tag_list
                    )
                    return f"Note updated successfully: {note.id}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="storm_delete_note")
        def storm_delete_note(note_id: str) -> str:
            """Delete a note.
            Args:
                note_id: The ID of the note
            """
            with timed_operation("storm_delete_note", note_id=note_id):
                try:
                    self.note_service.delete_note(str(note_id))
                    return f"Note deleted successfully: {note_id}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="storm_add_tag")
        def storm_add_tag(note_id: str, tag: str) -> str:
            """Add a tag to a note.
            Args:
                note_id: The ID of the note
                tag: Tag to add
            """
            with timed_operation("storm_add_tag", note_id=note_id):
                try:
                    note = self.note_service.add_tag(str(note_id), tag)
                    return f"Tags of {note.id}: {', '.join(note.tags)}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="storm_remove_tag")
        def storm_remove_tag(note_id: str, tag: str) -> str:
            """Remove a tag from a note.
            Args:
                note_id: The ID of the note
                tag: Tag to remove
            """
            with timed_operation("storm_remove_tag", note_id=note_id):
                try:
                    note = self.note_service.remove_tag(str(note_id), tag)
                    remaining = ", ".join(note.tags) if note.tags else "(none)"
                    return f"Tags of {note.id}: {remaining}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="storm_set_image")
        def storm_set_image(
            note_id: str,
            data_url: Optional[str] = None,
            image_url: Optional[str] = None,
        ) -> str:
            """Attach an image to a note, or clear it when no image is given.
            Args:
                note_id: The ID of the note
                data_url: Image encoded as a data URL (optional)
                image_url: Link to an external image (optional)
            """
            with timed_operation("storm_set_image", note_id=note_id):
                try:
                    _validate_input_lengths(image=data_url)
                    note = self.note_service.set_image(
                        str(note_id), data_url=data_url, image_url=image_url
                    )
                    if note.image or note.image_url:
                        return f"Image attached to note {note.id}"
                    return f"Image removed from note {note.id}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="storm_list_notes")
        def storm_list_notes(limit: int = 20) -> str:
            """List notes, most recently active first.
            Args:
                limit: Maximum number of notes to list (default: 20)
            """
            with timed_operation("storm_list_notes") as op:
                try:
                    notes = self.browse_service.filter_notes([]).direct
                    op["result_count"] = len(notes)
                    if not notes:
                        return "No notes yet."
                    shown = notes[: max(0, limit)]
                    output = f"Showing {len(shown)} of {len(notes)} notes:\n\n"
                    output += "\n".join(_format_note_line(n) for n in shown)
                    return output
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="storm_tag_bar")
        def storm_tag_bar(
            selected: Optional[str] = None,
            query: Optional[str] = None,
        ) -> str:
            """Get the ranked tag bar.

            Selected tags come first, then tags related to the whole
            selection, then the remaining tags ranked by usage with
            near-duplicates spread apart.

            Args:
                selected: Comma-separated selected tags (optional)
                query: Only show tags containing this text (optional)
            """
            with timed_operation("storm_tag_bar") as op:
                try:
                    selection = parse_tag_list(selected)
                    tags = self.browse_service.tag_bar(selection, query=query)
                    op["result_count"] = len(tags)
                    if not tags:
                        return "No tags found."
                    lines = []
                    for tag in tags:
                        marker = "*" if tag in selection else "-"
                        lines.append(f"{marker} {tag} ({self.browse_service.tag_color(tag)})")
                    return "\n".join(lines)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="storm_filter_notes")
        def storm_filter_notes(selected: str, limit: int = 20) -> str:
            """Find notes carrying all selected tags, plus related notes.
            Args:
                selected: Comma-separated tags to filter by
                limit: Maximum number of related notes to list (default: 20)
            """
            with timed_operation("storm_filter_notes", selected=selected[:30]) as op:
                try:
                    selection = parse_tag_list(selected)
                    relevance = self.browse_service.filter_notes(selection)
                    op["direct_count"] = len(relevance.direct)
                    op["related_count"] = len(relevance.related)

                    output = f"## Direct matches ({len(relevance.direct)})\n"
                    if relevance.direct:
                        output += "\n".join(_format_note_line(n) for n in relevance.direct)
                        output += "\n"
                    else:
                        output += "No notes carry all selected tags.\n"

                    related = relevance.related[: max(0, limit)]
                    if related:
                        output += f"\n## Related ({len(relevance.related)})\n"
                        for r in related:
                            output += f"{_format_note_line(r.note)} score={r.score:.2f}\n"
                    return output
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="storm_tag_color")
        def storm_tag_color(tag: str) -> str:
            """Get the background and text color of a tag.
            Args:
                tag: The tag name
            """
            with timed_operation("storm_tag_color"):
                try:
                    background = self.browse_service.tag_color(tag)
                    text = self.browse_service.text_color(tag)
                    return f"{tag.strip().lower()}: background {background}, text {text}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="storm_suggest_tags")
        def storm_suggest_tags(
            text: str,
            limit: int = 8,
            exclude: Optional[str] = None,
        ) -> str:
            """Suggest tags for a piece of text, known tags first.
            Args:
                text: Text to take suggestions from
                limit: Maximum number of suggestions (default: 8)
                exclude: Comma-separated tags not to suggest, e.g. those already on the note
            """
            with timed_operation("storm_suggest_tags") as op:
                try:
                    _validate_input_lengths(body=text)
                    suggestions = self.browse_service.suggest_tags(
                        text, limit=limit, exclude=parse_tag_list(exclude)
                    )
                    op["result_count"] = len(suggestions)
                    if not suggestions:
                        return "No suggestions."
                    return ", ".join(suggestions)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="storm_share")
        def storm_share(
            title: Optional[str] = None,
            text: Optional[str] = None,
            url: Optional[str] = None,
            tags: Optional[str] = None,
        ) -> str:
            """Create a note from shared content.
            Args:
                title: Shared page title (optional)
                text: Shared text (optional)
                url: Shared link (optional)
                tags: Comma-separated tags; defaults to "shared"
            """
            with timed_operation("storm_share") as op:
                try:
                    _validate_input_lengths(body=text)
                    payload = SharedPayload(title=title, text=text, url=url)
                    note = self.note_service.create_from_share(
                        payload, tags=parse_tag_list(tags) or None
                    )
                    op["note_id"] = note.id
                    return f"Note created successfully with ID: {note.id}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="storm_status")
        def storm_status(sections: str = "all") -> str:
            """Get a status overview.

            Args:
                sections: Comma-separated sections to include:
                    - "summary": Note and tag counts
                    - "tags": Most used tags
                    - "metrics": Server performance metrics
                    - "all": Include all sections (default)
            """
            with timed_operation("storm_status"):
                try:
                    requested = set(s.strip().lower() for s in sections.split(","))
                    include_all = "all" in requested
                    stats = self.browse_service.stats()

                    output = f"# Storm Notes Status ({config.server_name} {config.server_version})\n\n"

                    if include_all or "summary" in requested:
                        output += "## Summary\n"
                        output += f"**Total Notes:** {stats['note_count']}\n"
                        output += f"**Distinct Tags:** {stats['tag_count']}\n"
                        output += f"**Untagged Notes:** {stats['untagged_count']}\n"
                        output += f"**Pending Writes:** {'Yes' if self.writer.has_pending else 'No'}\n\n"

                    if include_all or "tags" in requested:
                        output += "## Tags\n"
                        if stats["top_tags"]:
                            output += "| Tag | Notes | Last used |\n"
                            output += "|-----|-------|-----------|\n"
                            for row in stats["top_tags"]:
                                output += f"| {row['tag']} | {row['count']} | {row['last_used']} |\n"
                            output += "\n"
                        else:
                            output += "No tags defined.\n\n"

                    if include_all or "metrics" in requested:
                        summary = metrics.get_summary()
                        output += "## Metrics\n"
                        output += f"**Operations:** {summary['total_operations']}\n"
                        output += f"**Errors:** {summary['total_errors']}\n"
                        output += f"**Uptime:** {summary['uptime_seconds']:.0f}s\n"
                        for name, m in sorted(metrics.get_metrics().items()):
                            sizes = ", ".join(
                                f"avg {k} {v}" for k, v in sorted(m["avg_counters"].items())
                            )
                            output += (
                                f"- {name}: {m['count']} calls, "
                                f"avg {m['avg_duration_ms']}ms"
                                + (f", {sizes}" if sizes else "")
                                + "\n"
                            )

                    return output
                except Exception as e:
                    return self.format_error_response(e)

    def run(self) -> None:
        """Run the MCP server."""
        self.mcp.run()
