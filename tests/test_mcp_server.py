# tests/test_mcp_server.py
"""Tests for the MCP server implementation."""
from unittest.mock import MagicMock, patch

from storm_notes.config import config
from storm_notes.exceptions import NoteNotFoundError
from storm_notes.models.db_models import init_db
from storm_notes.observability import metrics
from storm_notes.server.mcp_server import MAX_BODY_LENGTH, StormMcpServer


def _created_id(response):
    assert response.startswith("Note created successfully with ID: ")
    return response.rsplit(" ", 1)[-1]


class TestMcpServer:
    """Tests for the StormMcpServer class."""

    def setup_method(self):
        """Set up test environment before each test."""
        # Capture the tool decorator functions when registering
        self.registered_tools = {}

        self.mock_mcp = MagicMock()

        def mock_tool_decorator(*args, **kwargs):
            def tool_wrapper(func):
                self.registered_tools[kwargs.get("name")] = func
                return func
            return tool_wrapper
        self.mock_mcp.tool = mock_tool_decorator

        self.patchers = [
            patch("storm_notes.server.mcp_server.FastMCP", return_value=self.mock_mcp),
            patch("storm_notes.server.mcp_server.atexit.register"),
            patch.object(config, "seed_on_empty", False),
            patch.object(config, "persist_debounce_ms", 0),
        ]
        for patcher in self.patchers:
            patcher.start()

        self.server = StormMcpServer(engine=init_db("sqlite:///:memory:"))

    def teardown_method(self):
        """Clean up after each test."""
        for patcher in reversed(self.patchers):
            patcher.stop()

    def tool(self, name):
        return self.registered_tools[name]

    def test_server_initialization(self):
        """All tools are registered."""
        expected = {
            "storm_create_note", "storm_get_note", "storm_update_note",
            "storm_delete_note", "storm_add_tag", "storm_remove_tag",
            "storm_set_image", "storm_list_notes", "storm_tag_bar",
            "storm_filter_notes", "storm_tag_color", "storm_suggest_tags",
            "storm_share", "storm_status",
        }
        assert expected <= set(self.registered_tools)

    def test_create_and_get_note(self):
        note_id = _created_id(
            self.tool("storm_create_note")(body="Groceries\nmilk", tags="Home, errands")
        )
        result = self.tool("storm_get_note")(note_id)
        assert result.startswith("# Groceries\n")
        assert f"ID: {note_id}" in result
        assert "Tags: home, errands" in result
        assert result.rstrip().endswith("milk")

    def test_create_with_selection(self):
        note_id = _created_id(
            self.tool("storm_create_note")(body="x", tags="extra", selected="work")
        )
        assert self.server.note_service.get_note(note_id).tags == ["work", "extra"]

    def test_get_missing_note(self):
        assert self.tool("storm_get_note")("ghost") == "Note not found: ghost"

    def test_update_and_delete(self):
        note_id = _created_id(self.tool("storm_create_note")(body="Old"))
        assert self.tool("storm_update_note")(note_id, body="New", tags="a,b") == (
            f"Note updated successfully: {note_id}"
        )
        note = self.server.note_service.get_note(note_id)
        assert note.title == "New"
        assert note.tags == ["a", "b"]

        assert self.tool("storm_delete_note")(note_id) == f"Note deleted successfully: {note_id}"
        assert self.server.note_service.get_note(note_id) is None

    def test_update_missing_note(self):
        result = self.tool("storm_update_note")("ghost", body="x")
        assert result == "Error: Note with ID 'ghost' not found"

    def test_add_and_remove_tag(self):
        note_id = _created_id(self.tool("storm_create_note")(body="x", tags="a"))
        assert self.tool("storm_add_tag")(note_id, "B") == f"Tags of {note_id}: a, b"
        assert self.tool("storm_remove_tag")(note_id, "a") == f"Tags of {note_id}: b"
        assert self.tool("storm_remove_tag")(note_id, "b") == f"Tags of {note_id}: (none)"

    def test_add_blank_tag(self):
        note_id = _created_id(self.tool("storm_create_note")(body="x"))
        assert self.tool("storm_add_tag")(note_id, "  ").startswith("Error: ")

    def test_set_image(self):
        note_id = _created_id(self.tool("storm_create_note")(body="x"))
        result = self.tool("storm_set_image")(note_id, image_url="https://example.com/a.png")
        assert result == f"Image attached to note {note_id}"
        assert "Image: https://example.com/a.png" in self.tool("storm_get_note")(note_id)
        assert self.tool("storm_set_image")(note_id) == f"Image removed from note {note_id}"

    def test_list_notes(self):
        assert self.tool("storm_list_notes")() == "No notes yet."
        self.tool("storm_create_note")(body="first")
        self.tool("storm_create_note")(body="second")
        result = self.tool("storm_list_notes")(limit=1)
        assert result.startswith("Showing 1 of 2 notes:")

    def test_tag_bar(self):
        assert self.tool("storm_tag_bar")() == "No tags found."
        self.tool("storm_create_note")(body="x", tags="python, code")
        self.tool("storm_create_note")(body="y", tags="travel")
        lines = self.tool("storm_tag_bar")(selected="python").splitlines()
        assert lines[0].startswith("* python (#")
        assert lines[1].startswith("- code (#")
        assert len(lines) == 3

    def test_tag_bar_query(self):
        self.tool("storm_create_note")(body="x", tags="python, code")
        lines = self.tool("storm_tag_bar")(query="PY").splitlines()
        assert len(lines) == 1
        assert lines[0].startswith("- python")

    def test_filter_notes(self):
        direct = _created_id(self.tool("storm_create_note")(body="Both", tags="x, y"))
        related = _created_id(self.tool("storm_create_note")(body="One", tags="x"))
        result = self.tool("storm_filter_notes")("x, y")
        direct_part, related_part = result.split("## Related")
        assert "## Direct matches (1)" in direct_part
        assert direct in direct_part
        assert related in related_part
        assert "score=" in related_part

    def test_filter_no_direct(self):
        self.tool("storm_create_note")(body="One", tags="x")
        result = self.tool("storm_filter_notes")("nothing")
        assert "## Direct matches (0)" in result
        assert "No notes carry all selected tags." in result

    def test_tag_color(self):
        result = self.tool("storm_tag_color")("Work")
        assert result.startswith("work: background #")
        assert result.endswith("text #ffffff")
        assert self.tool("storm_tag_color")("work") == result

    def test_suggest_tags(self):
        self.tool("storm_create_note")(body="x", tags="python")
        assert self.tool("storm_suggest_tags")("Gardening with python") == "python, gardening"
        assert self.tool("storm_suggest_tags")("the and") == "No suggestions."

    def test_share(self):
        note_id = _created_id(
            self.tool("storm_share")(title="Article", url="https://example.com")
        )
        note = self.server.note_service.get_note(note_id)
        assert note.title == "Article"
        assert note.tags == ["shared"]
        assert self.tool("storm_share")().startswith("Error: ")

    def test_body_too_long(self):
        result = self.tool("storm_create_note")(body="x" * (MAX_BODY_LENGTH + 1))
        assert result.startswith("Error: Invalid input (ref: ")

    def test_status(self):
        metrics.reset()
        self.tool("storm_create_note")(body="x", tags="a")
        self.tool("storm_create_note")(body="y")
        result = self.tool("storm_status")()
        assert "**Total Notes:** 2" in result
        assert "**Untagged Notes:** 1" in result
        assert "| a | 1 |" in result
        assert "## Metrics" in result
        assert f"({config.server_name} {config.server_version})" in result
        assert "- storm_create_note: 2 calls" in result

        only_summary = self.tool("storm_status")(sections="summary")
        assert "## Tags" not in only_summary
        assert "## Metrics" not in only_summary

    def test_persists_to_database(self):
        """Writes land in the key-value table and survive a reload."""
        note_id = _created_id(self.tool("storm_create_note")(body="kept", tags="a"))
        store = self.server.writer.store
        assert [r["id"] for r in store.get(config.notes_key)] == [note_id]
        assert "a" in store.get(config.tag_colors_key)

    def test_error_handling(self):
        """Exceptions map to user-facing messages without internals."""
        assert self.server.format_error_response(NoteNotFoundError("n1")) == (
            "Error: Note with ID 'n1' not found"
        )
        assert self.server.format_error_response(ValueError("bad")).startswith(
            "Error: Invalid input (ref: "
        )
        assert self.server.format_error_response(OSError("disk")).startswith(
            "Error: A file system error occurred"
        )
        assert self.server.format_error_response(RuntimeError("x")).startswith(
            "Error: An unexpected error occurred"
        )

    def test_service_errors_are_formatted(self):
        with patch.object(
            self.server.browse_service, "tag_bar", side_effect=RuntimeError("boom")
        ):
            assert self.tool("storm_tag_bar")().startswith(
                "Error: An unexpected error occurred"
            )
