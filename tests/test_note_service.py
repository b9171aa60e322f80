# tests/test_note_service.py
"""Tests for the NoteService class."""
import pytest

from storm_notes.exceptions import ErrorCode, NoteNotFoundError, NoteValidationError, TagError
from storm_notes.models.schema import SharedPayload
from storm_notes.services.note_service import NoteService
from storm_notes.storage.kv_store import DebouncedWriter
from storm_notes.storage.note_repository import NoteRepository
from storm_notes.text import UNTITLED


class TestNoteService:
    """Tests for note CRUD."""

    def test_create_note(self, note_service):
        """Title comes from the first body line."""
        note = note_service.create_note(body="Groceries\nmilk", tags=["Home", "home"])
        assert note.title == "Groceries"
        assert note.tags == ["home"]
        assert note_service.get_note(note.id).body == "Groceries\nmilk"

    def test_create_untitled(self, note_service):
        """An empty body yields the placeholder title."""
        note = note_service.create_note()
        assert note.title == UNTITLED
        assert note.tags == []

    def test_create_seeded_from_selection(self, note_service):
        """Notes created while filtering carry the filter tags first."""
        note = note_service.create_note(
            body="x", tags=["extra", "work"], seed_tags_from=["work", "ideas"]
        )
        assert note.tags == ["work", "ideas", "extra"]

    def test_new_notes_come_first(self, note_service):
        first = note_service.create_note(body="one")
        second = note_service.create_note(body="two")
        assert [n.id for n in note_service.get_all_notes()] == [second.id, first.id]

    def test_tags_get_colors_on_create(self, note_service, memory_store):
        """Tag colors are assigned eagerly and persisted."""
        note_service.create_note(body="x", tags=["work"])
        assert "work" in memory_store.get("storm_tag_colors")

    def test_update_body(self, note_service):
        note = note_service.create_note(body="Old title\nbody")
        updated = note_service.update_note(note.id, body="New title\nbody")
        assert updated.title == "New title"
        assert updated.updated_at >= note.updated_at

    def test_update_body_to_empty(self, note_service):
        note = note_service.create_note(body="Something")
        assert note_service.update_note(note.id, body="").title == UNTITLED

    def test_update_tags(self, note_service):
        note = note_service.create_note(body="x", tags=["a"])
        updated = note_service.update_note(note.id, tags=["B", "c"])
        assert updated.tags == ["b", "c"]
        assert note_service.get_note(note.id).tags == ["b", "c"]

    def test_update_missing(self, note_service):
        with pytest.raises(NoteNotFoundError):
            note_service.update_note("ghost", body="x")

    def test_delete(self, note_service):
        note = note_service.create_note(body="x")
        note_service.delete_note(note.id)
        assert note_service.get_note(note.id) is None
        with pytest.raises(NoteNotFoundError):
            note_service.delete_note(note.id)


class TestTagsAndImages:
    """Tests for tag and image edits."""

    def test_add_tag(self, note_service, memory_store):
        note = note_service.create_note(body="x")
        updated = note_service.add_tag(note.id, " Reading ")
        assert updated.tags == ["reading"]
        assert "reading" in memory_store.get("storm_tag_colors")

    def test_add_existing_tag_is_noop(self, note_service):
        note = note_service.create_note(body="x", tags=["a"])
        assert note_service.add_tag(note.id, "A").tags == ["a"]

    def test_add_empty_tag(self, note_service):
        note = note_service.create_note(body="x")
        with pytest.raises(TagError) as exc_info:
            note_service.add_tag(note.id, "   ")
        assert exc_info.value.code == ErrorCode.TAG_INVALID

    def test_add_tag_missing_note(self, note_service):
        with pytest.raises(NoteNotFoundError):
            note_service.add_tag("ghost", "a")

    def test_remove_tag(self, note_service):
        note = note_service.create_note(body="x", tags=["a", "b"])
        assert note_service.remove_tag(note.id, "a").tags == ["b"]
        assert note_service.remove_tag(note.id, "missing").tags == ["b"]

    def test_set_and_clear_image(self, note_service):
        note = note_service.create_note(body="x")
        with_image = note_service.set_image(note.id, data_url="data:image/png;base64,AA")
        assert with_image.image == "data:image/png;base64,AA"
        cleared = note_service.set_image(note.id)
        assert cleared.image is None
        assert cleared.image_url is None


class TestShare:
    """Tests for creating notes from shared content."""

    def test_full_payload(self, note_service):
        payload = SharedPayload(
            title="An article",
            text="\nfirst\n\nsecond\nthird\nfourth\n",
            url="https://example.com/a",
        )
        note = note_service.create_from_share(payload)
        assert note.body == "An article\nfirst\nsecond\nthird\nhttps://example.com/a"
        assert note.title == "An article"
        assert note.tags == ["shared"]

    def test_link_only(self, note_service):
        """Without a title the link becomes the title, once."""
        note = note_service.create_from_share(SharedPayload(url="https://example.com"))
        assert note.body == "https://example.com"
        assert note.title == "https://example.com"

    def test_custom_tags(self, note_service):
        note = note_service.create_from_share(SharedPayload(text="hi"), tags=["Read"])
        assert note.tags == ["read"]

    def test_empty_payload(self, note_service):
        with pytest.raises(NoteValidationError) as exc_info:
            note_service.create_from_share(SharedPayload(title=" ", text=""))
        assert exc_info.value.code == ErrorCode.NOTE_EMPTY


class TestLifecycle:
    """Tests for flushing and shutdown."""

    def test_shutdown_flushes(self, memory_store):
        writer = DebouncedWriter(memory_store, delay_ms=10_000)
        repo = NoteRepository(memory_store, writer=writer, seed_on_empty=False)
        service = NoteService(repo)
        note = service.create_note(body="pending")
        assert memory_store.get("storm_notes") is None
        service.shutdown()
        assert [r["id"] for r in memory_store.get("storm_notes")] == [note.id]
