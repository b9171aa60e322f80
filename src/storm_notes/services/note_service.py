"""Service layer for note operations."""

import logging
from typing import List, Optional, Sequence

from storm_notes.exceptions import (
    ErrorCode,
    NoteNotFoundError,
    NoteValidationError,
    TagError,
)
from storm_notes.models.schema import Note, SharedPayload, utc_now
from storm_notes.services.color_service import TagColorService
from storm_notes.storage.note_repository import NoteRepository
from storm_notes.text import (
    UNTITLED,
    computed_title_from_body,
    normalize_tag,
    normalize_tags,
    split_lines,
)

logger = logging.getLogger(__name__)

# Lines of shared text carried into the note body
SHARE_TEXT_LINES = 3
SHARE_DEFAULT_TAGS = ("shared",)


class NoteService:
    """Service for creating, editing and deleting notes.

    Every mutation goes through the repository, which persists the whole
    collection through its debounced writer. Tags put on a note get their
    color assigned right away.
    """

    def __init__(
        self,
        repository: NoteRepository,
        color_service: Optional[TagColorService] = None,
    ):
        """Initialize the service.

        Args:
            repository: Note storage.
            color_service: Tag color engine. Colors are computed on demand
                and not persisted when None.
        """
        self.repository = repository
        self.color_service = color_service or TagColorService()

    def _assign_colors(self, tags: Sequence[str]) -> None:
        for tag in tags:
            self.color_service.color_for(tag)

    def _require(self, note_id: str) -> Note:
        note = self.repository.get(note_id)
        if note is None:
            raise NoteNotFoundError(note_id)
        return note

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    def create_note(
        self,
        body: str = "",
        tags: Optional[Sequence[str]] = None,
        seed_tags_from: Optional[Sequence[str]] = None,
        image: Optional[str] = None,
        image_url: Optional[str] = None,
    ) -> Note:
        """Create a new note.

        Args:
            body: Note text; the title is derived from its first line.
            tags: Tags for the note.
            seed_tags_from: Active tag selection; its tags come first so a
                note created while filtering shows up under the filter.
            image: Image as a data URL.
            image_url: External image reference.

        Returns:
            The created note.
        """
        all_tags = normalize_tags(list(seed_tags_from or []) + list(tags or []))
        now = utc_now()
        note = Note(
            title=computed_title_from_body(body) or UNTITLED,
            body=body or "",
            tags=all_tags,
            image=image or None,
            image_url=image_url or None,
            created_at=now,
            updated_at=now,
        )
        self._assign_colors(note.tags)
        created = self.repository.create(note)
        logger.info(f"Created note {created.id} with tags {created.tags}")
        return created

    def get_note(self, note_id: str) -> Optional[Note]:
        """Retrieve a note by ID."""
        return self.repository.get(note_id)

    def get_all_notes(self) -> List[Note]:
        """Snapshot of the whole collection, newest first by insertion."""
        return self.repository.get_all()

    def update_note(
        self,
        note_id: str,
        body: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
    ) -> Note:
        """Update the body and/or replace the tags of a note.

        Raises:
            NoteNotFoundError: If the note does not exist.
        """
        note = self._require(note_id)
        if body is not None:
            note.set_body(body)
            if not note.title:
                note.title = UNTITLED
        if tags is not None:
            note.tags = normalize_tags(tags)
            self._assign_colors(note.tags)
            note.touch()
        return self.repository.update(note)

    def delete_note(self, note_id: str) -> None:
        """Delete a note.

        Raises:
            NoteNotFoundError: If the note does not exist.
        """
        self.repository.delete(note_id)
        logger.info(f"Deleted note {note_id}")

    # -------------------------------------------------------------------------
    # Tags and attachments
    # -------------------------------------------------------------------------

    def add_tag(self, note_id: str, tag: str) -> Note:
        """Add a tag to a note, assigning the tag a color.

        Raises:
            NoteNotFoundError: If the note does not exist.
            TagError: If the tag is empty after normalization.
        """
        name = normalize_tag(tag)
        if not name:
            raise TagError("Tag cannot be empty", tag_name=tag)
        note = self._require(note_id)
        self.color_service.color_for(name)
        if not note.add_tag(name):
            return note
        return self.repository.update(note)

    def remove_tag(self, note_id: str, tag: str) -> Note:
        """Remove a tag from a note; a tag the note lacks is ignored.

        Raises:
            NoteNotFoundError: If the note does not exist.
        """
        note = self._require(note_id)
        if not note.remove_tag(tag):
            return note
        return self.repository.update(note)

    def set_image(
        self,
        note_id: str,
        data_url: Optional[str] = None,
        image_url: Optional[str] = None,
    ) -> Note:
        """Attach an image to a note, or clear it when both are None.

        Raises:
            NoteNotFoundError: If the note does not exist.
        """
        note = self._require(note_id)
        note.image = data_url or None
        note.image_url = image_url or None
        note.touch()
        return self.repository.update(note)

    def create_from_share(
        self,
        payload: SharedPayload,
        tags: Optional[Sequence[str]] = None,
    ) -> Note:
        """Turn a shared title/text/link bundle into a new note.

        The body is the title line, then up to three non-empty lines of the
        shared text, then the link. Without a title the link becomes the
        title line.

        Raises:
            NoteValidationError: If the payload carries nothing.
        """
        if payload.is_empty():
            raise NoteValidationError(
                "Shared payload is empty",
                field="payload",
                code=ErrorCode.NOTE_EMPTY,
            )

        title = (payload.title or "").strip()
        url = (payload.url or "").strip()
        text_lines = [
            line.strip() for line in split_lines(payload.text or "") if line.strip()
        ]

        lines: List[str] = []
        head = title or url
        if head:
            lines.append(head)
        lines.extend(text_lines[:SHARE_TEXT_LINES])
        if url and url != head:
            lines.append(url)

        share_tags = list(tags) if tags else list(SHARE_DEFAULT_TAGS)
        note = self.create_note(body="\n".join(lines), tags=share_tags)
        logger.info(f"Created note {note.id} from shared payload")
        return note

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def flush(self) -> bool:
        """Write pending changes to the store now."""
        return self.repository.flush()

    def shutdown(self) -> None:
        """Flush pending writes and stop the writer."""
        self.repository.flush()
        self.repository.writer.close()
        color_repo = self.color_service.repository
        if color_repo is not None and color_repo.writer is not self.repository.writer:
            color_repo.writer.close()
        logger.info("Note service shut down")
