"""Data models for Storm Notes."""

import datetime
import os
import threading
from dataclasses import dataclass
from datetime import timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from storm_notes.text import computed_title_from_body, normalize_tag, normalize_tags


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(dt_value: Optional[datetime.datetime]) -> datetime.datetime:
    """Ensure a datetime is timezone-aware, treating naive datetimes as UTC.

    Args:
        dt_value: A datetime that may or may not have timezone info.

    Returns:
        The same datetime with UTC timezone if it was naive, otherwise unchanged.
    """
    if dt_value is None:
        return utc_now()
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value


def from_epoch_ms(value: float) -> datetime.datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return datetime.datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)


def to_epoch_ms(value: datetime.datetime) -> int:
    """Convert a datetime to epoch milliseconds."""
    return int(round(ensure_timezone_aware(value).timestamp() * 1000))


# Thread-safe counter for uniqueness (seeded from PID for cross-process safety)
_id_lock = threading.Lock()
_last_timestamp = 0
_counter = (os.getpid() * 7) % 1_000_000


def generate_id() -> str:
    """Generate a timestamp-based note ID with guaranteed uniqueness.

    Returns:
        A string in format "note-YYYYMMDDTHHMMSSsssssscccccc" where the
        trailing six digits are a counter for same-microsecond uniqueness.
    """
    global _last_timestamp, _counter

    with _id_lock:
        now = utc_now()
        current_timestamp = int(now.timestamp() * 1_000_000)

        if current_timestamp == _last_timestamp:
            _counter += 1
        else:
            _last_timestamp = current_timestamp
            _counter = (os.getpid() * 7) % 1_000_000

        _counter %= 1_000_000

        date_time = now.strftime("%Y%m%dT%H%M%S")
        return f"note-{date_time}{now.microsecond:06d}{_counter:06d}"


class Note(BaseModel):
    """A note in the collection.

    The title is derived from the body and kept only for display; tags are
    normalized to lowercase and de-duplicated in first-occurrence order.
    """

    id: str = Field(default_factory=generate_id, description="Unique ID of the note")
    title: str = Field(default="", description="Title derived from the first body line")
    body: str = Field(default="", description="Free text body")
    tags: List[str] = Field(default_factory=list, description="Normalized tags")
    image: Optional[str] = Field(
        default=None, description="Locally attached image as a data URL"
    )
    image_url: Optional[str] = Field(
        default=None, description="External image reference (e.g. a shared page icon)"
    )
    created_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the note was created (UTC)"
    )
    updated_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the note was last updated (UTC)"
    )

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        """Validate that the ID is not blank."""
        if not v or not v.strip():
            raise ValueError("Note ID cannot be empty")
        return v

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: List[str]) -> List[str]:
        """Lowercase, strip and de-duplicate tags."""
        return normalize_tags(v)

    @field_validator("created_at", "updated_at")
    @classmethod
    def validate_timestamps(cls, v: datetime.datetime) -> datetime.datetime:
        """Treat naive datetimes as UTC."""
        return ensure_timezone_aware(v)

    @model_validator(mode="after")
    def _clamp_updated_at(self) -> "Note":
        # updated_at >= created_at; bypass validate_assignment to avoid recursion
        if self.updated_at < self.created_at:
            object.__setattr__(self, "updated_at", self.created_at)
        return self

    def touch(self) -> None:
        """Mark the note as just edited."""
        self.updated_at = utc_now()

    def set_body(self, body: str) -> None:
        """Replace the body and recompute the title from it."""
        self.body = body
        self.title = computed_title_from_body(body)
        self.touch()

    def add_tag(self, tag: str) -> bool:
        """Add a tag to the note.

        Returns:
            True if the tag was added, False if it was empty or already present.
        """
        name = normalize_tag(tag)
        if not name or name in self.tags:
            return False
        self.tags = self.tags + [name]
        self.touch()
        return True

    def remove_tag(self, tag: str) -> bool:
        """Remove a tag from the note.

        Returns:
            True if the tag was present.
        """
        name = normalize_tag(tag)
        if name not in self.tags:
            return False
        self.tags = [t for t in self.tags if t != name]
        self.touch()
        return True

    def has_all_tags(self, tags: List[str]) -> bool:
        """Whether every given tag is on this note."""
        own = set(self.tags)
        return all(t in own for t in tags)


class SharedPayload(BaseModel):
    """Title/text/link bundle handed over by the share target."""

    title: Optional[str] = Field(default=None, description="Shared page title")
    text: Optional[str] = Field(default=None, description="Shared text")
    url: Optional[str] = Field(default=None, description="Shared link")

    model_config = {"extra": "ignore"}

    def is_empty(self) -> bool:
        return not any((v or "").strip() for v in (self.title, self.text, self.url))


@dataclass
class TagStat:
    """Usage summary of a single tag."""

    count: int
    last_used: datetime.datetime


@dataclass
class RelatedNote:
    """A note that does not match the selection but is topically adjacent."""

    note: Note
    score: float


@dataclass
class NoteRelevance:
    """Notes partitioned against a tag selection.

    Attributes:
        direct: Notes carrying every selected tag, most recent first.
        related: Every other note with its relevance score, best first.
    """

    direct: List[Note]
    related: List[RelatedNote]

    def to_dict(self) -> dict:
        return {
            "direct": [n.id for n in self.direct],
            "related": [
                {"id": r.note.id, "score": round(r.score, 4)} for r in self.related
            ],
        }


def note_to_record(note: Note) -> dict:
    """Serialize a note for the key-value store."""
    return note.model_dump(mode="json")
