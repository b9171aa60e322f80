"""Repository for the note collection.

The collection is one JSON list stored under a single key. The repository
keeps the loaded list in memory as the authoritative copy and persists it
through a debounced writer after every mutation.
"""

import datetime
import logging
import threading
from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError

from storm_notes.exceptions import ErrorCode, NoteNotFoundError, NoteValidationError
from storm_notes.models.schema import (
    Note,
    from_epoch_ms,
    generate_id,
    note_to_record,
    utc_now,
)
from storm_notes.storage.kv_store import DebouncedWriter, KeyValueStore, safe_get
from storm_notes.storage.seeds import ensure_seed_notes
from storm_notes.text import computed_title_from_body, parse_tag_list

logger = logging.getLogger(__name__)

# Accepted spellings for each field, first match wins
_FIELD_ALIASES: Dict[str, tuple] = {
    "created_at": ("created_at", "createdAt"),
    "updated_at": ("updated_at", "updatedAt"),
    "image_url": ("image_url", "imageUrl"),
}


class _Unparseable(Exception):
    pass


def _pick(raw: Mapping[str, Any], field: str) -> Any:
    for name in _FIELD_ALIASES.get(field, (field,)):
        if name in raw:
            return raw[name]
    return None


def _coerce_timestamp(value: Any) -> Optional[datetime.datetime]:
    """Turn epoch milliseconds, ISO strings or datetimes into aware datetimes.

    Returns None for missing values (None, 0, ""); raises _Unparseable for
    values that are present but meaningless.
    """
    if value is None or value == "" or value == 0:
        return None
    if isinstance(value, bool):
        raise _Unparseable(f"boolean timestamp {value!r}")
    if isinstance(value, (int, float)):
        try:
            return from_epoch_ms(float(value))
        except (OverflowError, OSError, ValueError) as e:
            raise _Unparseable(str(e))
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.datetime.fromisoformat(text)
        except ValueError:
            pass
        try:
            return from_epoch_ms(float(text))
        except (OverflowError, OSError, ValueError):
            raise _Unparseable(f"timestamp {value!r}")
    raise _Unparseable(f"timestamp of type {type(value).__name__}")


def _salvage_timestamp(value: Any, field: str) -> Optional[datetime.datetime]:
    """Like _coerce_timestamp, but a bad value reads as missing."""
    try:
        return _coerce_timestamp(value)
    except _Unparseable as e:
        logger.info(f"Ignoring unreadable {field}: {e}")
        return None


def _optional_str(value: Any, field: str) -> Optional[str]:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        logger.info(f"Ignoring {field} of type {type(value).__name__}")
        return None
    return value


def coerce_note(raw: Any, now: Optional[datetime.datetime] = None) -> Optional[Note]:
    """Coerce one persisted record into a Note.

    Accepts the current snake_case shape as well as the legacy camelCase
    shape with epoch-millisecond timestamps. Missing or unreadable fields get
    defaults: a generated id, an empty body, no tags, no image. A bad
    timestamp falls back to the other one, then to the current time. The
    title is recomputed from the body when absent.

    Only records that are not mappings, or whose id or body has the wrong
    type, are given up on.

    Returns:
        The Note, or None when the record cannot be coerced.
    """
    if not isinstance(raw, Mapping):
        return None
    now = now or utc_now()

    try:
        note_id = raw.get("id")
        if isinstance(note_id, (int, float)) and not isinstance(note_id, bool):
            note_id = str(note_id)
        if note_id is None or (isinstance(note_id, str) and not note_id.strip()):
            note_id = generate_id()
        if not isinstance(note_id, str):
            raise _Unparseable(f"id of type {type(note_id).__name__}")

        body = raw.get("body")
        if body is None:
            body = ""
        if not isinstance(body, str):
            raise _Unparseable(f"body of type {type(body).__name__}")

        title = raw.get("title")
        if not isinstance(title, str) or not title.strip():
            title = computed_title_from_body(body)

        tags_raw = raw.get("tags")
        if isinstance(tags_raw, str):
            tags = parse_tag_list(tags_raw)
        elif isinstance(tags_raw, (list, tuple)):
            tags = [t for t in tags_raw if isinstance(t, str)]
        else:
            tags = []

        created_at = _salvage_timestamp(_pick(raw, "created_at"), "created_at")
        updated_at = _salvage_timestamp(_pick(raw, "updated_at"), "updated_at")
        if created_at is None:
            created_at = updated_at or now
        if updated_at is None:
            updated_at = created_at

        return Note(
            id=note_id,
            title=title,
            body=body,
            tags=tags,
            image=_optional_str(raw.get("image"), "image"),
            image_url=_optional_str(_pick(raw, "image_url"), "image_url"),
            created_at=created_at,
            updated_at=updated_at,
        )
    except (_Unparseable, ValidationError) as e:
        logger.info(f"Dropping unreadable note record: {e}")
        return None


def coerce_notes(raw: Any, now: Optional[datetime.datetime] = None) -> List[Note]:
    """Coerce a persisted collection; anything but a list counts as empty.

    Records that cannot be coerced are dropped, and so are later records
    repeating an id already seen.
    """
    if not isinstance(raw, list):
        if raw is not None:
            logger.warning(
                f"Note collection has unexpected shape {type(raw).__name__}; "
                "starting from an empty collection"
            )
        return []

    notes: List[Note] = []
    seen = set()
    for record in raw:
        note = coerce_note(record, now=now)
        if note is None:
            continue
        if note.id in seen:
            logger.info(f"Dropping duplicate note record '{note.id}'")
            continue
        seen.add(note.id)
        notes.append(note)
    return notes


class NoteRepository:
    """Repository for the note collection.

    Reads return deep copies, so a ranking call always works on a snapshot
    that later edits cannot change underneath it.
    """

    def __init__(
        self,
        store: KeyValueStore,
        writer: Optional[DebouncedWriter] = None,
        notes_key: str = "storm_notes",
        seed_on_empty: bool = True,
    ):
        """Initialize the note repository.

        Args:
            store: Key-value store holding the collection.
            writer: Debounced writer for the store. Defaults to a synchronous one.
            notes_key: Key the collection lives under.
            seed_on_empty: Add the onboarding notes when they are missing.
        """
        self.store = store
        self.writer = writer or DebouncedWriter(store, delay_ms=0)
        self.notes_key = notes_key
        self.seed_on_empty = seed_on_empty
        self._lock = threading.RLock()
        self._notes: Optional[List[Note]] = None

    # -------------------------------------------------------------------------
    # Loading and persistence
    # -------------------------------------------------------------------------

    def load_notes(self, now: Optional[datetime.datetime] = None) -> List[Note]:
        """Load the collection from the store, adding missing seed notes.

        Never raises: unreadable data yields an empty (seeded) collection.
        """
        raw = safe_get(self.store, self.notes_key)
        notes = coerce_notes(raw, now=now)
        stored_count = len(raw) if isinstance(raw, list) else 0

        seeded = notes
        if self.seed_on_empty:
            seeded = ensure_seed_notes(notes, now=now)

        with self._lock:
            self._notes = seeded

        # Records that were skipped stay in the store until the next edit
        if len(seeded) != len(notes):
            self._persist()
        logger.info(f"Loaded {len(seeded)} notes ({stored_count} stored records)")
        return self._copies(seeded)

    def save_notes(self, notes: List[Note]) -> None:
        """Replace the whole collection."""
        with self._lock:
            self._notes = [n.model_copy(deep=True) for n in notes]
        self._persist()

    def flush(self) -> bool:
        """Write pending changes now."""
        return self.writer.flush()

    def _persist(self) -> None:
        with self._lock:
            records = [note_to_record(n) for n in self._notes or []]
        self.writer.write(self.notes_key, records)

    def _ensure_loaded(self) -> List[Note]:
        if self._notes is None:
            self.load_notes()
        return self._notes  # type: ignore[return-value]

    @staticmethod
    def _copies(notes: List[Note]) -> List[Note]:
        return [n.model_copy(deep=True) for n in notes]

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    def get_all(self) -> List[Note]:
        """Snapshot of every note, in stored order."""
        with self._lock:
            return self._copies(self._ensure_loaded())

    def get(self, note_id: str) -> Optional[Note]:
        """Get a note by ID, or None."""
        with self._lock:
            for note in self._ensure_loaded():
                if note.id == note_id:
                    return note.model_copy(deep=True)
        return None

    def create(self, note: Note) -> Note:
        """Add a note at the front of the collection.

        Raises:
            NoteValidationError: If a note with the same ID already exists.
        """
        with self._lock:
            notes = self._ensure_loaded()
            if any(n.id == note.id for n in notes):
                raise NoteValidationError(
                    f"Note with ID '{note.id}' already exists",
                    field="id",
                    value=note.id,
                    code=ErrorCode.NOTE_ALREADY_EXISTS,
                )
            notes.insert(0, note.model_copy(deep=True))
        self._persist()
        return note.model_copy(deep=True)

    def update(self, note: Note) -> Note:
        """Replace a stored note by ID.

        Raises:
            NoteNotFoundError: If the note does not exist.
        """
        with self._lock:
            notes = self._ensure_loaded()
            for i, existing in enumerate(notes):
                if existing.id == note.id:
                    notes[i] = note.model_copy(deep=True)
                    break
            else:
                raise NoteNotFoundError(note.id)
        self._persist()
        return note.model_copy(deep=True)

    def delete(self, note_id: str) -> None:
        """Delete a note by ID.

        Raises:
            NoteNotFoundError: If the note does not exist.
        """
        with self._lock:
            notes = self._ensure_loaded()
            remaining = [n for n in notes if n.id != note_id]
            if len(remaining) == len(notes):
                raise NoteNotFoundError(note_id)
            self._notes = remaining
        self._persist()

    def count(self) -> int:
        with self._lock:
            return len(self._ensure_loaded())
