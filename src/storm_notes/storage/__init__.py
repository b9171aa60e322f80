"""Storage layer for Storm Notes."""

from storm_notes.storage.kv_store import (
    DebouncedWriter,
    KeyValueStore,
    MemoryKeyValueStore,
    SqlKeyValueStore,
)
from storm_notes.storage.note_repository import NoteRepository
from storm_notes.storage.tag_color_repository import TagColorRepository

__all__ = [
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SqlKeyValueStore",
    "DebouncedWriter",
    "NoteRepository",
    "TagColorRepository",
]
