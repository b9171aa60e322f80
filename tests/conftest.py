"""Common test fixtures for Storm Notes."""

import datetime
import tempfile
from datetime import timezone
from pathlib import Path

import pytest

from storm_notes.config import RankingSettings, config
from storm_notes.models.schema import Note
from storm_notes.services.browse_service import BrowseService
from storm_notes.services.color_service import TagColorService
from storm_notes.services.note_service import NoteService
from storm_notes.storage.kv_store import DebouncedWriter, MemoryKeyValueStore
from storm_notes.storage.note_repository import NoteRepository
from storm_notes.storage.tag_color_repository import TagColorRepository

# Fixed reference time for ranking tests
NOW = datetime.datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    """Fixed 'current time' so recency is reproducible."""
    return NOW


@pytest.fixture
def make_note():
    """Factory for notes with tags and an age relative to NOW.

    ``age`` is a timedelta before NOW; the note was created and last
    updated at that moment.
    """

    def _make(note_id, tags, age=datetime.timedelta(0), body=None):
        ts = NOW - age
        return Note(
            id=note_id,
            title=note_id,
            body=body if body is not None else note_id,
            tags=list(tags),
            created_at=ts,
            updated_at=ts,
        )

    return _make


@pytest.fixture
def temp_dirs():
    """Create a temporary directory for the database."""
    with tempfile.TemporaryDirectory() as db_dir:
        yield Path(db_dir)


@pytest.fixture
def test_config(temp_dirs, monkeypatch):
    """Configure with test paths (auto-restored even on crash)."""
    monkeypatch.setattr(config, "database_path", temp_dirs / "test_storm.db")
    monkeypatch.setattr(config, "in_memory_store", False)
    yield config


@pytest.fixture
def memory_store():
    """Empty in-memory key-value store."""
    return MemoryKeyValueStore()


@pytest.fixture
def note_repository(memory_store):
    """Note repository without seed notes and with synchronous writes."""
    repository = NoteRepository(
        memory_store,
        writer=DebouncedWriter(memory_store, delay_ms=0),
        seed_on_empty=False,
    )
    repository.load_notes()
    yield repository


@pytest.fixture
def color_service(memory_store):
    """Color service persisting into the shared memory store."""
    return TagColorService(TagColorRepository(memory_store))


@pytest.fixture
def note_service(note_repository, color_service):
    """Create a test NoteService."""
    yield NoteService(note_repository, color_service)


@pytest.fixture
def browse_service(note_service):
    """Create a test BrowseService with default ranking constants."""
    yield BrowseService(note_service, settings=RankingSettings())
