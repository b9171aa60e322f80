"""Key-value stores holding JSON blobs.

Every store swallows its own failures: ``get`` returns None when a value is
missing or cannot be decoded, ``set`` returns False when the write failed.
The in-memory state of the caller stays authoritative either way.
"""

import json
import logging
import threading
from typing import Any, Dict, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from storm_notes.models.db_models import DBKeyValue

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Synchronous JSON key-value interface."""

    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any) -> bool:
        ...


class MemoryKeyValueStore:
    """Dict-backed store.

    Values are kept as serialized JSON so that callers never share live
    references with the store.
    """

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()
        self.write_count = 0
        for key, value in (initial or {}).items():
            self._data[key] = json.dumps(value)

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            raw = self._data.get(key)
        if raw is None:
            return None
        return _decode(key, raw)

    def set(self, key: str, value: Any) -> bool:
        try:
            raw = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.warning(f"Could not serialize value for key '{key}': {e}")
            return False
        with self._lock:
            self._data[key] = raw
            self.write_count += 1
        return True


class SqlKeyValueStore:
    """Key-value store backed by the ``kv_store`` table."""

    def __init__(self, session_factory):
        """Initialize the store.

        Args:
            session_factory: SQLAlchemy session factory for database operations.
        """
        self.session_factory = session_factory

    def get(self, key: str) -> Optional[Any]:
        try:
            with self.session_factory() as session:
                raw = session.scalar(
                    select(DBKeyValue.value).where(DBKeyValue.key == key)
                )
        except SQLAlchemyError as e:
            logger.warning(f"Failed to read key '{key}': {e}")
            return None
        if raw is None:
            return None
        return _decode(key, raw)

    def set(self, key: str, value: Any) -> bool:
        try:
            raw = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.warning(f"Could not serialize value for key '{key}': {e}")
            return False
        try:
            with self.session_factory() as session:
                entry = session.get(DBKeyValue, key)
                if entry is None:
                    session.add(DBKeyValue(key=key, value=raw))
                else:
                    entry.value = raw
                session.commit()
            return True
        except SQLAlchemyError as e:
            logger.warning(f"Failed to write key '{key}': {e}")
            return False


def safe_set(store: KeyValueStore, key: str, value: Any) -> bool:
    """Write through any store, turning exceptions into a False result."""
    try:
        return bool(store.set(key, value))
    except Exception as e:
        logger.warning(f"Store write for key '{key}' failed: {e}")
        return False


def safe_get(store: KeyValueStore, key: str) -> Optional[Any]:
    """Read through any store, turning exceptions into absence."""
    try:
        return store.get(key)
    except Exception as e:
        logger.warning(f"Store read for key '{key}' failed: {e}")
        return None


def _decode(key: str, raw: str) -> Optional[Any]:
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.warning(f"Discarding undecodable value under key '{key}': {e}")
        return None


class DebouncedWriter:
    """Coalesce rapid successive writes into one write per key.

    Each ``write`` replaces the pending value for its key and restarts a
    quiet-window timer. When the timer fires, every pending value is handed to
    the underlying store. A crash before the timer fires loses at most the
    last window of edits.
    """

    def __init__(self, store: KeyValueStore, delay_ms: int = 150):
        self._store = store
        self._delay = max(0, delay_ms) / 1000.0
        self._lock = threading.Lock()
        self._pending: Dict[str, Any] = {}
        self._timer: Optional[threading.Timer] = None
        self._closed = False

    @property
    def store(self) -> KeyValueStore:
        return self._store

    @property
    def has_pending(self) -> bool:
        with self._lock:
            return bool(self._pending)

    def write(self, key: str, value: Any) -> None:
        """Schedule a write. With a zero delay the write happens immediately."""
        if self._delay == 0 or self._closed:
            safe_set(self._store, key, value)
            return

        with self._lock:
            self._pending[key] = value
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self._delay, self.flush)
            self._timer.daemon = True
            self._timer.start()

    def flush(self) -> bool:
        """Write everything pending now.

        Returns:
            True if every pending write succeeded.
        """
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            pending = self._pending
            self._pending = {}

        ok = True
        for key, value in pending.items():
            if not safe_set(self._store, key, value):
                ok = False
        if pending:
            logger.debug(f"Flushed {len(pending)} pending write(s), ok={ok}")
        return ok

    def close(self) -> None:
        """Flush and switch to synchronous writes."""
        self.flush()
        self._closed = True
