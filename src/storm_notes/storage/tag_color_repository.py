"""Repository for the persistent tag -> color map."""
import logging
import re
import threading
from typing import Dict, Optional

from storm_notes.storage.kv_store import DebouncedWriter, KeyValueStore, safe_get

logger = logging.getLogger(__name__)

HEX_COLOR_PATTERN = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


class TagColorRepository:
    """Repository for tag colors.

    The map is created lazily on first use and never cleaned up; colors of
    tags that no longer appear on any note stay behind harmlessly. A failed
    write leaves the color in memory for the rest of the session.
    """

    def __init__(
        self,
        store: KeyValueStore,
        writer: Optional[DebouncedWriter] = None,
        key: str = "storm_tag_colors",
    ):
        self.store = store
        self.writer = writer or DebouncedWriter(store, delay_ms=0)
        self.key = key
        self._lock = threading.Lock()
        self._colors: Optional[Dict[str, str]] = None

    def load(self) -> Dict[str, str]:
        """Read the map from the store; anything unreadable becomes empty."""
        raw = safe_get(self.store, self.key)
        colors: Dict[str, str] = {}
        if isinstance(raw, dict):
            for tag, color in raw.items():
                if isinstance(tag, str) and isinstance(color, str) and HEX_COLOR_PATTERN.match(color):
                    colors[tag] = color
                else:
                    logger.info(f"Dropping invalid color entry {tag!r}: {color!r}")
        elif raw is not None:
            logger.warning("Tag color map has unexpected shape; starting empty")
        with self._lock:
            self._colors = colors
        return dict(colors)

    def _ensure_loaded(self) -> Dict[str, str]:
        if self._colors is None:
            self.load()
        return self._colors  # type: ignore[return-value]

    def get(self, tag: str) -> Optional[str]:
        return self._ensure_loaded().get(tag)

    def put(self, tag: str, color: str) -> None:
        """Record a color and persist the map (best effort)."""
        self._ensure_loaded()
        with self._lock:
            self._colors[tag] = color  # type: ignore[index]
            snapshot = dict(self._colors)  # type: ignore[arg-type]
        self.writer.write(self.key, snapshot)

    def get_all(self) -> Dict[str, str]:
        self._ensure_loaded()
        with self._lock:
            return dict(self._colors)  # type: ignore[arg-type]
