"""Service for browsing notes through their tags."""

import datetime
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from storm_notes.config import RankingSettings, config
from storm_notes.models.schema import Note, NoteRelevance
from storm_notes.observability import traced
from storm_notes.services.color_service import readable_text_color
from storm_notes.services.note_service import NoteService
from storm_notes.services.relevance import direct_and_related
from storm_notes.services.tag_bar import compose_tag_bar, filter_tag_bar
from storm_notes.services.tag_scoring import note_timestamp, tag_base_scores, tag_stats
from storm_notes.text import normalize_tags

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"[^\W_]+", re.UNICODE)
MIN_TOKEN_LENGTH = 3

STOPWORDS = frozenset(
    """
    the and for are but not you all any can had her was one our out day get has
    him his how man new now old see two way who boy did its let put say she too
    use that with have this will your from they know want been good much some
    time very when come here just like long make many over such take than them
    well were what into more only also then there these their about would could
    should which while where after before because being other
    """.split()
)


class BrowseService:
    """Read-side operations: tag bar, filtering, colors and suggestions.

    Each call takes a fresh snapshot of the collection and runs the pure
    ranking functions over it; nothing derived is cached between calls.
    """

    def __init__(
        self,
        note_service: NoteService,
        settings: Optional[RankingSettings] = None,
    ):
        """Initialize the browse service.

        Args:
            note_service: Note CRUD service.
            settings: Ranking constants. Taken from the global config if None.
        """
        self.note_service = note_service
        self.settings = settings or config.ranking_settings()

    def _snapshot(self) -> List[Note]:
        return self.note_service.get_all_notes()

    @traced("tag_bar")
    def tag_bar(
        self,
        selected: Optional[Sequence[str]] = None,
        query: Optional[str] = None,
        now: Optional[datetime.datetime] = None,
    ) -> List[str]:
        """Tags to show in the bar, optionally narrowed by a search query."""
        tags = compose_tag_bar(self._snapshot(), selected, now=now, settings=self.settings)
        return filter_tag_bar(tags, query)

    @traced("filter_notes")
    def filter_notes(
        self,
        selected: Optional[Sequence[str]] = None,
        now: Optional[datetime.datetime] = None,
    ) -> NoteRelevance:
        """Notes matching a selection, plus related notes.

        With nothing selected every note is a direct match, most recently
        active first, and nothing is related.
        """
        notes = self._snapshot()
        if not normalize_tags(selected or []):
            return NoteRelevance(
                direct=sorted(notes, key=note_timestamp, reverse=True), related=[]
            )
        return direct_and_related(notes, selected, now=now, settings=self.settings)

    def tag_color(self, tag: str) -> str:
        """Background color of a tag, assigning one if needed."""
        return self.note_service.color_service.color_for(tag)

    def text_color(self, tag: str) -> str:
        """Foreground color readable on the tag's background."""
        return readable_text_color(self.tag_color(tag))

    @traced("suggest_tags")
    def suggest_tags(
        self,
        text: str,
        limit: int = 8,
        exclude: Optional[Sequence[str]] = None,
        now: Optional[datetime.datetime] = None,
    ) -> List[str]:
        """Suggest tags for a piece of text.

        Words of the text that are already tags come first, best base score
        first; the remaining words follow in the order they appear.
        """
        if limit <= 0:
            return []
        excluded = set(normalize_tags(exclude or []))

        tokens: List[str] = []
        seen = set()
        for match in _TOKEN_RE.finditer((text or "").lower()):
            token = match.group(0)
            if len(token) < MIN_TOKEN_LENGTH or token in STOPWORDS:
                continue
            if token in seen or token in excluded:
                continue
            seen.add(token)
            tokens.append(token)

        base = tag_base_scores(self._snapshot(), now=now, settings=self.settings)
        known = sorted((t for t in tokens if t in base), key=lambda t: -base[t])
        fresh = [t for t in tokens if t not in base]
        return (known + fresh)[:limit]

    def stats(self, top: int = 10) -> Dict[str, Any]:
        """Collection summary: counts and the most used tags."""
        notes = self._snapshot()
        stats = tag_stats(notes)
        ranked = sorted(
            stats.items(), key=lambda kv: (-kv[1].count, -kv[1].last_used.timestamp(), kv[0])
        )
        return {
            "note_count": len(notes),
            "tag_count": len(stats),
            "untagged_count": sum(1 for n in notes if not n.tags),
            "top_tags": [
                {
                    "tag": tag,
                    "count": stat.count,
                    "last_used": stat.last_used.isoformat(),
                }
                for tag, stat in ranked[:top]
            ],
        }
