"""Standalone desirability of each tag.

    base_score(tag) = count(tag) / max count  +  recency_weight * recency(tag)

Frequency rewards tags that organize many notes; the small recency term
surfaces tags in current use without letting it outweigh frequency.
"""

import datetime
from typing import Dict, Iterable, List, Optional

from storm_notes.config import RankingSettings
from storm_notes.models.schema import Note, TagStat, ensure_timezone_aware, utc_now

DEFAULT_SETTINGS = RankingSettings()


def note_timestamp(note: Note) -> datetime.datetime:
    """Last activity of a note: its update time, falling back to creation."""
    return note.updated_at or note.created_at


def recency(
    timestamp: datetime.datetime,
    now: Optional[datetime.datetime] = None,
    window_ms: Optional[float] = None,
) -> float:
    """Linear decay from 1 (right now) to 0 (one window ago or older).

    Timestamps in the future count as right now.
    """
    now = ensure_timezone_aware(now) if now else utc_now()
    window = window_ms if window_ms is not None else DEFAULT_SETTINGS.recency_window_ms
    age_ms = (now - ensure_timezone_aware(timestamp)).total_seconds() * 1000.0
    age_ms = max(0.0, age_ms)
    return 1.0 - min(1.0, age_ms / window)


def tag_stats(notes: Iterable[Note]) -> Dict[str, TagStat]:
    """Occurrence count and last-used timestamp for every tag."""
    stats: Dict[str, TagStat] = {}
    for note in notes:
        ts = note_timestamp(note)
        for tag in note.tags:
            stat = stats.get(tag)
            if stat is None:
                stats[tag] = TagStat(count=1, last_used=ts)
            else:
                stat.count += 1
                if ts > stat.last_used:
                    stat.last_used = ts
    return stats


def tag_last_used(notes: Iterable[Note]) -> Dict[str, datetime.datetime]:
    """Most recent activity among the notes carrying each tag."""
    return {tag: stat.last_used for tag, stat in tag_stats(notes).items()}


def tag_base_scores(
    notes: List[Note],
    now: Optional[datetime.datetime] = None,
    settings: Optional[RankingSettings] = None,
    recency_weight: Optional[float] = None,
) -> Dict[str, float]:
    """Base score of every tag in the collection.

    Args:
        notes: The note snapshot.
        now: Reference time for recency. Defaults to the current UTC time.
        settings: Ranking constants. Defaults to the built-in defaults.
        recency_weight: Overrides settings.recency_weight.

    Returns:
        Mapping tag -> score; empty for a collection without tags.
    """
    settings = settings or DEFAULT_SETTINGS
    weight = settings.recency_weight if recency_weight is None else recency_weight
    now = now or utc_now()

    stats = tag_stats(notes)
    if not stats:
        return {}
    max_count = max(stat.count for stat in stats.values())

    return {
        tag: stat.count / max_count
        + weight * recency(stat.last_used, now, settings.recency_window_ms)
        for tag, stat in stats.items()
    }


def base_score(
    tag: str,
    notes: List[Note],
    now: Optional[datetime.datetime] = None,
    settings: Optional[RankingSettings] = None,
) -> float:
    """Base score of a single tag; 0 for a tag no note carries."""
    return tag_base_scores(notes, now=now, settings=settings).get(tag, 0.0)
