"""Partition of notes into direct matches and related notes.

A direct match carries every selected tag. Every other note is scored as

    overlap_weight * overlap + co_occurrence + recency_weight * recency
        + tag_count_weight * tag_count

where co_occurrence sums the tag similarity of every (selected, note tag)
pair over the whole collection.
"""

import datetime
from typing import List, Optional, Sequence

from storm_notes.config import RankingSettings
from storm_notes.models.schema import Note, NoteRelevance, RelatedNote, utc_now
from storm_notes.services.tag_index import SimilarityMatrix
from storm_notes.services.tag_scoring import note_timestamp, recency
from storm_notes.text import normalize_tags

DEFAULT_SETTINGS = RankingSettings()


def direct_matches(notes: List[Note], selected: Sequence[str]) -> List[Note]:
    """Notes carrying all selected tags, most recently active first.

    An empty selection matches nothing; showing everything is up to the caller.
    """
    wanted = normalize_tags(selected)
    if not wanted:
        return []
    matches = [n for n in notes if n.has_all_tags(wanted)]
    return sorted(matches, key=note_timestamp, reverse=True)


def score_related(
    note: Note,
    selected: Sequence[str],
    similarity: SimilarityMatrix,
    now: Optional[datetime.datetime] = None,
    settings: Optional[RankingSettings] = None,
) -> float:
    """Relevance of a single note to the selection."""
    settings = settings or DEFAULT_SETTINGS
    now = now or utc_now()
    selected_set = set(selected)

    overlap = sum(1 for t in note.tags if t in selected_set)
    co_occurrence = sum(similarity.get(s, t) for s in selected for t in note.tags)
    rec = recency(note_timestamp(note), now, settings.recency_window_ms)

    return (
        settings.related_overlap_weight * overlap
        + co_occurrence
        + settings.related_recency_weight * rec
        + settings.related_tag_count_weight * len(note.tags)
    )


def direct_and_related(
    notes: List[Note],
    selected: Optional[Sequence[str]] = None,
    now: Optional[datetime.datetime] = None,
    settings: Optional[RankingSettings] = None,
) -> NoteRelevance:
    """Split the collection against a selection.

    Args:
        notes: The note snapshot.
        selected: Selected tags; normalized before use.
        now: Reference time for recency.
        settings: Ranking constants.

    Returns:
        NoteRelevance whose ``related`` list never contains a direct match
        and is ordered by score, best first. Equal scores keep collection
        order.
    """
    settings = settings or DEFAULT_SETTINGS
    now = now or utc_now()
    wanted = normalize_tags(selected or [])

    direct = direct_matches(notes, wanted)
    direct_ids = {n.id for n in direct}

    similarity = SimilarityMatrix.from_notes(notes)
    related = [
        RelatedNote(note=n, score=score_related(n, wanted, similarity, now, settings))
        for n in notes
        if n.id not in direct_ids
    ]
    related.sort(key=lambda r: r.score, reverse=True)
    return NoteRelevance(direct=direct, related=related)
