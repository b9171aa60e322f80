"""Composition of the tag bar.

With nothing selected, every tag is ranked best-first with near-duplicates
spread apart. With a selection, the selected tags stay locked at the front,
followed by tags related to the whole selection, followed by the rest.
"""

import datetime
from typing import Callable, List, Optional, Sequence

from storm_notes.config import RankingSettings
from storm_notes.models.schema import Note
from storm_notes.services.diversity import rank_diverse
from storm_notes.services.tag_index import SimilarityMatrix, build_tag_index
from storm_notes.services.tag_scoring import tag_base_scores
from storm_notes.text import normalize_tag, normalize_tags

DEFAULT_SETTINGS = RankingSettings()


def relatedness(
    tag: str, selected: Sequence[str], similarity: Callable[[str, str], float]
) -> float:
    """Mean similarity of a tag to every selected tag; 0 for no selection."""
    if not selected:
        return 0.0
    return sum(similarity(tag, s) for s in selected) / len(selected)


def compose_tag_bar(
    notes: List[Note],
    selected: Optional[Sequence[str]] = None,
    now: Optional[datetime.datetime] = None,
    settings: Optional[RankingSettings] = None,
) -> List[str]:
    """Order the tags offered for filtering and tagging.

    Args:
        notes: The note snapshot.
        selected: Current selection, in selection order. Selected tags that
            no note carries are still kept at the front.
        now: Reference time for recency.
        settings: Ranking constants.

    Returns:
        Tags without duplicates. The diversified part is capped at
        ``settings.tag_bar_limit``; the locked and related parts are not.
    """
    settings = settings or DEFAULT_SETTINGS
    locked = normalize_tags(selected or [])

    index = build_tag_index(notes)
    if not index:
        return locked

    base = tag_base_scores(notes, now=now, settings=settings)
    sim = SimilarityMatrix.from_index(index)

    # Alphabetical candidate order makes MMR ties reproducible.
    locked_set = set(locked)
    remaining = sorted(t for t in index if t not in locked_set)

    if not locked:
        return rank_diverse(
            remaining, base, sim, settings.mmr_lambda, settings.tag_bar_limit
        )

    rel = {t: relatedness(t, locked, sim) for t in remaining}
    related = [t for t in remaining if rel[t] >= settings.relatedness_threshold]
    # sorted() is stable, so equal scores keep alphabetical order
    related = sorted(related, key=lambda t: rel[t] + base.get(t, 0.0), reverse=True)

    related_set = set(related)
    others = [t for t in remaining if t not in related_set]
    diversified = rank_diverse(
        others, base, sim, settings.mmr_lambda, settings.tag_bar_limit
    )
    return locked + related + diversified


def filter_tag_bar(tags: Sequence[str], query: Optional[str]) -> List[str]:
    """Keep the tags containing the query, case-insensitively, in bar order."""
    q = (query or "").strip().lower()
    if not q:
        return list(tags)
    return [t for t in tags if q in t.lower()]


def toggle_tag(selection: Sequence[str], tag: str) -> List[str]:
    """Select a tag, or deselect it when it is already selected.

    Newly selected tags go to the end so the lock order follows selection
    order.
    """
    name = normalize_tag(tag)
    current = normalize_tags(selection)
    if not name:
        return current
    if name in current:
        return [t for t in current if t != name]
    return current + [name]
