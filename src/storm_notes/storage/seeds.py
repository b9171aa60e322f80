"""Onboarding notes added to a collection that lacks them."""

import datetime
from dataclasses import dataclass
from typing import List, Optional, Tuple

from storm_notes.models.schema import Note, utc_now


@dataclass(frozen=True)
class SeedNote:
    key: str
    title: str
    body_lines: Tuple[str, ...]
    tags: Tuple[str, ...]


SEEDS: Tuple[SeedNote, ...] = (
    SeedNote(
        key="seed-welcome",
        title="Welcome to Storm",
        body_lines=(
            "Welcome!",
            "Storm lets you build your own mind map from tags, by writing notes and linking them.",
            "Write, and get suggestions for related tags.",
        ),
        tags=("storm", "intro"),
    ),
    SeedNote(
        key="seed-filter",
        title="Filter with tags",
        body_lines=(
            "Tap tags in the top bar to filter notes.",
            "Direct matches are listed first, related notes after them.",
        ),
        tags=("storm", "intro", "filters"),
    ),
    SeedNote(
        key="seed-share",
        title="Share to Storm from the browser",
        body_lines=(
            "Share an article from the browser to Storm.",
            "The app creates a note with the title, the first lines and the link.",
            "Try it: open an article, then Share, then Storm Notes.",
        ),
        tags=("storm", "share"),
    ),
    SeedNote(
        key="seed-image",
        title="Add an image to a note",
        body_lines=(
            "Use the image icon while editing to attach an image.",
        ),
        tags=("storm", "images"),
    ),
    SeedNote(
        key="seed-suggest",
        title="Live tag suggestions while you type",
        body_lines=(
            "While you type, Storm suggests tags from the text. Known tags come first and are colored; new words are shown neutral.",
            "Tip: tap a suggestion to add it without leaving the text.",
        ),
        tags=("storm", "suggestions", "tag"),
    ),
    SeedNote(
        key="seed-pwa",
        title="Installable app and storage",
        body_lines=(
            "Install as an app or add to the home screen. Notes are stored locally and survive updates.",
        ),
        tags=("storm", "pwa", "storage"),
    ),
    SeedNote(
        key="seed-contact",
        title="Contact",
        body_lines=(
            "Feedback is always welcome.",
        ),
        tags=("storm", "contact", "feedback"),
    ),
)


def note_from_seed(seed: SeedNote, created_at: datetime.datetime) -> Note:
    body = "\n".join((seed.title,) + seed.body_lines)
    return Note(
        id=seed.key,
        title=seed.title,
        body=body,
        tags=list(seed.tags),
        created_at=created_at,
        updated_at=created_at,
    )


def ensure_seed_notes(
    existing: List[Note], now: Optional[datetime.datetime] = None
) -> List[Note]:
    """Append the seed notes whose titles are missing from the collection.

    Matching is by stripped title so that an edited seed is not re-added
    as long as its title or id survives. Added seeds are staggered a few seconds
    apart so that their recency order is stable.

    Returns:
        The original list when nothing is missing, otherwise a new list.
    """
    now = now or utc_now()
    titles = {(n.title or "").strip() for n in existing}
    ids = {n.id for n in existing}
    missing = [s for s in SEEDS if s.title not in titles and s.key not in ids]
    if not missing:
        return existing

    added = []
    for i, seed in enumerate(missing):
        offset_ms = (len(missing) - i) * 2000 + 1000
        added.append(
            note_from_seed(seed, now - datetime.timedelta(milliseconds=offset_ms))
        )
    return list(existing) + added
