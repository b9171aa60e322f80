"""Text helpers for note bodies and tag input."""

import re
from typing import Iterable, List, Optional, TypeVar

T = TypeVar("T")

# Every line terminator a pasted or shared body may contain
SPLIT_RE = re.compile(r"\r\n|\n|\r|\u2028|\u2029")

MAX_TITLE_LENGTH = 120
UNTITLED = "(untitled)"


def split_lines(body: str) -> List[str]:
    """Split a body on any kind of line break."""
    return SPLIT_RE.split(body or "")


def computed_title_from_body(body: str) -> str:
    """Derive a note title from its body.

    The title is the first non-blank line, stripped and cut to 120 characters.
    An empty body yields an empty title.

    Examples:
        "\\n\\n  Hello world  \\nNext line" -> "Hello world"
    """
    for line in split_lines(body):
        stripped = line.strip()
        if stripped:
            return stripped[:MAX_TITLE_LENGTH]
    return ""


def body_without_title(body: str) -> str:
    """Return the body with its title line removed.

    Line breaks of every kind are normalized to ``\\n`` and the result is
    stripped.
    """
    rest = []
    used = False
    for line in split_lines(body):
        if not used and line.strip():
            used = True
            continue
        rest.append(line)
    return "\n".join(rest).strip()


def normalize_tag(tag: Optional[str]) -> str:
    """Normalize a tag to its canonical form (stripped, lowercase)."""
    if not tag:
        return ""
    return tag.strip().lower()


def unique(items: Iterable[T]) -> List[T]:
    """De-duplicate while keeping first-occurrence order."""
    seen = set()
    result = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        result.append(item)
    return result


def normalize_tags(tags: Iterable[str]) -> List[str]:
    """Normalize, drop empties and de-duplicate a sequence of tags."""
    return unique(t for t in (normalize_tag(tag) for tag in tags) if t)


def parse_tag_list(value: Optional[str]) -> List[str]:
    """Parse a comma-separated tag string into normalized tags.

    >>> parse_tag_list(" Work, ideas,,work ")
    ['work', 'ideas']
    """
    if not value:
        return []
    return normalize_tags(value.split(","))
