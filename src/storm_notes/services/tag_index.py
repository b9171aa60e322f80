"""Tag index and tag-to-tag similarity.

The index maps every tag to the set of note IDs carrying it. Similarity
between two tags is the Jaccard coefficient of those sets: tags that tend
to appear on the same notes are similar.
"""

from typing import Dict, Iterable, List, Set

import numpy as np

from storm_notes.models.schema import Note

TagIndex = Dict[str, Set[str]]


def build_tag_index(notes: Iterable[Note]) -> TagIndex:
    """Map each tag to the IDs of the notes carrying it.

    Tags appear in the order they are first encountered.
    """
    index: TagIndex = {}
    for note in notes:
        for tag in note.tags:
            index.setdefault(tag, set()).add(note.id)
    return index


def all_tags(index: TagIndex) -> List[str]:
    return list(index.keys())


def jaccard(a: Set[str], b: Set[str]) -> float:
    """|a & b| / |a | b|, or 0 when either set is empty."""
    if not a or not b:
        return 0.0
    small, large = (a, b) if len(a) < len(b) else (b, a)
    inter = sum(1 for v in small if v in large)
    union = len(a) + len(b) - inter
    return inter / union if union else 0.0


def tag_similarity(tag_a: str, tag_b: str, index: TagIndex) -> float:
    """Jaccard similarity of two tags' note sets; a tag is fully similar to itself."""
    if tag_a == tag_b:
        return 1.0
    return jaccard(index.get(tag_a, set()), index.get(tag_b, set()))


class SimilarityMatrix:
    """All pairwise tag similarities, computed once per note snapshot.

    Built from a tag-by-note incidence matrix: the intersection counts are
    ``M @ M.T`` and the union counts follow from the set sizes.
    """

    def __init__(self, tags: List[str], values: np.ndarray):
        self.tags = tags
        self.values = values
        self._position = {t: i for i, t in enumerate(tags)}

    @classmethod
    def from_index(cls, index: TagIndex) -> "SimilarityMatrix":
        tags = list(index.keys())
        if not tags:
            return cls([], np.zeros((0, 0)))

        note_ids = sorted({nid for ids in index.values() for nid in ids})
        column = {nid: j for j, nid in enumerate(note_ids)}
        incidence = np.zeros((len(tags), len(note_ids)), dtype=np.int64)
        for i, tag in enumerate(tags):
            for nid in index[tag]:
                incidence[i, column[nid]] = 1

        inter = incidence @ incidence.T
        sizes = np.diag(inter)
        union = sizes[:, None] + sizes[None, :] - inter
        values = np.divide(
            inter,
            union,
            out=np.zeros(inter.shape, dtype=np.float64),
            where=union > 0,
        )
        np.fill_diagonal(values, 1.0)
        return cls(tags, values)

    @classmethod
    def from_notes(cls, notes: Iterable[Note]) -> "SimilarityMatrix":
        return cls.from_index(build_tag_index(notes))

    def __contains__(self, tag: str) -> bool:
        return tag in self._position

    def __len__(self) -> int:
        return len(self.tags)

    def get(self, tag_a: str, tag_b: str) -> float:
        """Similarity of two tags; unknown tags are similar to nothing but themselves."""
        if tag_a == tag_b:
            return 1.0
        i = self._position.get(tag_a)
        j = self._position.get(tag_b)
        if i is None or j is None:
            return 0.0
        return float(self.values[i, j])

    __call__ = get
