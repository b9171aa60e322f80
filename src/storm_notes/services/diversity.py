"""Maximal Marginal Relevance re-ranking for tag lists."""

from typing import Callable, Dict, Iterable, List, Mapping, Optional, Union

ScoreSource = Union[Mapping[str, float], Callable[[str], float]]
SimilarityFn = Callable[[str, str], float]

DEFAULT_LAMBDA = 0.92


def _score_lookup(scores: ScoreSource) -> Callable[[str], float]:
    if callable(scores):
        return scores
    return lambda tag: scores.get(tag, 0.0)


def rank_diverse(
    candidates: Iterable[str],
    base_scores: ScoreSource,
    similarity: SimilarityFn,
    lambda_: float = DEFAULT_LAMBDA,
    limit: Optional[int] = None,
) -> List[str]:
    """Greedily order candidates by relevance minus redundancy.

    At each step the remaining candidate maximizing

        lambda_ * base(t) - (1 - lambda_) * max(similarity(t, s) for s chosen)

    is appended. Ties go to the candidate encountered first, so callers
    wanting reproducible output should pass candidates in a stable order.

    Args:
        candidates: Tags to order. Repeats are ignored after the first.
        base_scores: Tag -> score mapping, or a function of the tag.
            Tags missing from a mapping score 0.
        similarity: Symmetric pairwise similarity in [0, 1].
        lambda_: Weight of relevance against diversity; 1 disables diversity.
        limit: Maximum number of tags to return; None for all.

    Returns:
        Ordered tags without duplicates, at most ``limit`` long.
    """
    remaining: List[str] = list(dict.fromkeys(candidates))
    if limit is not None and limit <= 0:
        return []

    score_of = _score_lookup(base_scores)
    relevance: Dict[str, float] = {t: score_of(t) for t in remaining}
    # Running max similarity of each candidate to anything chosen so far.
    redundancy: Dict[str, float] = {t: 0.0 for t in remaining}

    chosen: List[str] = []
    while remaining and (limit is None or len(chosen) < limit):
        best_tag: Optional[str] = None
        best_value = float("-inf")
        for tag in remaining:
            value = lambda_ * relevance[tag] - (1 - lambda_) * redundancy[tag]
            if value > best_value:
                best_value = value
                best_tag = tag
        if best_tag is None:
            break

        chosen.append(best_tag)
        remaining.remove(best_tag)
        for tag in remaining:
            sim = similarity(tag, best_tag)
            if sim > redundancy[tag]:
                redundancy[tag] = sim

    return chosen
