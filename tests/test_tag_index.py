"""Tests for the tag index and Jaccard similarity."""
import itertools

import pytest

from storm_notes.services.tag_index import (
    SimilarityMatrix,
    all_tags,
    build_tag_index,
    jaccard,
    tag_similarity,
)


@pytest.fixture
def notes(make_note):
    return [
        make_note("n1", ["x", "y"]),
        make_note("n2", ["x"]),
        make_note("n3", ["y", "z"]),
        make_note("n4", ["w"]),
        make_note("n5", ["x", "y", "z"]),
    ]


class TestBuildIndex:
    """Tests for building the tag index."""

    def test_maps_tags_to_note_ids(self, notes):
        index = build_tag_index(notes)
        assert index == {
            "x": {"n1", "n2", "n5"},
            "y": {"n1", "n3", "n5"},
            "z": {"n3", "n5"},
            "w": {"n4"},
        }

    def test_first_encounter_order(self, notes):
        assert all_tags(build_tag_index(notes)) == ["x", "y", "z", "w"]

    def test_empty_collection(self):
        assert build_tag_index([]) == {}

    def test_idempotent(self, notes):
        """Building twice gives the same index."""
        assert build_tag_index(notes) == build_tag_index(notes)


class TestJaccard:
    """Tests for the Jaccard coefficient."""

    def test_partial_overlap(self):
        assert jaccard({"1", "2", "3"}, {"2", "3", "4"}) == pytest.approx(0.5)

    def test_identical_sets(self):
        assert jaccard({"1", "2"}, {"1", "2"}) == 1.0

    def test_disjoint_sets(self):
        assert jaccard({"1"}, {"2"}) == 0.0

    def test_empty_sets(self):
        """An empty side means no similarity."""
        assert jaccard(set(), set()) == 0.0
        assert jaccard(set(), {"1"}) == 0.0


class TestTagSimilarity:
    """Properties of the tag similarity metric."""

    def test_self_similarity_is_one(self, notes):
        index = build_tag_index(notes)
        for tag in index:
            assert tag_similarity(tag, tag, index) == 1.0
        assert tag_similarity("unknown", "unknown", index) == 1.0

    def test_bounds_and_symmetry(self, notes):
        index = build_tag_index(notes)
        for a, b in itertools.product(list(index) + ["unknown"], repeat=2):
            sim = tag_similarity(a, b, index)
            assert 0.0 <= sim <= 1.0
            assert sim == tag_similarity(b, a, index)

    def test_unknown_tag(self, notes):
        assert tag_similarity("x", "nope", build_tag_index(notes)) == 0.0


class TestSimilarityMatrix:
    """Tests for the precomputed similarity matrix."""

    def test_matches_pairwise_jaccard(self, notes):
        """Every matrix entry equals the set-based value."""
        index = build_tag_index(notes)
        matrix = SimilarityMatrix.from_index(index)
        for a, b in itertools.product(index, repeat=2):
            assert matrix.get(a, b) == pytest.approx(tag_similarity(a, b, index))

    def test_known_values(self, notes):
        matrix = SimilarityMatrix.from_notes(notes)
        assert matrix("x", "y") == pytest.approx(0.5)
        assert matrix("y", "z") == pytest.approx(2 / 3)
        assert matrix("x", "w") == 0.0

    def test_unknown_tags(self, notes):
        matrix = SimilarityMatrix.from_notes(notes)
        assert "x" in matrix
        assert "nope" not in matrix
        assert matrix.get("x", "nope") == 0.0
        assert matrix.get("nope", "nope") == 1.0

    def test_empty(self):
        matrix = SimilarityMatrix.from_notes([])
        assert len(matrix) == 0
        assert matrix.get("a", "b") == 0.0
