"""Tests for the tag bar composition."""
import datetime

import pytest

from storm_notes.config import RankingSettings
from storm_notes.services.tag_bar import (
    compose_tag_bar,
    filter_tag_bar,
    relatedness,
    toggle_tag,
)
from storm_notes.services.tag_index import SimilarityMatrix

DAY = datetime.timedelta(days=1)


@pytest.fixture
def notes(make_note):
    return [
        make_note("n1", ["python", "code"], age=1 * DAY),
        make_note("n2", ["python", "code", "tests"], age=2 * DAY),
        make_note("n3", ["python", "ideas"], age=3 * DAY),
        make_note("n4", ["travel", "ideas"], age=4 * DAY),
        make_note("n5", ["travel"], age=5 * DAY),
        make_note("n6", ["music"], age=40 * DAY),
    ]


class TestRelatedness:
    """Tests for mean similarity to a selection."""

    def test_mean_not_max(self, notes):
        sim = SimilarityMatrix.from_notes(notes)
        # code: sim(code, python)=2/3, sim(code, travel)=0
        assert relatedness("code", ["python", "travel"], sim) == pytest.approx(1 / 3)

    def test_empty_selection(self, notes):
        assert relatedness("code", [], SimilarityMatrix.from_notes(notes)) == 0.0


class TestComposeTagBar:
    """Tests for compose_tag_bar."""

    def test_no_selection_lists_every_tag_once(self, notes, now):
        bar = compose_tag_bar(notes, [], now=now)
        assert sorted(bar) == sorted(["python", "code", "tests", "ideas", "travel", "music"])
        assert len(bar) == len(set(bar))
        assert bar[0] == "python"

    def test_no_selection_is_capped(self, make_note, now):
        many = [make_note(f"n{i}", [f"tag{i}"]) for i in range(80)]
        assert len(compose_tag_bar(many, [], now=now)) == 50
        uncapped = RankingSettings(tag_bar_limit=None)
        assert len(compose_tag_bar(many, [], now=now, settings=uncapped)) == 80

    def test_ties_are_alphabetical(self, make_note, now):
        """Identical scores and no similarity order alphabetically."""
        notes = [make_note("a", ["zeta"]), make_note("b", ["alpha"]), make_note("c", ["mid"])]
        assert compose_tag_bar(notes, [], now=now) == ["alpha", "mid", "zeta"]

    def test_selection_locked_first(self, notes, now):
        bar = compose_tag_bar(notes, ["travel", "python"], now=now)
        assert bar[:2] == ["travel", "python"]
        assert len(bar) == len(set(bar))
        assert set(bar) == {"python", "code", "tests", "ideas", "travel", "music"}

    def test_related_before_others(self, notes, now):
        """Tags co-occurring with the selection come right after it."""
        bar = compose_tag_bar(notes, ["python"], now=now)
        assert bar[0] == "python"
        # code, ideas and tests pass the threshold; order is relatedness + base score
        assert bar[1:4] == ["code", "ideas", "tests"]
        assert set(bar[4:]) == {"travel", "music"}

    def test_unknown_selected_tag_kept(self, notes, now):
        bar = compose_tag_bar(notes, ["Nothing-Here"], now=now)
        assert bar[0] == "nothing-here"
        assert len(bar) == 7

    def test_empty_collection(self, now):
        assert compose_tag_bar([], [], now=now) == []
        assert compose_tag_bar([], ["x"], now=now) == ["x"]

    def test_threshold_is_configurable(self, notes, now):
        strict = RankingSettings(relatedness_threshold=0.5)
        bar = compose_tag_bar(notes, ["python"], now=now, settings=strict)
        assert bar[1] == "code"
        assert "tests" in bar[2:]

    def test_idempotent(self, notes, now):
        assert compose_tag_bar(notes, ["ideas"], now=now) == compose_tag_bar(
            notes, ["ideas"], now=now
        )


class TestFilterAndToggle:
    """Tests for the tag search box and selection toggling."""

    def test_filter_substring_case_insensitive(self):
        tags = ["python", "typing", "music"]
        assert filter_tag_bar(tags, " PY ") == ["python", "typing"]
        assert filter_tag_bar(tags, "yp") == ["typing"]

    def test_empty_query_keeps_all(self):
        assert filter_tag_bar(["a", "b"], "") == ["a", "b"]
        assert filter_tag_bar(["a", "b"], None) == ["a", "b"]

    def test_toggle_adds_at_end(self):
        assert toggle_tag(["a"], "B") == ["a", "b"]

    def test_toggle_removes(self):
        assert toggle_tag(["a", "b", "c"], "b") == ["a", "c"]

    def test_toggle_blank(self):
        assert toggle_tag(["a"], "  ") == ["a"]
