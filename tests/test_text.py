"""Tests for the text helpers."""
import pytest

from storm_notes.text import (
    MAX_TITLE_LENGTH,
    body_without_title,
    computed_title_from_body,
    normalize_tag,
    normalize_tags,
    parse_tag_list,
    split_lines,
    unique,
)


class TestLineSplitting:
    """Tests for splitting bodies on every kind of line break."""

    @pytest.mark.parametrize(
        "separator", ["\r\n", "\n", "\r", "\u2028", "\u2029"]
    )
    def test_all_line_breaks(self, separator):
        """Every supported terminator splits lines."""
        assert split_lines(f"a{separator}b") == ["a", "b"]

    def test_crlf_is_one_break(self):
        """CRLF does not produce an empty line in between."""
        assert split_lines("a\r\nb\r\nc") == ["a", "b", "c"]

    def test_none_body(self):
        """A missing body is one empty line."""
        assert split_lines(None) == [""]


class TestTitles:
    """Tests for title derivation."""

    def test_first_non_blank_line(self):
        """Leading blank lines are skipped and the line is stripped."""
        assert computed_title_from_body("\n \n  Hello world  \nNext") == "Hello world"

    def test_mixed_line_breaks(self):
        """Unicode separators count as line breaks."""
        assert computed_title_from_body("\u2028Title\u2029Body") == "Title"

    def test_empty_body(self):
        """Empty bodies have no title."""
        assert computed_title_from_body("") == ""
        assert computed_title_from_body("   \n\t") == ""

    def test_title_is_truncated(self):
        """Titles are cut to the maximum length."""
        title = computed_title_from_body("x" * 500)
        assert len(title) == MAX_TITLE_LENGTH

    def test_body_without_title(self):
        """The title line is dropped and the rest normalized."""
        assert body_without_title("\nTitle\r\nline 1\rline 2\n") == "line 1\nline 2"

    def test_body_without_title_only_title(self):
        """A body with only a title leaves nothing."""
        assert body_without_title("Just a title") == ""


class TestTags:
    """Tests for tag normalization."""

    def test_normalize_tag(self):
        """Tags are stripped and lowercased."""
        assert normalize_tag("  Reading ") == "reading"
        assert normalize_tag(None) == ""

    def test_unique_keeps_first_occurrence(self):
        """Order follows first occurrence."""
        assert unique(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]

    def test_normalize_tags_drops_empty(self):
        """Empty and duplicate tags disappear."""
        assert normalize_tags(["A", " ", "a", "B"]) == ["a", "b"]

    def test_parse_tag_list(self):
        """Comma-separated input is split and normalized."""
        assert parse_tag_list(" Work, ideas,,work ") == ["work", "ideas"]
        assert parse_tag_list(None) == []
        assert parse_tag_list("") == []
