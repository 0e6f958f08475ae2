"""Tests for the marker grammar and line scanner."""

import pytest

from codemeta.scanner import (
    canonical_token,
    extract_id,
    find_marker,
    is_activation,
    scan_line,
    scan_text,
)


class TestFindMarker:
    def test_double_slash(self):
        assert find_marker("x = 1  //codemeta[7]") == (7, 17)

    def test_hash(self):
        assert find_marker("#codemeta") == (0, 9)

    def test_html_comment(self):
        assert find_marker("<!-- codemeta[3] -->") == (0, 13)

    def test_block_comment(self):
        assert find_marker("/* codemeta[3] */") == (0, 11)

    def test_legacy_abbreviation(self):
        assert find_marker("//cm 5664210353") == (0, 4)

    def test_no_marker(self):
        assert find_marker("plain text // nothing here") is None

    def test_earliest_start_wins(self):
        line = "# cm-free #codemeta[1] //codemeta[2]"
        start, _ = find_marker(line)
        assert line[start:].startswith("#codemeta[1]")

    def test_keyword_must_end_at_word_boundary(self):
        assert find_marker("//cmake_minimum_required") is None
        assert find_marker("#codemetadata") is None

    def test_abbreviation_must_touch_opener(self):
        assert find_marker("# cm of rain") is None

    def test_canonical_preferred_at_same_offset(self):
        marker = scan_line("//codemeta[5]")
        assert marker.keyword == "codemeta"


class TestExtractId:
    def test_canonical(self):
        assert extract_id("[123] rest") == ("123", "canonical", 5)

    def test_canonical_leading_whitespace(self):
        assert extract_id("  [9]") == ("9", "canonical", 5)

    def test_legacy(self):
        assert extract_id(" 5664210353 [note]") == ("5664210353", "legacy", 11)

    def test_legacy_needs_whitespace(self):
        assert extract_id("123") is None

    def test_too_long(self):
        assert extract_id("[" + "1" * 33 + "]") is None

    def test_none(self):
        assert extract_id(" [not an id]") is None

    def test_non_ascii_digits_are_not_ids(self):
        assert extract_id("[\u0663]") is None
        assert extract_id(" \u0663\u0664") is None


class TestScanLine:
    def test_legacy_bound_marker(self):
        marker = scan_line("//cm 5664210353 [Remove this]")
        assert marker.start == 0
        assert marker.end == 4
        assert marker.fragment_id == "5664210353"
        assert marker.id_form == "legacy"
        assert marker.legacy
        assert marker.annotation == "[Remove this]"

    def test_unbound_marker(self):
        marker = scan_line("// codemeta")
        assert marker is not None
        assert marker.fragment_id is None
        assert not marker.bound
        assert marker.gap == " "

    def test_canonical_bound(self):
        marker = scan_line("    # codemeta[42] check bounds")
        assert marker.fragment_id == "42"
        assert marker.id_form == "canonical"
        assert not marker.legacy
        assert marker.annotation == "check bounds"

    def test_canonical_keyword_legacy_id(self):
        marker = scan_line("//codemeta 42")
        assert marker.fragment_id == "42"
        assert marker.legacy

    def test_annotation_strips_comment_closer(self):
        marker = scan_line("<!-- codemeta[8] see docs -->")
        assert marker.annotation == "see docs"

    def test_first_match_only(self):
        marker = scan_line("//codemeta[1] //codemeta[2]")
        assert marker.fragment_id == "1"

    @pytest.mark.parametrize(
        "line",
        ["//cm 5664210353 [Remove this]", "// codemeta", "#codemeta[0]", "<!-- cm 12 -->"],
    )
    def test_idempotent(self, line):
        assert scan_line(line, 3) == scan_line(line, 3)

    def test_scan_text_line_numbers(self):
        text = "a\r\n//codemeta[1]\r\nb\n# codemeta[2]"
        markers = scan_text(text)
        assert [(m.line, m.fragment_id) for m in markers] == [(1, "1"), (3, "2")]

    def test_non_ascii_digit_id_leaves_marker_unbound(self):
        marker = scan_line("//codemeta[\u0663]")
        assert marker is not None
        assert marker.fragment_id is None
        assert not marker.bound


class TestCanonicalToken:
    def test_upgrades_abbreviation(self):
        marker = scan_line("//cm")
        assert canonical_token(marker, "12") == "//codemeta[12]"

    def test_keeps_opener_gap(self):
        marker = scan_line("// codemeta")
        assert canonical_token(marker, "0") == "// codemeta[0]"


class TestActivation:
    def test_space_at_marker_end(self):
        assert is_activation("// codemeta", 11, " ")

    def test_underscore_at_marker_end(self):
        assert is_activation("#cm", 3, "_")

    def test_other_character(self):
        assert not is_activation("// codemeta", 11, "x")

    def test_not_at_marker_end(self):
        assert not is_activation("// codemeta trailing", 20, " ")

    def test_bound_marker(self):
        assert not is_activation("//codemeta[4]", 10, " ")

    def test_no_marker(self):
        assert not is_activation("hello", 5, " ")
