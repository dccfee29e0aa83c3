"""Tests for the truncation policy."""
from __future__ import annotations

from ralph_tools.truncation import (
    FILE_HINT,
    number_lines,
    parse_truncation_marker,
    preview_file,
    slice_lines,
    truncate_text,
    truncation_marker,
)


def test_short_text_untouched():
    result = truncate_text("hello", 10)
    assert result.text == "hello"
    assert not result.truncated
    assert parse_truncation_marker(result.text) is None


def test_truncated_text_bounded_and_states_true_size():
    text = "\n".join(f"line {i}" for i in range(500))
    result = truncate_text(text, 200)
    marker = truncation_marker(len(text), 500, "first 200 chars")
    assert result.truncated
    assert len(result.text) <= 200 + len(marker)
    info = parse_truncation_marker(result.text)
    assert info is not None
    assert info.total_chars == len(text)
    assert info.total_lines == 500
    assert info.showing == "first 200 chars"


def test_number_lines_format():
    assert number_lines(["a", "b"], start=9) == "     9| a\n    10| b"


def test_preview_small_file_verbatim():
    result = preview_file("a\nb", max_chars=100, max_lines=10)
    assert result.text == "a\nb"
    assert not result.truncated
    assert result.total_lines == 2


def test_preview_large_file_caps_lines():
    content = "\n".join("x" * 10 for _ in range(1000))
    result = preview_file(content, max_chars=500, max_lines=5)
    assert result.truncated
    assert result.line_start == 1
    assert result.line_end == 5
    assert result.text.startswith("     1| xxxxxxxxxx")
    info = parse_truncation_marker(result.text)
    assert info.total_lines == 1000
    assert info.total_chars == len(content)
    assert info.showing == "lines 1-5"
    assert FILE_HINT in result.text


def test_preview_large_file_caps_chars():
    content = "\n".join("y" * 50 for _ in range(100))
    result = preview_file(content, max_chars=200, max_lines=400)
    body, _, _ = result.text.partition("\n\n... [TRUNCATED")
    assert len(body) <= 200
    assert result.line_end == len(body.split("\n"))


def test_preview_single_huge_line_is_cut():
    content = "z" * 1000
    result = preview_file(content, max_chars=100, max_lines=400)
    body, _, _ = result.text.partition("\n\n... [TRUNCATED")
    assert len(body) == 100
    assert result.line_end == 1


def test_slice_lines_clamps_bounds():
    content = "a\nb\nc\nd"
    section = slice_lines(content, 2, 99)
    assert section.line_start == 2
    assert section.line_end == 4
    assert section.text == "     2| b\n     3| c\n     4| d"


def test_slice_lines_unnumbered_and_past_end():
    content = "a\nb"
    assert slice_lines(content, 1, 1, numbered=False).text == "a"
    assert slice_lines(content, 5, None).text == ""


def test_parse_picks_last_marker():
    text = "x" + truncation_marker(10, 2, "first 1 chars") + truncation_marker(20, 3, "lines 1-1")
    info = parse_truncation_marker(text)
    assert info.total_chars == 20
    assert info.total_lines == 3
