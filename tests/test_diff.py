"""
Tests for the diff patch engine.

Run with:
$ pytest -q
"""

import difflib

import pytest

from cotask.core.diff import (
    DiffError,
    LineTag,
    apply_diff,
    parse_diff,
)

FIVE_LINES = "Line 1\nLine 2\nLine 3\nLine 4\nLine 5"


def test_parse_diff_splits_hunks_and_tags_lines() -> None:
    """Lines before the first header are dropped, the rest belong to the open hunk."""

    hunks = parse_diff("--- a/file\n+++ b/file\n@@ -1,2 +1,2 @@\n keep\n-old\n+new\n@@ -7 +7 @@\n x")

    assert len(hunks) == 2
    first, second = hunks
    assert (first.original_start, first.original_len, first.new_start, first.new_len) == (1, 2, 1, 2)
    assert [line.tag for line in first.lines] == [LineTag.CONTEXT, LineTag.REMOVE, LineTag.ADD]
    assert [line.text for line in first.lines] == ["keep", "old", "new"]
    # counts default to 1 when omitted
    assert (second.original_len, second.new_len) == (1, 1)


def test_basic_addition_and_removal() -> None:
    original = (
        "This is the first sentence of the original document.\n"
        "This line remains unchanged.\n"
        "This line will be removed."
    )
    diff = (
        "@@ -1,3 +1,3 @@\n"
        " This is the first sentence of the original document.\n"
        " This line remains unchanged.\n"
        "-This line will be removed.\n"
        "+This line will be added."
    )

    assert apply_diff(original, diff) == (
        "This is the first sentence of the original document.\n"
        "This line remains unchanged.\n"
        "This line will be added."
    )


def test_multiple_changes_in_one_hunk() -> None:
    diff = "@@ -1,5 +1,5 @@\n Line 1\n-Line 2\n+Line 2 modified\n Line 3\n-Line 4\n+Line 4 modified\n Line 5"

    assert apply_diff(FIVE_LINES, diff) == (
        "Line 1\nLine 2 modified\nLine 3\nLine 4 modified\nLine 5"
    )


def test_separate_hunks_leave_gaps_untouched() -> None:
    diff = (
        "@@ -2,1 +2,1 @@\n-Line 2\n+Line 2 modified\n"
        "@@ -4,1 +4,1 @@\n-Line 4\n+Line 4 modified"
    )

    assert apply_diff(FIVE_LINES, diff) == (
        "Line 1\nLine 2 modified\nLine 3\nLine 4 modified\nLine 5"
    )


def test_empty_lines_in_original() -> None:
    original = "Line 1\n\nLine 3\n\nLine 5"
    diff = "@@ -1,5 +1,5 @@\n Line 1\n-\n+Added line\n Line 3\n-\n+Added another line\n Line 5"

    assert apply_diff(original, diff) == "Line 1\nAdded line\nLine 3\nAdded another line\nLine 5"


def test_header_without_changes_is_a_no_op() -> None:
    assert apply_diff(FIVE_LINES, "@@ -1,5 +1,5 @@") == FIVE_LINES


def test_context_only_diff_returns_original() -> None:
    diff = "@@ -2,3 +2,3 @@\n Line 2\n Line 3\n Line 4"

    assert apply_diff(FIVE_LINES, diff) == FIVE_LINES


def test_new_file() -> None:
    diff = "@@ -0,0 +1,5 @@\n+Line 1\n+Line 2\n+Line 3\n+Line 4\n+Line 5"

    assert apply_diff("", diff) == FIVE_LINES


def test_context_lines_keep_original_text() -> None:
    """Context lines emit the original line, not the text given in the diff."""

    diff = "@@ -1,2 +1,2 @@\n line one (paraphrased)\n-Line 2\n+Two"

    assert apply_diff("Line 1\nLine 2", diff) == "Line 1\nTwo"


def test_strict_rejects_count_mismatch() -> None:
    diff = "@@ -1,3 +1,3 @@\n-Line 1\n+First"

    with pytest.raises(DiffError, match="declares 3 original lines"):
        apply_diff(FIVE_LINES, diff)


def test_lenient_follows_cursor_rules_on_count_mismatch() -> None:
    diff = "@@ -1,3 +1,3 @@\n-Line 1\n+First"

    assert apply_diff(FIVE_LINES, diff, strict=False) == "First\nLine 2\nLine 3\nLine 4\nLine 5"


def test_strict_rejects_overlapping_hunks() -> None:
    diff = "@@ -2,2 +2,2 @@\n-Line 2\n+Two\n Line 3\n@@ -3,1 +3,1 @@\n-Line 3\n+Three"

    with pytest.raises(DiffError, match="overlaps"):
        apply_diff(FIVE_LINES, diff)


def test_strict_rejects_hunk_past_end() -> None:
    diff = "@@ -5,2 +5,2 @@\n Line 5\n-Line 6\n+Six"

    with pytest.raises(DiffError, match="past the end"):
        apply_diff(FIVE_LINES, diff)


def test_ignores_no_newline_marker() -> None:
    diff = "@@ -5,1 +5,1 @@\n-Line 5\n+Last line\n\\ No newline at end of file"

    assert apply_diff(FIVE_LINES, diff).endswith("Line 4\nLast line")


@pytest.mark.parametrize("context", [0, 1, 3])
@pytest.mark.parametrize(
    "original,target",
    [
        (FIVE_LINES, "Line 0\nLine 1\nLine 3\nLine 4 changed\nLine 5\nLine 6"),
        ("a\nb\nc\nd\ne\nf\ng\nh\ni\nj", "a\nB\nc\nd\ne\nf\ng\nH\ni\nj\nk"),
        ("only line", ""),
        ("", "brand\nnew\nfile"),
        ("keep\n", "keep\nmore\n"),
    ],
)
def test_unified_diff_round_trip(original: str, target: str, context: int) -> None:
    """A unified diff describing original -> target reproduces the target."""

    old = original.split("\n") if original else []
    new = target.split("\n") if target else []
    diff = "\n".join(difflib.unified_diff(old, new, lineterm="", n=context))

    assert apply_diff(original, diff) == target
