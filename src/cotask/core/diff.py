"""
Line-level patching with a unified-diff-like micro-format.

A diff is one or more hunks.  Each hunk starts with a header line

    @@ -origStart,origLen +newStart,newLen @@

(1-based, counts may be omitted and then default to 1) followed by change lines prefixed with
``+`` (insert), ``-`` (delete from the original) or a single space (context).  Any other line inside
a hunk is ignored.

Hunks are applied in document order with a cursor into the original lines: untouched lines before a
hunk's ``origStart`` are copied through, and everything after the last hunk is appended unchanged.
"""

import re
from enum import Enum
from typing import (
    List,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
)

_HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")


class DiffError(ValueError):
    """Raised when a hunk does not fit the text it is applied to."""


class LineTag(str, Enum):
    """Kind of a change line inside a hunk."""

    CONTEXT = "context"
    ADD = "add"
    REMOVE = "remove"


_PREFIX_TAGS = {" ": LineTag.CONTEXT, "+": LineTag.ADD, "-": LineTag.REMOVE}


class DiffLine(BaseModel):
    """A single tagged change line (prefix stripped)."""

    tag: LineTag
    text: str


class DiffHunk(BaseModel):
    """A contiguous change region described by its original and revised line ranges."""

    original_start: int
    original_len: int
    new_start: int
    new_len: int
    lines: List[DiffLine] = Field(default_factory=list)

    @property
    def start_index(self) -> int:
        """0-based index of the first original line the hunk touches."""
        if self.original_len == 0:
            # Pure insertion: origStart names the line the new lines follow.
            return self.original_start
        return max(self.original_start - 1, 0)

    @property
    def consumed(self) -> int:
        """Number of original lines this hunk walks over."""
        return sum(1 for line in self.lines if line.tag is not LineTag.ADD)

    @property
    def produced(self) -> int:
        """Number of revised lines this hunk yields."""
        return sum(1 for line in self.lines if line.tag is not LineTag.REMOVE)


def parse_diff(diff: str) -> List[DiffHunk]:
    """Split *diff* into hunks.  Lines before the first header are dropped."""
    hunks: List[DiffHunk] = []
    current: Optional[DiffHunk] = None

    for raw in diff.split("\n"):
        match = _HUNK_HEADER.match(raw)
        if match:
            orig_start, orig_len, new_start, new_len = match.groups()
            current = DiffHunk(
                original_start=int(orig_start),
                original_len=int(orig_len) if orig_len is not None else 1,
                new_start=int(new_start),
                new_len=int(new_len) if new_len is not None else 1,
            )
            hunks.append(current)
            continue

        if current is None or not raw:
            continue
        tag = _PREFIX_TAGS.get(raw[0])
        if tag is None:
            # e.g. "\ No newline at end of file"
            continue
        current.lines.append(DiffLine(tag=tag, text=raw[1:]))

    return hunks


def _check_hunk(hunk: DiffHunk, index: int, cursor: int, total: int) -> None:
    label = f"hunk {index} (@@ -{hunk.original_start},{hunk.original_len} "
    label += f"+{hunk.new_start},{hunk.new_len} @@)"

    if hunk.consumed != hunk.original_len:
        raise DiffError(
            f"{label} declares {hunk.original_len} original lines but its body has "
            f"{hunk.consumed} context/removed lines"
        )
    if hunk.produced != hunk.new_len:
        raise DiffError(
            f"{label} declares {hunk.new_len} new lines but its body has "
            f"{hunk.produced} context/added lines"
        )
    start = hunk.start_index
    if start < cursor:
        raise DiffError(f"{label} overlaps the previous hunk (starts before line {cursor + 1})")
    if start + hunk.consumed > total:
        raise DiffError(f"{label} runs past the end of the original ({total} lines)")


def apply_hunks(original: str, hunks: List[DiffHunk], strict: bool = True) -> str:
    """
    Apply already parsed *hunks* to *original*.

    With *strict* set, every hunk that carries change lines must agree with its header counts and
    must stay inside the original text, otherwise :class:`DiffError` is raised.  Hunks without any
    change lines are no-ops either way.
    """
    original_lines = original.split("\n") if original else []
    revised: List[str] = []
    cursor = 0

    for index, hunk in enumerate(hunks, start=1):
        if strict and hunk.lines:
            _check_hunk(hunk, index, cursor, len(original_lines))

        while cursor < hunk.start_index and cursor < len(original_lines):
            revised.append(original_lines[cursor])
            cursor += 1

        for line in hunk.lines:
            if line.tag is LineTag.REMOVE:
                cursor += 1
            elif line.tag is LineTag.ADD:
                revised.append(line.text)
            else:
                revised.append(original_lines[cursor] if cursor < len(original_lines) else line.text)
                cursor += 1

    revised.extend(original_lines[cursor:])
    return "\n".join(revised)


def apply_diff(original: str, diff: str, strict: bool = True) -> str:
    """Patch *original* with the hunks in *diff* and return the revised text."""
    return apply_hunks(original, parse_diff(diff), strict=strict)
