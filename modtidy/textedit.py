"""Position mapping, diffing and text edit helpers."""

import bisect
import difflib
import re
from dataclasses import dataclass

from lsprotocol.types import Position, Range, TextEdit

_LINE_PATTERN = re.compile(r"[^\n]*\n|[^\n]+\Z")


def _utf16_len(text: str) -> int:
    return len(text.encode("utf-16-le")) // 2


def split_lines(text: str) -> list[str]:
    """Split text into lines, keeping each line's trailing newline."""
    return _LINE_PATTERN.findall(text)


class ColumnMapper:
    """Translates between string offsets and protocol positions.

    Protocol positions count columns in UTF-16 code units, so offsets and
    characters diverge on lines with text outside the basic plane.
    """

    def __init__(self, uri: str, content: str):
        self.uri = uri
        self.content = content
        self._line_starts = [0] + [m.end() for m in re.finditer("\n", content)]

    def position(self, offset: int) -> Position:
        """Position of a string offset."""
        if not 0 <= offset <= len(self.content):
            raise ValueError(f"offset {offset} out of range for {self.uri}")
        line = bisect.bisect_right(self._line_starts, offset) - 1
        start = self._line_starts[line]
        return Position(line=line, character=_utf16_len(self.content[start:offset]))

    def offset(self, position: Position) -> int:
        """String offset of a position."""
        if not 0 <= position.line < len(self._line_starts):
            raise ValueError(f"line {position.line} out of range for {self.uri}")
        start = self._line_starts[position.line]
        if position.line + 1 < len(self._line_starts):
            end = self._line_starts[position.line + 1] - 1
        else:
            end = len(self.content)

        units = 0
        for index, char in enumerate(self.content[start:end]):
            if units == position.character:
                return start + index
            units += 2 if ord(char) > 0xFFFF else 1
            if units > position.character:
                raise ValueError(f"position {position} splits a character in {self.uri}")
        if units == position.character:
            return end
        raise ValueError(f"column {position.character} out of range on line {position.line} of {self.uri}")

    def range(self, start: int, end: int) -> Range:
        return Range(start=self.position(start), end=self.position(end))


def compare_position(a: Position, b: Position) -> int:
    if a.line != b.line:
        return -1 if a.line < b.line else 1
    if a.character != b.character:
        return -1 if a.character < b.character else 1
    return 0


def compare_range(a: Range, b: Range) -> int:
    """Order ranges by start, then by end. Zero means identical."""
    result = compare_position(a.start, b.start)
    if result != 0:
        return result
    return compare_position(a.end, b.end)


@dataclass(frozen=True)
class DiffEdit:
    """Replacement of ``old[start:end]`` with ``new_text``."""

    start: int
    end: int
    new_text: str


def compute_edits(old: str, new: str) -> list[DiffEdit]:
    """Compute a line-based edit script turning ``old`` into ``new``.

    Args:
        old: Original text
        new: Desired text

    Returns:
        Non-overlapping edits, ordered by offset into ``old``
    """
    old_lines = split_lines(old)
    new_lines = split_lines(new)

    offsets = [0]
    for line in old_lines:
        offsets.append(offsets[-1] + len(line))

    matcher = difflib.SequenceMatcher(None, old_lines, new_lines, autojunk=False)
    edits = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            continue
        edits.append(DiffEdit(start=offsets[i1], end=offsets[i2], new_text="".join(new_lines[j1:j2])))
    return edits


def to_protocol_edits(mapper: ColumnMapper, edits: list[DiffEdit]) -> list[TextEdit]:
    return [TextEdit(range=mapper.range(edit.start, edit.end), new_text=edit.new_text) for edit in edits]


def apply_edits(content: str, edits: list[TextEdit]) -> str:
    """Apply edits that were all computed against ``content``.

    The edits may come in any order. Insertions at the same position keep
    their relative order.

    Raises:
        ValueError: If two edits overlap or a range falls outside ``content``
    """
    mapper = ColumnMapper("", content)
    spans = sorted(
        ((mapper.offset(edit.range.start), mapper.offset(edit.range.end), edit.new_text) for edit in edits),
        key=lambda span: (span[0], span[1]),
    )

    pieces = []
    cursor = 0
    for start, end, new_text in spans:
        if start < cursor:
            raise ValueError(f"overlapping edits at offset {start}")
        if end < start:
            raise ValueError(f"edit ends before it starts at offset {start}")
        pieces.append(content[cursor:start])
        pieces.append(new_text)
        cursor = end
    pieces.append(content[cursor:])
    return "".join(pieces)
