"""Offset/position conversion and incremental text edits."""

from __future__ import annotations

from bisect import bisect_right
from typing import Iterable, List, Set

from .models import Position, Range, Span, TextChange


class LineIndex:
    """Maps between string offsets and zero-based line/character positions.

    Characters are UTF-16 code units, as editors count them: a character
    outside the Basic Multilingual Plane occupies two columns.
    """

    def __init__(self, text: str) -> None:
        self._text = text
        self._length = len(text)
        starts: List[int] = [0]
        wide_lines: Set[int] = set()
        for index, char in enumerate(text):
            if char == "\n":
                starts.append(index + 1)
            elif ord(char) > 0xFFFF:
                wide_lines.add(len(starts) - 1)
        self._line_starts = starts
        self._wide_lines = wide_lines

    @property
    def line_count(self) -> int:
        return len(self._line_starts)

    def position(self, offset: int) -> Position:
        offset = min(max(offset, 0), self._length)
        line = bisect_right(self._line_starts, offset) - 1
        start = self._line_starts[line]
        character = offset - start
        if line in self._wide_lines:
            character += sum(1 for char in self._text[start:offset] if ord(char) > 0xFFFF)
        return Position(line=line, character=character)

    def offset(self, position: Position) -> int:
        """Return the offset for ``position``, clamping past-the-end lines and columns."""
        if position.line < 0:
            return 0
        if position.line >= len(self._line_starts):
            return self._length
        span = self.line_span(position.line)
        column = max(position.character, 0)
        if position.line not in self._wide_lines:
            return min(span.start + column, span.end)
        offset = span.start
        while offset < span.end and column > 0:
            column -= 2 if ord(self._text[offset]) > 0xFFFF else 1
            offset += 1
        return offset

    def range(self, span: Span) -> Range:
        return Range(start=self.position(span.start), end=self.position(span.end))

    def line_span(self, line: int) -> Span:
        """Return the span of ``line`` without its trailing newline."""
        if line < 0 or line >= len(self._line_starts):
            return Span(self._length, self._length)
        start = self._line_starts[line]
        if line + 1 < len(self._line_starts):
            end = self._line_starts[line + 1] - 1
        else:
            end = self._length
        return Span(start, end)


def apply_text_changes(text: str, changes: Iterable[TextChange]) -> str:
    """Apply editor changes in order; each range refers to the text left by the previous change."""
    for change in changes:
        if change.range is None:
            text = change.text
            continue
        index = LineIndex(text)
        start = index.offset(change.range.start)
        end = index.offset(change.range.end)
        if end < start:
            start, end = end, start
        text = text[:start] + change.text + text[end:]
    return text


__all__ = ["LineIndex", "apply_text_changes"]
