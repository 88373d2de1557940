"""
Bounded log readers.

Never read more than the configured byte budget from a server log:
- read_appended_segment: bytes appended since an offset (slow log window)
- read_tail: last N bytes of a file (error log)
"""

import os
from dataclasses import dataclass
from typing import List, Tuple


@dataclass
class LogSegment:
    """Text read from a log file plus truncation bookkeeping."""
    path: str
    text: str
    start_offset: int
    end_offset: int
    file_size: int
    truncated: bool = False

    @property
    def collected_bytes(self) -> int:
        return self.end_offset - self.start_offset


def file_size(path: str) -> int:
    """Current size in bytes; raises OSError if the file is missing."""
    return os.stat(path).st_size


def is_readable_file(path: str) -> bool:
    """Existing regular file the collector can open for reading."""
    return bool(path) and os.path.isfile(path) and os.access(path, os.R_OK)


def _read_range(path: str, start: int, length: int) -> bytes:
    with open(path, "rb") as f:
        f.seek(start)
        return f.read(length)


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def read_appended_segment(path: str, offset: int, max_bytes: int) -> LogSegment:
    """
    Read bytes appended after `offset`, consuming at most `max_bytes`.

    If the file shrank below `offset` (rotation), reading restarts at 0.
    When the budget cuts the segment, the text is cut back to the last
    complete line so no partial statement is parsed.
    """
    size = file_size(path)
    start = offset if 0 <= offset <= size else 0
    available = size - start
    truncated = available > max_bytes
    data = _read_range(path, start, min(available, max_bytes))

    if truncated:
        cut = data.rfind(b"\n")
        if cut >= 0:
            data = data[:cut + 1]

    return LogSegment(
        path=path,
        text=_decode(data),
        start_offset=start,
        end_offset=start + len(data),
        file_size=size,
        truncated=truncated,
    )


def read_tail(path: str, max_bytes: int) -> LogSegment:
    """
    Read the last `max_bytes` of a file.

    When the file is larger than the budget, the first (partial) line of
    the tail is dropped.
    """
    size = file_size(path)
    start = max(0, size - max_bytes)
    data = _read_range(path, start, size - start)
    truncated = start > 0

    if truncated:
        newline = data.find(b"\n")
        if newline >= 0:
            start += newline + 1
            data = data[newline + 1:]

    return LogSegment(
        path=path,
        text=_decode(data),
        start_offset=start,
        end_offset=size,
        file_size=size,
        truncated=truncated,
    )


def take_last_lines(text: str, max_lines: int) -> Tuple[List[str], bool]:
    """
    Non-empty, stripped lines, keeping only the last `max_lines`.

    Returns:
        (lines, truncated)
    """
    numbered, truncated = take_last_numbered_lines(text, max_lines)
    return [line for _, line in numbered], truncated


def take_last_numbered_lines(text: str, max_lines: int) -> Tuple[List[Tuple[int, str]], bool]:
    """
    Like take_last_lines, but each line keeps its 1-based line number in
    `text`. Blank lines and lines dropped by the cap still count.

    Returns:
        ([(line_number, line), ...], truncated)
    """
    numbered = [(number, line.strip()) for number, line in enumerate(text.splitlines(), start=1)]
    numbered = [(number, line) for number, line in numbered if line]
    if len(numbered) > max_lines:
        return numbered[len(numbered) - max_lines:], True
    return numbered, False
