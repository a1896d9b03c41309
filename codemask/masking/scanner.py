"""
Marker Scanner
---------------
Walks raw source text and splits it into verbatim spans and the fragments
found between CODEMASK marker pairs.

    /* CODEMASK_START */  ...fragment...  /* CODEMASK_END */

Every byte outside a marker pair is reproduced exactly.  A start marker with
no end marker after it is not an error: the rest of the text, dangling
marker included, is emitted as verbatim and scanning stops.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional

START_MARKER = "/* CODEMASK_START */"
END_MARKER = "/* CODEMASK_END */"


@dataclass(frozen=True)
class ScanSegment:
    """Text to copy unchanged, followed by one fragment or end-of-input (None)."""
    verbatim: str
    fragment: Optional[str] = None
    unmatched: bool = False


def scan(
    text: str,
    start_marker: str = START_MARKER,
    end_marker: str = END_MARKER,
) -> Iterator[ScanSegment]:
    """
    Yield ScanSegments covering `text` from left to right.

    Concatenating every segment's `verbatim` (and replacing each fragment with
    its original marker-delimited text) gives back the input.  The last
    segment always has fragment=None.
    """
    idx = 0
    while True:
        start = text.find(start_marker, idx)
        if start == -1:
            yield ScanSegment(verbatim=text[idx:])
            return

        end = text.find(end_marker, start + len(start_marker))
        if end == -1:
            yield ScanSegment(verbatim=text[idx:], unmatched=True)
            return

        fragment = text[start + len(start_marker): end].strip()
        yield ScanSegment(verbatim=text[idx:start], fragment=fragment)
        idx = end + len(end_marker)


def has_markers(text: str, start_marker: str = START_MARKER) -> bool:
    return start_marker in text
