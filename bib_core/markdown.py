"""
Markdown helpers for bib_core.

This module provides functions for working with chapter markdown:
- Locating code regions (fenced blocks, indented blocks, inline code spans)
- Splitting text into the segments that may contain citations
- Computing relative paths between chapters
"""

import logging
from pathlib import PurePosixPath
from typing import List, Optional, Tuple

from bib_core.constants import (
    FENCE_RE,
    INDENTED_LINE_RE,
    LIST_ITEM_RE,
    INLINE_CODE_RE,
)

logger = logging.getLogger(__name__)

Span = Tuple[int, int]


def _code_block_spans(text: str) -> List[Span]:
    """Return (start, end) offsets of fenced and indented code block lines."""
    spans: List[Span] = []
    offset = 0
    fence: Optional[str] = None
    prev_blank = True
    in_indented = False
    in_list = False

    for line in text.splitlines(keepends=True):
        start, end = offset, offset + len(line)
        offset = end
        stripped = line.strip()

        if fence is not None:
            spans.append((start, end))
            if stripped.startswith(fence) and set(stripped) == {fence[0]}:
                fence = None
            continue

        match = FENCE_RE.match(line)
        if match:
            fence = match.group('fence')
            spans.append((start, end))
            prev_blank = in_indented = False
            continue

        if not stripped:
            prev_blank = True
            continue

        if INDENTED_LINE_RE.match(line):
            if not in_list and (prev_blank or in_indented):
                spans.append((start, end))
                in_indented = True
                prev_blank = False
                continue
        else:
            in_list = LIST_ITEM_RE.match(line) is not None or (in_list and not prev_blank)

        in_indented = False
        prev_blank = False

    return spans


def _merge(spans: List[Span]) -> List[Span]:
    merged: List[Span] = []
    for start, end in sorted(spans):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def find_code_spans(text: str) -> List[Span]:
    """
    Find all regions of markdown text that hold code.

    Fenced blocks (``` or ~~~), indented code blocks and inline code spans
    are reported. An unterminated fence runs to the end of the text.

    Args:
        text: Markdown content

    Returns:
        Sorted, non-overlapping list of (start, end) offsets
    """
    blocks = _merge(_code_block_spans(text))
    spans = list(blocks)

    position = 0
    for block_start, block_end in blocks + [(len(text), len(text))]:
        for match in INLINE_CODE_RE.finditer(text, position, block_start):
            spans.append(match.span())
        position = block_end

    return _merge(spans)


def unprotected_segments(text: str) -> List[Span]:
    """
    Return the (start, end) offsets of text outside any code region.

    Args:
        text: Markdown content

    Returns:
        Ordered list of segments that may be scanned for citations
    """
    segments: List[Span] = []
    position = 0
    for start, end in find_code_spans(text):
        if start > position:
            segments.append((position, start))
        position = end
    if position < len(text):
        segments.append((position, len(text)))
    return segments


def path_to_root(chapter_path: Optional[str]) -> str:
    """
    Build the relative prefix that leads from a chapter back to the book root.

    Args:
        chapter_path: Chapter source path relative to the book src directory

    Returns:
        A prefix such as "" or "../../"
    """
    if not chapter_path:
        return ""
    depth = len(PurePosixPath(chapter_path.replace("\\", "/")).parent.parts)
    return "../" * depth
