"""
Text sanitizing for persistence.

PostgreSQL TEXT/JSONB columns reject NUL bytes, and PDF extractors regularly
emit them along with other C0 control characters. Everything extracted from
an upstream source goes through ``sanitize_text`` before it is stored or
chunked.
"""

import re
from bisect import bisect_right
from typing import Sequence

# C0 controls and DEL, keeping tab (\x09), newline (\x0A) and carriage return (\x0D)
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")

PAGE_SEPARATOR = "\n\n"


def remove_control_chars(text: str) -> str:
    if not text:
        return ""
    return _CONTROL_CHARS_RE.sub("", text)


def sanitize_text(text: str) -> str:
    """Strip NUL bytes and control characters, then trim surrounding whitespace."""
    return remove_control_chars(text).strip()


def join_pages(page_texts: Sequence[str]) -> tuple[str, list[int]]:
    """
    Sanitize and join per-page text.

    Returns the sanitized document text and the character offset at which
    each page starts in it, so chunk positions can be mapped back to pages
    with :func:`page_for_offset`.
    """
    cleaned = [remove_control_chars(page) for page in page_texts]
    joined = PAGE_SEPARATOR.join(cleaned)

    offsets = []
    position = 0
    for page in cleaned:
        offsets.append(position)
        position += len(page) + len(PAGE_SEPARATOR)

    leading = len(joined) - len(joined.lstrip())
    text = joined.strip()
    return text, [max(0, offset - leading) for offset in offsets]


def page_for_offset(page_offsets: Sequence[int], offset: int) -> int:
    """1-based page number containing ``offset``."""
    return max(1, bisect_right(page_offsets, offset))
