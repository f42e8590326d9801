"""Shared sanitization utilities for configured header values."""

from __future__ import annotations

import re

# C0 controls (\x00-\x1f), DEL (\x7f), C1 controls (\x80-\x9f),
# Unicode line/paragraph separators (\u2028-\u2029),
# bidi overrides (\u200b-\u200f, \u202a-\u202e, \u2066-\u2069),
# zero-width no-break space / BOM (\ufeff).
CONTROL_CHARS_RE = re.compile(
    r"[\x00-\x1f\x7f-\x9f\u2028\u2029\u200b-\u200f\u202a-\u202e\u2066-\u2069\ufeff]"
)


def strip_control_chars(value: str) -> str:
    """Strip all control characters from a string."""
    return CONTROL_CHARS_RE.sub("", value)


def split_tokens(value: str | None) -> list[str]:
    """Split a source list on any whitespace run, dropping control characters.

    Whitespace (space, tab, CR, LF, ...) separates tokens; any other control
    character is removed from inside the token it appears in.
    """
    if not value:
        return []
    tokens = (strip_control_chars(token) for token in value.split())
    return [token for token in tokens if token]


def collapse_whitespace(value: str | None) -> str:
    """Collapse whitespace runs into single spaces and trim the ends."""
    return " ".join(split_tokens(value))
