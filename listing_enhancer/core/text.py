"""
Small text helpers shared by the rule-based pipeline steps.
"""

import re

ELLIPSIS = "..."

_WORD_PATTERN = re.compile(r"[a-z0-9][a-z0-9'&+-]*")


def term_pattern(term: str) -> re.Pattern:
    """
    Case-insensitive whole-term matcher.

    Uses look-arounds rather than ``\\b`` so terms made of symbols
    (``***``, ``L@@K``) still match as whole tokens.
    """
    return re.compile(rf"(?<!\w){re.escape(term)}(?!\w)", re.IGNORECASE)


def words(text: str | None) -> list[str]:
    """Lower-cased word tokens, punctuation stripped."""
    if not text:
        return []
    return _WORD_PATTERN.findall(text.lower())


def collapse_whitespace(text: str) -> str:
    return " ".join(text.split())


def truncate_with_marker(text: str, limit: int, marker: str = ELLIPSIS) -> str:
    """
    Shorten ``text`` to at most ``limit`` characters ending in ``marker``.

    Cuts at the last complete word when one ends in the back half of the
    allowed span; text already within the limit is returned unchanged.
    """
    if len(text) <= limit:
        return text
    room = max(0, limit - len(marker))
    truncated = text[:room]
    last_space = truncated.rfind(" ")
    if last_space > room // 2:
        truncated = truncated[:last_space]
    return truncated.rstrip(" ,.;:-") + marker
