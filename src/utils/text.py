"""
Text Helpers

- ``truncate_excerpt()`` shortens round output quoted as violation evidence.
- ``slugify_target()`` is used when a session ID is derived from a target path.
- ``contains_any()`` is the case-insensitive keyword match shared by the
  mediator and the role checks.
"""

import re
from typing import Iterable

EXCERPT_ELLIPSIS = "..."


def truncate_excerpt(content: str, max_chars: int = 200) -> str:
    """Excerpt of at most ``max_chars`` characters, ending in an ellipsis.

    The cut falls on the last whitespace in the second half of the window
    so a word is not split; output without such whitespace is cut hard.
    """
    if len(content) <= max_chars:
        return content

    window = content[: max(max_chars - len(EXCERPT_ELLIPSIS), 0)]
    space = max(window.rfind(" "), window.rfind("\n"))
    if space > len(window) // 2:
        window = window[:space]
    return window.rstrip() + EXCERPT_ELLIPSIS


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Identifiers
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

_NON_ALNUM_RE = re.compile(r"[^a-zA-Z0-9]")


def slugify_target(target: str, max_len: int = 30) -> str:
    """Turn a target path into a filesystem-safe slug.

    Every non-alphanumeric character becomes ``-``.

    Examples
    --------
    >>> slugify_target("src/api/routes.ts")
    'src-api-routes-ts'
    """
    return _NON_ALNUM_RE.sub("-", target)[:max_len]


def contains_any(text: str, keywords: Iterable[str]) -> bool:
    """True if any keyword occurs in *text*, ignoring case."""
    lowered = text.lower()
    return any(kw.lower() in lowered for kw in keywords)
