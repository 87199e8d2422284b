"""Glob-style name matching for the select/deselect built-ins."""

from __future__ import annotations


def matches(text: str, pattern: str) -> bool:
    """Return whether ``text`` matches a pattern containing ``*`` and ``?``.

    ``?`` matches exactly one character and ``*`` matches any run of
    characters, including none. Matching is case-sensitive.
    """
    n = len(text)
    m = len(pattern)
    i = 0
    j = 0
    star: int | None = None
    restart = 0

    while i < n:
        if j < m and (pattern[j] == "?" or pattern[j] == text[i]):
            i += 1
            j += 1
        elif j < m and pattern[j] == "*":
            # Let the star match nothing for now; remember where to resume.
            star = j
            restart = i
            j += 1
        elif star is not None:
            # Give the last star one more character and retry after it.
            restart += 1
            i = restart
            j = star + 1
        else:
            return False

    while j < m and pattern[j] == "*":
        j += 1
    return j == m
