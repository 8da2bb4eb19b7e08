"""
authgate.paths
~~~~~~~~~~~~~~
Decides whether a request path falls under a block's protected paths.

The matching rule itself is pluggable:

    PrefixMatcher    "/secret" protects "/secret", "/secret/x", "/secrets"
    WildcardMatcher  "/api/*/admin" with shell-style wildcards
"""

from __future__ import annotations

import fnmatch
import posixpath
from typing import Iterable, Protocol


class PathMatcher(Protocol):
    def matches(self, path: str, pattern: str) -> bool: ...


def _clean(p: str) -> str:
    trailing = p.endswith("/")
    p = posixpath.normpath(p)
    # normpath keeps a leading "//", which a URL path never means
    if p.startswith("//"):
        p = "/" + p.lstrip("/")
    if trailing and not p.endswith("/"):
        p += "/"
    return p


class PrefixMatcher:
    """Prefix match on cleaned paths.  ``""`` and ``"/"`` match everything."""

    def __init__(self, case_sensitive: bool = True) -> None:
        self.case_sensitive = case_sensitive

    def matches(self, path: str, pattern: str) -> bool:
        if pattern in ("", "/"):
            return True
        path, pattern = _clean(path or "/"), _clean(pattern)
        if not self.case_sensitive:
            path, pattern = path.lower(), pattern.lower()
        return path.startswith(pattern)

    def __repr__(self) -> str:
        return f"PrefixMatcher(case_sensitive={self.case_sensitive})"


class WildcardMatcher:
    """Shell-style wildcards; a pattern without wildcards falls back to a prefix match."""

    def __init__(self) -> None:
        self._prefix = PrefixMatcher()

    def matches(self, path: str, pattern: str) -> bool:
        if not any(c in pattern for c in "*?["):
            return self._prefix.matches(path, pattern)
        return fnmatch.fnmatchcase(_clean(path or "/"), pattern)


def is_protected(path: str, prefixes: Iterable[str], matcher: PathMatcher | None = None) -> bool:
    """True if *path* matches any of *prefixes*."""
    matcher = matcher or PrefixMatcher()
    return any(matcher.matches(path, prefix) for prefix in prefixes)
