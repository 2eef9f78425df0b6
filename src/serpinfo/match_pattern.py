"""
Match patterns and a multi-pattern URL index.

A match pattern has the form ``scheme://host/path``:

- scheme ``*`` matches ``http`` and ``https``, anything else must be exact
- host ``*`` matches any host, ``*.example.com`` matches ``example.com`` and
  all of its subdomains, anything else must be exact
- ``*`` in the path matches any run of characters (including none); the path
  is compared against the URL path plus its query string

``<all_urls>`` matches every http(s) URL.

MatchPatternMap indexes many (pattern, value) pairs by host so that a lookup
only visits the buckets of the URL's hostname suffixes plus the host-wildcard
bucket:
1. Hostname map for exact and ``*.`` hosts, probed once per label suffix
2. Wildcard list for ``*`` hosts and ``<all_urls>``
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Generic, TypeVar
from urllib.parse import urlsplit

from .exceptions import InvalidPatternError

logger = logging.getLogger(__name__)

T = TypeVar("T")

ALL_URLS = "<all_urls>"

_SCHEMES = ("http", "https")

_PATTERN_RE = re.compile(r"^(\*|https?)://(\*|(?:\*\.)?[^/*:?#]+)(/.*)$")


@dataclass(frozen=True)
class MatchPattern:
    """Parsed match pattern."""

    raw: str
    schemes: tuple[str, ...]
    host: str  # "" for any host
    match_subdomains: bool
    path: str

    def _path_regex(self) -> re.Pattern[str]:
        return _compile_path(self.path)

    def matches(self, url: str) -> bool:
        """Check if the pattern matches a URL."""
        parts = _split_url(url)
        if parts is None:
            return False
        return self._matches_parts(*parts)

    def _matches_parts(self, scheme: str, hostname: str, path: str) -> bool:
        if scheme not in self.schemes:
            return False
        if self.host:
            if hostname != self.host and not (
                self.match_subdomains and hostname.endswith("." + self.host)
            ):
                return False
        return self._path_regex().fullmatch(path) is not None


_path_cache: dict[str, re.Pattern[str]] = {}


def _compile_path(path: str) -> re.Pattern[str]:
    """Convert a path glob to a regex."""
    regex = _path_cache.get(path)
    if regex is None:
        regex = re.compile(".*".join(re.escape(part) for part in path.split("*")), re.DOTALL)
        _path_cache[path] = regex
    return regex


def parse_match_pattern(pattern: str) -> MatchPattern | None:
    """Parse a match pattern, returning None if it is invalid."""
    if not isinstance(pattern, str):
        return None

    if pattern == ALL_URLS:
        return MatchPattern(raw=pattern, schemes=_SCHEMES, host="", match_subdomains=False, path="/*")

    m = _PATTERN_RE.match(pattern)
    if m is None:
        return None

    scheme, host, path = m.groups()
    schemes = _SCHEMES if scheme == "*" else (scheme,)

    if host == "*":
        return MatchPattern(raw=pattern, schemes=schemes, host="", match_subdomains=False, path=path)

    match_subdomains = host.startswith("*.")
    if match_subdomains:
        host = host[2:]

    # Empty labels ("a..b", ".a") never match a real hostname
    if not host or any(not label for label in host.split(".")):
        return None

    return MatchPattern(
        raw=pattern,
        schemes=schemes,
        host=host.lower(),
        match_subdomains=match_subdomains,
        path=path,
    )


def _split_url(url: str) -> tuple[str, str, str] | None:
    """Split a URL into (scheme, hostname, path-with-query)."""
    try:
        parsed = urlsplit(url)
        hostname = parsed.hostname or ""
    except ValueError:
        return None

    if not parsed.scheme or not hostname:
        return None

    path = parsed.path or "/"
    if parsed.query:
        path += "?" + parsed.query
    return parsed.scheme.lower(), hostname.lower(), path


def _get_hostname_variants(hostname: str) -> list[str]:
    """Get all variants of a hostname for matching.

    For 'sub.example.com', returns ['sub.example.com', 'example.com', 'com'].
    """
    parts = hostname.split(".")
    variants = []
    for i in range(len(parts)):
        variants.append(".".join(parts[i:]))
    return variants


class MatchPatternMap(Generic[T]):
    """Map from match patterns to values, queried by URL.

    Values come back in insertion order, duplicates included.
    """

    def __init__(self, data: list[Any] | None = None) -> None:
        # Every (pattern, value) pair in insertion order
        self._entries: list[tuple[str, T]] = []

        # Hostname index: hostname -> list of entry indices
        self._hostname_index: dict[str, list[int]] = {}

        # Entries with a host wildcard
        self._wildcard_entries: list[int] = []

        # Compiled patterns, parallel to _entries
        self._patterns: list[MatchPattern] = []

        if data is not None:
            for pattern, value in data:
                self.set(pattern, value)

    def __len__(self) -> int:
        return len(self._entries)

    def set(self, pattern: str, value: T) -> None:
        """Add a pattern/value pair.

        Raises:
            InvalidPatternError: If the pattern is invalid.
        """
        parsed = parse_match_pattern(pattern)
        if parsed is None:
            raise InvalidPatternError(pattern)

        index = len(self._entries)
        self._entries.append((pattern, value))
        self._patterns.append(parsed)

        if parsed.host:
            self._hostname_index.setdefault(parsed.host, []).append(index)
        else:
            self._wildcard_entries.append(index)

    def get(self, url: str) -> list[T]:
        """Get the values of all patterns matching a URL."""
        parts = _split_url(url)
        if parts is None:
            return []

        scheme, hostname, path = parts

        candidates = list(self._wildcard_entries)
        for variant in _get_hostname_variants(hostname):
            candidates.extend(self._hostname_index.get(variant, []))
        candidates.sort()

        return [
            self._entries[i][1]
            for i in candidates
            if self._patterns[i]._matches_parts(scheme, hostname, path)
        ]

    def to_json(self) -> list[list[Any]]:
        """Serialize as an ordered list of [pattern, value] pairs."""
        return [[pattern, value] for pattern, value in self._entries]

    @classmethod
    def from_json(cls, data: list[Any]) -> MatchPatternMap[T]:
        """Rebuild a map from the output of to_json()."""
        return cls(data)
