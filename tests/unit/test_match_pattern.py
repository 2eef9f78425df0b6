"""Unit tests for match patterns and the URL index."""

from __future__ import annotations

import pytest


class TestMatchPattern:
    """Tests for parsing and matching single patterns."""

    def test_parse_all_urls(self) -> None:
        """Test that <all_urls> matches http and https only."""
        from serpinfo.match_pattern import parse_match_pattern

        pattern = parse_match_pattern("<all_urls>")
        assert pattern is not None
        assert pattern.matches("https://example.com/")
        assert pattern.matches("http://example.com/path?q=1")
        assert not pattern.matches("ftp://example.com/")

    def test_scheme_wildcard(self) -> None:
        """Test that * as scheme matches http and https."""
        from serpinfo.match_pattern import parse_match_pattern

        pattern = parse_match_pattern("*://example.com/*")
        assert pattern is not None
        assert pattern.matches("http://example.com/")
        assert pattern.matches("https://example.com/a/b")
        assert not pattern.matches("file://example.com/")

    def test_exact_scheme(self) -> None:
        """Test that an explicit scheme must match exactly."""
        from serpinfo.match_pattern import parse_match_pattern

        pattern = parse_match_pattern("https://example.com/*")
        assert pattern is not None
        assert pattern.matches("https://example.com/")
        assert not pattern.matches("http://example.com/")

    def test_subdomain_wildcard(self) -> None:
        """Test that *.host matches the host and its subdomains."""
        from serpinfo.match_pattern import parse_match_pattern

        pattern = parse_match_pattern("*://*.example.com/*")
        assert pattern is not None
        assert pattern.matches("https://example.com/")
        assert pattern.matches("https://www.example.com/")
        assert pattern.matches("https://a.b.example.com/x")
        assert not pattern.matches("https://notexample.com/")
        assert not pattern.matches("https://example.com.evil.net/")

    def test_path_includes_query(self) -> None:
        """Test that the path is compared with the query string appended."""
        from serpinfo.match_pattern import parse_match_pattern

        pattern = parse_match_pattern("https://www.google.com/search?*")
        assert pattern is not None
        assert pattern.matches("https://www.google.com/search?q=python")
        assert not pattern.matches("https://www.google.com/search")
        assert not pattern.matches("https://www.google.com/searches?q=1")

    def test_host_is_case_insensitive(self) -> None:
        """Test that hosts are compared case-insensitively."""
        from serpinfo.match_pattern import parse_match_pattern

        pattern = parse_match_pattern("https://EXAMPLE.com/*")
        assert pattern is not None
        assert pattern.matches("https://example.COM/")

    @pytest.mark.parametrize(
        "raw",
        [
            "example.com",
            "https://example.com",
            "*://*example.com/*",
            "https://exa*mple.com/*",
            "ftp://example.com/*",
            "https://a..b/*",
            "",
        ],
    )
    def test_invalid_patterns(self, raw: str) -> None:
        """Test that malformed patterns are rejected."""
        from serpinfo.match_pattern import parse_match_pattern

        assert parse_match_pattern(raw) is None

    def test_unparseable_url(self) -> None:
        """Test that URLs without a host never match."""
        from serpinfo.match_pattern import parse_match_pattern

        pattern = parse_match_pattern("<all_urls>")
        assert pattern is not None
        assert not pattern.matches("not a url")
        assert not pattern.matches("https:///path")


class TestMatchPatternMap:
    """Tests for the multi-pattern index."""

    def test_get_returns_values_in_insertion_order(self) -> None:
        """Test that values from different buckets come back in insertion order."""
        from serpinfo.match_pattern import MatchPatternMap

        m: MatchPatternMap[int] = MatchPatternMap()
        m.set("*://*.example.com/*", 1)
        m.set("<all_urls>", 2)
        m.set("https://www.example.com/*", 3)
        m.set("https://other.com/*", 4)

        assert m.get("https://www.example.com/page") == [1, 2, 3]
        assert m.get("https://other.com/") == [2, 4]
        assert m.get("http://www.example.com/") == [1, 2]

    def test_duplicate_patterns_keep_every_value(self) -> None:
        """Test that the same pattern can map to several values."""
        from serpinfo.match_pattern import MatchPatternMap

        m: MatchPatternMap[str] = MatchPatternMap()
        m.set("https://example.com/*", "a")
        m.set("https://example.com/*", "b")

        assert m.get("https://example.com/") == ["a", "b"]
        assert len(m) == 2

    def test_set_invalid_pattern_raises(self) -> None:
        """Test that invalid patterns are rejected at insertion."""
        from serpinfo.exceptions import InvalidPatternError
        from serpinfo.match_pattern import MatchPatternMap

        m: MatchPatternMap[int] = MatchPatternMap()
        with pytest.raises(InvalidPatternError):
            m.set("example.com", 1)
        with pytest.raises(ValueError):
            m.set("https://example.com", 1)
        assert len(m) == 0

    def test_json_round_trip(self) -> None:
        """Test that a serialized map answers queries the same way."""
        import json

        from serpinfo.match_pattern import MatchPatternMap

        m: MatchPatternMap[list[int]] = MatchPatternMap()
        m.set("*://*.example.com/*", [0])
        m.set("https://example.com/search?*", [1, 2])
        m.set("<all_urls>", [3])

        data = json.loads(json.dumps(m.to_json()))
        restored: MatchPatternMap[list[int]] = MatchPatternMap.from_json(data)

        assert restored.to_json() == m.to_json()
        for url in (
            "https://example.com/search?q=1",
            "https://www.example.com/",
            "https://unrelated.org/",
        ):
            assert restored.get(url) == m.get(url)

    def test_get_agrees_with_single_patterns(self) -> None:
        """Test that the index finds exactly the patterns that match on their own."""
        from serpinfo.match_pattern import MatchPatternMap, parse_match_pattern

        patterns = [
            "<all_urls>",
            "*://*/*",
            "https://*/search?*",
            "*://*.example.com/*",
            "*://example.com/a/*",
            "http://sub.example.com/*",
            "https://*.co.jp/*",
            "https://example.co.jp/*",
        ]
        urls = [
            "https://example.com/",
            "http://example.com/a/b",
            "http://sub.example.com/x",
            "https://deep.sub.example.com/search?q=1",
            "https://example.co.jp/",
            "https://www.example.co.jp/search?x",
            "https://unrelated.net/search",
        ]

        m: MatchPatternMap[int] = MatchPatternMap()
        for i, pattern in enumerate(patterns):
            m.set(pattern, i)

        for url in urls:
            expected = [
                i for i, pattern in enumerate(patterns) if parse_match_pattern(pattern).matches(url)  # type: ignore[union-attr]
            ]
            assert m.get(url) == expected, url

    def test_get_with_invalid_url(self) -> None:
        """Test that an unparseable URL matches nothing."""
        from serpinfo.match_pattern import MatchPatternMap

        m: MatchPatternMap[int] = MatchPatternMap([["<all_urls>", 1]])
        assert m.get("nonsense") == []
