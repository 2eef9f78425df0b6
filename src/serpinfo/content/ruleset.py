"""
Ruleset oracle.

The filter does not decide by itself whether a result is blocked or
highlighted; it asks a Ruleset with the fields extracted from the result
(``url`` plus every property). PatternRuleset is a small reference policy
that judges a result by its URL against match patterns, in the format of the
``blocklist`` settings key:

    # comment
    *://*.example.com/*          block
    @1 *://*.example.net/*       highlight with colour 1
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Protocol

from ..exceptions import InvalidPatternError
from ..match_pattern import MatchPatternMap

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryResult:
    """Verdict for one result."""

    type: str  # "block" or "highlight"
    color_number: int | None = None

    @classmethod
    def block(cls) -> QueryResult:
        return cls(type="block")

    @classmethod
    def highlight(cls, color_number: int) -> QueryResult:
        return cls(type="highlight", color_number=color_number)


class Ruleset(Protocol):
    def query(self, props: Mapping[str, str]) -> QueryResult | None: ...


class PatternRuleset:
    """Block or highlight results whose URL matches a pattern.

    Block patterns take precedence over highlight patterns; among highlight
    patterns the lowest colour number wins.
    """

    def __init__(
        self,
        block: Iterable[str] = (),
        highlight: Mapping[int, Iterable[str]] | None = None,
    ) -> None:
        # 0 = block, n > 0 = highlight colour n
        self._map: MatchPatternMap[int] = MatchPatternMap()
        for pattern in block:
            self._map.set(pattern, 0)
        for color_number, patterns in (highlight or {}).items():
            if color_number < 1:
                raise ValueError(f"Invalid colour number: {color_number}")
            for pattern in patterns:
                self._map.set(pattern, color_number)

    def __len__(self) -> int:
        return len(self._map)

    def query(self, props: Mapping[str, str]) -> QueryResult | None:
        url = props.get("url")
        if not url:
            return None
        values = self._map.get(url)
        if not values:
            return None
        value = min(values)
        if value == 0:
            return QueryResult.block()
        return QueryResult.highlight(value)

    @classmethod
    def from_text(cls, text: str) -> PatternRuleset:
        """Parse a blocklist; invalid lines are skipped."""
        block: list[str] = []
        highlight: dict[int, list[str]] = {}

        for line in text.splitlines():
            line = line.strip()

            # Skip empty lines and comments
            if not line or line.startswith("#"):
                continue

            if line.startswith("@"):
                number, _, pattern = line[1:].partition(" ")
                if not number.isdigit() or int(number) < 1:
                    logger.debug("Skipping invalid blocklist line: %s", line)
                    continue
                highlight.setdefault(int(number), []).append(pattern.strip())
            else:
                block.append(line)

        ruleset = cls()
        for pattern in block:
            ruleset._add(pattern, 0)
        for color_number, patterns in highlight.items():
            for pattern in patterns:
                ruleset._add(pattern, color_number)

        logger.debug("Parsed blocklist: %d patterns", len(ruleset))
        return ruleset

    def _add(self, pattern: str, value: int) -> None:
        try:
            self._map.set(pattern, value)
        except InvalidPatternError:
            logger.debug("Skipping invalid blocklist pattern: %s", pattern)
