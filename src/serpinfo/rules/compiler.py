"""
Compile rule documents into a match pattern index.

The index maps every match pattern of every usable page to a reference to
that page. It is always rebuilt from scratch from the current sources.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..match_pattern import MatchPatternMap
from .models import SerpDescription, SerpInfo
from .parser import ParseResult, parse

logger = logging.getLogger(__name__)

# ("user", page) or ("remote", source, page); lists after a JSON round trip
SerpIndex = tuple


@dataclass(frozen=True)
class CompiledSerpInfo:
    """Pages from every source plus a URL index into them."""

    url_to_serp_indices: list[Any] = field(default_factory=list)
    serps: tuple[SerpDescription, ...] = ()

    def get(self, url: str) -> list[SerpDescription]:
        """Get the pages whose match patterns match url."""
        index: MatchPatternMap[int] = MatchPatternMap.from_json(self.url_to_serp_indices)
        return [self.serps[i] for i in index.get(url)]


@dataclass(frozen=True)
class CompileResult:
    data: CompiledSerpInfo
    error: str | None = None


def compile_serp_info(
    user_serp_info: str, community_serp_info: Sequence[str], strict: bool = False
) -> CompileResult:
    """Compile the user's rule text and community rule texts.

    The user's text is parsed with ``strict``; community texts are always
    parsed leniently and their errors never surface. Only the user's error is
    returned.
    """
    url_to_serp_indices: MatchPatternMap[int] = MatchPatternMap()
    serps: list[SerpDescription] = []

    def add(result: ParseResult) -> None:
        if result.data is None:
            return
        for serp in result.data.pages:
            serps.append(serp)
            for match in serp.matches:
                url_to_serp_indices.set(match, len(serps) - 1)

    user_result = parse(user_serp_info, strict)
    add(user_result)
    for text in community_serp_info:
        add(parse(text))

    logger.debug("Compiled %d pages (%d patterns)", len(serps), len(url_to_serp_indices))

    return CompileResult(
        data=CompiledSerpInfo(url_to_serp_indices=url_to_serp_indices.to_json(), serps=tuple(serps)),
        error=user_result.error,
    )


def build_serp_index_map(
    user: SerpInfo | None, remote: Iterable[tuple[bool, SerpInfo | None]]
) -> MatchPatternMap[SerpIndex]:
    """Index the pages of the user's document and of enabled remote documents.

    Args:
        user: The user's parsed document, if any.
        remote: (enabled, parsed) for each remote source, in source order.

    Returns:
        A new map from match pattern to page reference.
    """
    serp_index_map: MatchPatternMap[SerpIndex] = MatchPatternMap()
    if user is not None:
        for i, serp in enumerate(user.pages):
            for match in serp.matches:
                serp_index_map.set(match, ("user", i))
    for i, (enabled, parsed) in enumerate(remote):
        if not enabled or parsed is None:
            continue
        for j, serp in enumerate(parsed.pages):
            for match in serp.matches:
                serp_index_map.set(match, ("remote", i, j))
    return serp_index_map
