"""
Content side: filtering the results of a search results page.
"""

from .document import LiveDocument, MutationObserver, MutationRecord
from .filter import Filter, FilterState, Result, watch_ruleset
from .page import filter_page, refresh_page
from .routing import get_delay, get_serp_descriptions, is_mobile
from .ruleset import PatternRuleset, QueryResult, Ruleset

__all__ = [
    "Filter",
    "FilterState",
    "LiveDocument",
    "MutationObserver",
    "MutationRecord",
    "PatternRuleset",
    "QueryResult",
    "Result",
    "Ruleset",
    "filter_page",
    "get_delay",
    "get_serp_descriptions",
    "is_mobile",
    "refresh_page",
    "watch_ruleset",
]
