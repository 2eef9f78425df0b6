"""
Filter a Playwright page.

The page DOM is snapshotted into a LiveDocument, filtered there, and the
resulting markers are copied back onto the live page by structural path
together with the marker stylesheet. The blocked result count is published
to the page as a ``serpinfo:blocked-result-count`` event.

The snapshot does not follow the live page by itself: results the page adds
later are picked up by calling refresh_page(), which takes a new snapshot and
feeds the difference to the filter as document mutations.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from bs4 import BeautifulSoup

from ..config import SerpInfoConfig
from ..constants import BLOCK_ATTRIBUTE, HIGHLIGHT_ATTRIBUTE, RESULT_ATTRIBUTE
from .document import LiveDocument
from .filter import Filter
from .routing import get_delay, get_serp_descriptions, is_mobile
from .style import apply_to_page

if TYPE_CHECKING:
    from playwright.async_api import Page

    from ..settings.state import SerpInfoSettings
    from .ruleset import Ruleset

logger = logging.getLogger(__name__)

_SYNC_MARKERS_SCRIPT = """
([markers, attrs]) => {
    const [resultAttr, blockAttr, highlightAttr] = attrs;
    for (const el of document.querySelectorAll(`[${resultAttr}]`)) {
        el.removeAttribute(resultAttr);
        el.removeAttribute(blockAttr);
        el.removeAttribute(highlightAttr);
    }
    let applied = 0;
    for (const m of markers) {
        const el = document.querySelector(m.path);
        if (!el) continue;
        el.setAttribute(resultAttr, "1");
        if (m.block) el.setAttribute(blockAttr, "1");
        if (m.highlight) el.setAttribute(highlightAttr, m.highlight);
        applied++;
    }
    return applied;
}
"""

_PUBLISH_COUNT_SCRIPT = """
(count) => {
    document.documentElement.dataset.serpinfoBlockedResultCount = String(count);
    document.dispatchEvent(new CustomEvent("serpinfo:blocked-result-count", { detail: count }));
}
"""


def get_markers(filter: Filter) -> list[dict[str, Any]]:
    """Describe the markers of every tracked result by structural path."""
    document = filter.document
    markers = []
    for result in filter.results:
        markers.append(
            {
                "path": document.css_path(result.root),
                "block": document.has_attribute(result.root, BLOCK_ATTRIBUTE),
                "highlight": document.get_attribute(result.root, HIGHLIGHT_ATTRIBUTE),
            }
        )
    return markers


async def sync_markers(page: Page, filter: Filter) -> int:
    """Copy the filter's markers onto the live page.

    Returns:
        Number of results found on the page.
    """
    markers = get_markers(filter)
    try:
        applied: int = await page.evaluate(
            _SYNC_MARKERS_SCRIPT,
            [markers, [RESULT_ATTRIBUTE, BLOCK_ATTRIBUTE, HIGHLIGHT_ATTRIBUTE]],
        )
    except Exception as e:
        logger.debug("Failed to sync markers: %s", e)
        return 0
    if applied != len(markers):
        logger.debug("Synced %d of %d results", applied, len(markers))
    return applied


async def publish_count(page: Page, count: int) -> None:
    try:
        await page.evaluate(_PUBLISH_COUNT_SCRIPT, count)
    except Exception as e:
        logger.debug("Failed to publish blocked result count: %s", e)


async def _is_mobile_page(page: Page, config: SerpInfoConfig) -> bool:
    if config.mobile:
        return True
    try:
        user_agent: str = await page.evaluate("() => navigator.userAgent")
    except Exception as e:
        logger.debug("Failed to read user agent: %s", e)
        return False
    return is_mobile(user_agent)


async def filter_page(
    page: Page,
    settings: SerpInfoSettings,
    ruleset: Ruleset,
    config: SerpInfoConfig | None = None,
) -> Filter | None:
    """Filter the results of a page.

    Args:
        page: The Playwright page, already navigated.
        settings: Current settings snapshot.
        ruleset: Oracle deciding which results are blocked or highlighted.
        config: Rendering options.

    Returns:
        The filter holding the page's results, or None if no rule applies.
    """
    config = config or SerpInfoConfig()
    if not settings.enabled:
        return None

    url = page.url
    serps = get_serp_descriptions(settings, url, await _is_mobile_page(page, config))
    if not serps:
        logger.debug("No SERPINFO pages for %s", url)
        return None

    delay = get_delay(serps)
    if delay < 0:
        await page.wait_for_load_state("domcontentloaded")
    else:
        await page.wait_for_load_state("load")
        await asyncio.sleep(delay / 1000)

    document = LiveDocument.from_html(await page.content(), url)
    filter = Filter(serps, document, ruleset, icon_size=config.icon_size)
    filter.start()
    logger.debug(
        "Filtered %s: %d results, %d blocked",
        url,
        len(filter.results),
        filter.blocked_result_count,
    )

    await apply_to_page(page, config)
    await sync_markers(page, filter)
    await publish_count(page, filter.blocked_result_count)
    return filter


def _strip_markers(soup: BeautifulSoup) -> None:
    """Drop the markers sync_markers() copied onto the live page."""
    for element in soup.select(f"[{RESULT_ATTRIBUTE}]"):
        for attr in (RESULT_ATTRIBUTE, BLOCK_ATTRIBUTE, HIGHLIGHT_ATTRIBUTE):
            element.attrs.pop(attr, None)


async def refresh_page(page: Page, filter: Filter) -> None:
    """Catch the filter up with changes the live page made since filter_page().

    The body of a new snapshot replaces the body of the filter's document;
    the filter sees this as one mutation batch, drops results that are gone
    and picks up new ones. Markers and the count are then synced again.
    """
    try:
        html = await page.content()
    except Exception as e:
        logger.debug("Failed to read page content: %s", e)
        return

    fresh = BeautifulSoup(html, "lxml")
    _strip_markers(fresh)

    document = filter.document
    body = document.body
    for node in list(body.contents):
        document.remove(node)
    for node in list((fresh.body or fresh).contents):
        document.append_child(body, node.extract())
    document.flush()

    logger.debug(
        "Refreshed %s: %d results, %d blocked",
        document.url,
        len(filter.results),
        filter.blocked_result_count,
    )
    await sync_markers(page, filter)
    await publish_count(page, filter.blocked_result_count)
