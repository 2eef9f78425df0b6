"""
Marker stylesheet.

The filter only writes marker attributes; how marked results look is decided
here. Button parents become positioning containers for the inset button,
blocked results are hidden (or dimmed) and highlighted results get the
background colour of their colour number.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from urllib.parse import quote

from ..config import SerpInfoConfig
from ..constants import (
    BLOCK_ATTRIBUTE,
    BUTTON_ATTRIBUTE,
    BUTTON_PARENT_ATTRIBUTE,
    HIGHLIGHT_ATTRIBUTE,
)

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = logging.getLogger(__name__)

ICON_SVG = (
    '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 24 24">'
    '<path fill="#757575" d="M12 2 4 5v6c0 5 3.4 9.7 8 11 4.6-1.3 8-6 8-11V5z"/>'
    '<path fill="#fff" d="M8 11h8v2H8z"/>'
    "</svg>"
)


def svg_to_data_url(svg: str) -> str:
    return "data:image/svg+xml;charset=utf-8," + quote(svg, safe="")


ICON_SOURCE = svg_to_data_url(ICON_SVG)


def get_marker_css(config: SerpInfoConfig | None = None) -> str:
    """Get the CSS rules for result markers."""
    config = config or SerpInfoConfig()

    css_rules = [
        f"[{BUTTON_PARENT_ATTRIBUTE}] {{ position: relative !important; }}",
        f"[{BUTTON_ATTRIBUTE}] {{ line-height: 0; }}",
    ]
    if config.hide_blocked_results:
        css_rules.append(f"[{BLOCK_ATTRIBUTE}] {{ display: none !important; }}")
    else:
        css_rules.append(f"[{BLOCK_ATTRIBUTE}] {{ opacity: 0.5 !important; }}")

    for color_number, color in enumerate(config.highlight_colors, start=1):
        css_rules.append(
            f'[{HIGHLIGHT_ATTRIBUTE}="{color_number}"] {{ background-color: {color} !important; }}'
        )

    return "\n".join(css_rules)


async def apply_to_page(page: Page, config: SerpInfoConfig | None = None) -> None:
    """Inject the marker stylesheet into a page.

    Args:
        page: The Playwright page to style.
        config: Rendering options.
    """
    css = get_marker_css(config)

    try:
        await page.add_style_tag(content=css)
        logger.debug("Injected marker CSS")
    except Exception as e:
        logger.debug("Failed to inject marker CSS: %s", e)
