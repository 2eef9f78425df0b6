"""
Select the rule pages that apply to a URL.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence

from ..match_pattern import MatchPatternMap
from ..rules.models import SerpDescription
from ..settings.state import SerpInfoSettings

logger = logging.getLogger(__name__)

# Phones and tablets
_MOBILE_RE = re.compile(
    r"Android|webOS|iPhone|iPad|iPod|BlackBerry|IEMobile|Opera Mini|Mobile|Silk|Kindle|PlayBook",
    re.IGNORECASE,
)


def is_mobile(user_agent: str) -> bool:
    """Whether a User-Agent string belongs to a phone or tablet."""
    return bool(_MOBILE_RE.search(user_agent))


def _resolve(settings: SerpInfoSettings, index: Sequence) -> SerpDescription | None:
    try:
        if index[0] == "user":
            parsed = settings.user.parsed
            return parsed.pages[index[1]] if parsed else None
        parsed = settings.remote[index[1]].parsed
        return parsed.pages[index[2]] if parsed else None
    except IndexError:
        # Index built from an older snapshot
        logger.debug("Stale page reference: %r", index)
        return None


def is_excluded(serp: SerpDescription, url: str) -> bool:
    if not serp.exclude_matches:
        return False
    exclude_map: MatchPatternMap[int] = MatchPatternMap()
    for match in serp.exclude_matches:
        exclude_map.set(match, 1)
    return bool(exclude_map.get(url))


def matches_device(serp: SerpDescription, mobile: bool) -> bool:
    """Whether the page's userAgent allows the device class."""
    if serp.user_agent == "desktop":
        return not mobile
    if serp.user_agent == "mobile":
        return mobile
    return True


def get_serp_descriptions(settings: SerpInfoSettings, url: str, mobile: bool) -> list[SerpDescription]:
    """Get the pages of every enabled source that apply to url."""
    serps: list[SerpDescription] = []
    for index in settings.get_serp_index_map().get(url):
        serp = _resolve(settings, index)
        if serp is None:
            continue
        if is_excluded(serp, url):
            continue
        if not matches_device(serp, mobile):
            continue
        serps.append(serp)
    return serps


def get_delay(serps: Sequence[SerpDescription]) -> float:
    """Milliseconds to wait after load before filtering; -1 to start at once."""
    delays: list[float] = []
    for serp in serps:
        if isinstance(serp.delay, bool):
            delays.append(0 if serp.delay else -1)
        elif serp.delay is None:
            delays.append(-1)
        else:
            delays.append(serp.delay)
    return max(delays, default=-1)
