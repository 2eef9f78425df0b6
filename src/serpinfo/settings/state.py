"""
SERPINFO settings snapshots.

Settings are immutable. Every edit is a pure function from the previous
snapshot to a new one, and every edit ends in sync(), which reparses the
sources, drops duplicate remote URLs (first one wins) and rebuilds the match
pattern index from scratch.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any

from ..match_pattern import MatchPatternMap
from ..rules.builtin_rules import BUILTINS
from ..rules.compiler import build_serp_index_map
from ..rules.models import SerpInfo
from ..rules.parser import parse

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc).isoformat()

USER_INPUT_DEFAULT = """\
name: My SERPINFO

pages:
  - name: Example
    matches:
      - "*://*.example.com/*"
    results:
      - root: body > div
        url: a
        props:
          title: h1
"""


@dataclass(frozen=True)
class UserSerpInfo:
    """The user's own rule document."""

    input: str
    parsed: SerpInfo | None = None
    error: str | None = None


@dataclass(frozen=True)
class RemoteSerpInfo:
    """A community rule source."""

    url: str
    custom: bool
    enabled: bool
    downloaded: str | None = None
    download_error: str | None = None
    parsed: SerpInfo | None = None
    parse_error: str | None = None


@dataclass(frozen=True)
class SerpInfoSettings:
    enabled: bool
    user: UserSerpInfo
    remote: tuple[RemoteSerpInfo, ...]
    serp_index_map: list[Any]
    last_modified: str

    def get_serp_index_map(self) -> MatchPatternMap:
        return MatchPatternMap.from_json(self.serp_index_map)


def sync(settings: SerpInfoSettings, last_modified: datetime | None = None) -> SerpInfoSettings:
    """Reparse every source and rebuild the index."""
    result = parse(settings.user.input, strict=True)
    if result.success:
        user = UserSerpInfo(input=settings.user.input, parsed=result.data, error=result.error)
    else:
        # Keep the pages of the last document that did parse
        user = UserSerpInfo(input=settings.user.input, parsed=settings.user.parsed, error=result.error)

    remote_urls: set[str] = set()
    remote: list[RemoteSerpInfo] = []
    for r in settings.remote:
        if r.url in remote_urls:
            continue
        remote_urls.add(r.url)
        if r.downloaded is None:
            remote.append(replace(r, parsed=None, parse_error=None))
            continue
        result = parse(r.downloaded)
        if result.success:
            remote.append(replace(r, parsed=result.data, parse_error=None))
        else:
            logger.warning("Failed to parse remote SERPINFO %s: %s", r.url, result.error)
            remote.append(replace(r, parsed=None, parse_error=result.error))

    if settings.enabled:
        serp_index_map = build_serp_index_map(user.parsed, ((r.enabled, r.parsed) for r in remote))
    else:
        serp_index_map = MatchPatternMap()

    return SerpInfoSettings(
        enabled=settings.enabled,
        user=user,
        remote=tuple(remote),
        serp_index_map=serp_index_map.to_json(),
        last_modified=last_modified.isoformat() if last_modified else settings.last_modified,
    )


def set_enabled(settings: SerpInfoSettings, enabled: bool, when: datetime) -> SerpInfoSettings:
    return sync(replace(settings, enabled=enabled), when)


def set_user(settings: SerpInfoSettings, input: str, when: datetime) -> SerpInfoSettings:
    return sync(replace(settings, user=replace(settings.user, input=input)), when)


def add_remote(settings: SerpInfoSettings, url: str, when: datetime) -> SerpInfoSettings:
    remote = (*settings.remote, RemoteSerpInfo(url=url, custom=True, enabled=True))
    return sync(replace(settings, remote=remote), when)


def remove_remote(settings: SerpInfoSettings, url: str, when: datetime) -> SerpInfoSettings:
    remote = tuple(r for r in settings.remote if r.url != url)
    return sync(replace(settings, remote=remote), when)


def set_remote_enabled(
    settings: SerpInfoSettings, url: str, enabled: bool, when: datetime
) -> SerpInfoSettings:
    remote = tuple(replace(r, enabled=enabled) if r.url == url else r for r in settings.remote)
    return sync(replace(settings, remote=remote), when)


def set_remote_downloaded(
    settings: SerpInfoSettings, url: str, downloaded: str | None, download_error: str | None
) -> SerpInfoSettings:
    """Record the outcome of a download; does not touch last_modified."""
    remote = tuple(
        replace(r, downloaded=downloaded, download_error=download_error) if r.url == url else r
        for r in settings.remote
    )
    return sync(replace(settings, remote=remote))


def get_default() -> SerpInfoSettings:
    return sync(
        SerpInfoSettings(
            enabled=False,
            user=UserSerpInfo(input=USER_INPUT_DEFAULT),
            remote=(),
            serp_index_map=[],
            last_modified=EPOCH,
        )
    )


def merge_builtins(settings: SerpInfoSettings) -> SerpInfoSettings:
    """Put the builtin sources first, keeping the state of those already present."""
    builtin = []
    for b in BUILTINS:
        existing = next((r for r in settings.remote if not r.custom and r.url == b.url), None)
        builtin.append(
            existing or RemoteSerpInfo(url=b.url, custom=False, enabled=True, downloaded=b.content)
        )
    custom = [r for r in settings.remote if r.custom]
    return sync(replace(settings, remote=(*builtin, *custom)))


# Export / import


def to_serializable(settings: SerpInfoSettings) -> dict[str, Any]:
    return {
        "enabled": settings.enabled,
        "user": {"input": settings.user.input},
        "remote": [{"url": r.url, "custom": r.custom, "enabled": r.enabled} for r in settings.remote],
    }


def serialize(settings: SerpInfoSettings) -> str:
    return json.dumps(to_serializable(settings))


def from_serializable(serializable: dict[str, Any]) -> SerpInfoSettings:
    return merge_builtins(
        SerpInfoSettings(
            enabled=serializable["enabled"],
            user=UserSerpInfo(input=serializable["user"]["input"]),
            remote=tuple(
                RemoteSerpInfo(url=r["url"], custom=r["custom"], enabled=r["enabled"])
                for r in serializable["remote"]
            ),
            serp_index_map=[],
            last_modified=EPOCH,
        )
    )


def _is_serializable(data: Any) -> bool:
    if not isinstance(data, dict):
        return False
    if not isinstance(data.get("enabled"), bool):
        return False
    user = data.get("user")
    if not isinstance(user, dict) or not isinstance(user.get("input"), str):
        return False
    remote = data.get("remote")
    if not isinstance(remote, list):
        return False
    return all(
        isinstance(r, dict)
        and isinstance(r.get("url"), str)
        and isinstance(r.get("custom"), bool)
        and isinstance(r.get("enabled"), bool)
        for r in remote
    )


def deserialize(text: str) -> SerpInfoSettings | None:
    """Import settings exported by serialize(); None if text is not valid."""
    try:
        data = json.loads(text)
    except ValueError:
        return None
    if not _is_serializable(data):
        return None
    return from_serializable(data)


# Persistence


def settings_to_dict(settings: SerpInfoSettings) -> dict[str, Any]:
    """Convert settings to a JSON-compatible dict (parsed documents are derived)."""
    return {
        "enabled": settings.enabled,
        "user": {"input": settings.user.input},
        "remote": [
            {
                "url": r.url,
                "custom": r.custom,
                "enabled": r.enabled,
                "downloaded": r.downloaded,
                "downloadError": r.download_error,
            }
            for r in settings.remote
        ],
        "lastModified": settings.last_modified,
    }


def settings_from_dict(data: dict[str, Any]) -> SerpInfoSettings:
    """Rebuild settings saved with settings_to_dict()."""
    return sync(
        SerpInfoSettings(
            enabled=data.get("enabled", False),
            user=UserSerpInfo(input=data.get("user", {}).get("input", USER_INPUT_DEFAULT)),
            remote=tuple(
                RemoteSerpInfo(
                    url=r["url"],
                    custom=r.get("custom", True),
                    enabled=r.get("enabled", True),
                    downloaded=r.get("downloaded"),
                    download_error=r.get("downloadError"),
                )
                for r in data.get("remote", [])
            ),
            serp_index_map=[],
            last_modified=data.get("lastModified", EPOCH),
        )
    )
