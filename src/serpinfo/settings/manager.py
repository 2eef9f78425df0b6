"""
Background manager for SERPINFO settings.

Sequences edits to the settings (enable, user rules, remote sources) and
downloads of remote rule sources. Every edit is applied through the store as
a pure update of the previous settings; a failed download is recorded on its
own source and never affects the others.
"""

from __future__ import annotations

import asyncio
import logging
import ssl
import urllib.error
import urllib.request
from collections.abc import Callable
from datetime import datetime, timezone

from ..config import SerpInfoConfig
from ..exceptions import HttpError, NetworkError
from .state import (
    SerpInfoSettings,
    add_remote,
    merge_builtins,
    remove_remote,
    set_enabled,
    set_remote_downloaded,
    set_remote_enabled,
    set_user,
)
from .store import SettingsStore

logger = logging.getLogger(__name__)

SETTINGS_KEY = "serpInfoSettings"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SerpInfoManager:
    """Apply settings edits and keep remote sources downloaded."""

    def __init__(self, store: SettingsStore, config: SerpInfoConfig | None = None) -> None:
        self._store = store
        self._config = config or SerpInfoConfig()

    async def get_settings(self) -> SerpInfoSettings:
        items = await self._store.load([SETTINGS_KEY])
        return items[SETTINGS_KEY]

    async def _modify(self, modify: Callable[[SerpInfoSettings], SerpInfoSettings]) -> None:
        await self._store.patch(
            [SETTINGS_KEY], lambda items: {SETTINGS_KEY: modify(items[SETTINGS_KEY])}
        )

    async def on_startup(self) -> None:
        """Merge builtin sources and refresh every enabled remote source."""
        await self._modify(merge_builtins)
        if self._config.enabled_on_startup:
            settings = await self.get_settings()
            if not settings.enabled:
                await self._modify(lambda s: set_enabled(s, True, _now()))
        await self.update_all_remote()

    async def enable(self, enabled: bool) -> None:
        await self._modify(lambda s: set_enabled(s, enabled, _now()))
        if enabled:
            await self.update_all_remote()

    async def set_user(self, user_input: str) -> str | None:
        """Replace the user's rule text; returns its error, if any."""
        await self._modify(lambda s: set_user(s, user_input, _now()))
        settings = await self.get_settings()
        return settings.user.error

    async def add_remote(self, url: str) -> None:
        await self._modify(lambda s: add_remote(s, url, _now()))
        await self.update_remote(url)

    async def remove_remote(self, url: str) -> None:
        await self._modify(lambda s: remove_remote(s, url, _now()))

    async def enable_remote(self, url: str, enabled: bool) -> None:
        await self._modify(lambda s: set_remote_enabled(s, url, enabled, _now()))
        if enabled:
            await self.update_remote(url)

    async def update_remote(self, url: str) -> None:
        """Download one remote source and record the outcome."""
        try:
            text = await self._fetch(url)
        except NetworkError as e:
            logger.warning("Failed to download SERPINFO %s: %s", url, e)
            await self._modify(lambda s: set_remote_downloaded(s, url, None, str(e)))
            return

        await self._modify(lambda s: set_remote_downloaded(s, url, text, None))
        logger.debug("Downloaded SERPINFO %s (%d lines)", url, text.count("\n") + 1)

    async def update_all_remote(self) -> None:
        """Download every enabled remote source, if SERPINFO is enabled."""
        settings = await self.get_settings()
        if not settings.enabled:
            return
        await asyncio.gather(*(self.update_remote(r.url) for r in settings.remote if r.enabled))

    async def _fetch(self, url: str) -> str:
        """Fetch rule text from a URL.

        Raises:
            HttpError: If the server answers with an error status.
            NetworkError: If the request fails for any other reason.
        """
        timeout = self._config.download_timeout
        loop = asyncio.get_running_loop()

        def _do_fetch() -> str:
            ctx = ssl.create_default_context()
            req = urllib.request.Request(url, headers={"User-Agent": "serpinfo/1.0"})
            with urllib.request.urlopen(req, timeout=timeout, context=ctx) as response:
                data: bytes = response.read()
                return data.decode("utf-8")

        try:
            return await loop.run_in_executor(None, _do_fetch)
        except urllib.error.HTTPError as e:
            raise HttpError(e.code, e.reason or "") from None
        except (urllib.error.URLError, TimeoutError, UnicodeDecodeError, ValueError, OSError) as e:
            raise NetworkError(str(e)) from None
