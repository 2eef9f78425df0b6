"""
Persistent settings store.

Holds the state shared between the background manager and page filters as a
small set of keys, persisted to a JSON file. Readers load and subscribe;
writers go through patch(), which is serialized by a lock so concurrent edits
are applied one after another.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

from .state import get_default, settings_from_dict, settings_to_dict

logger = logging.getLogger(__name__)

Listener = Callable[[dict[str, Any]], None]

# Key -> (default factory, encode, decode)
_ITEMS: dict[str, tuple[Callable[[], Any], Callable[[Any], Any], Callable[[Any], Any]]] = {
    "serpInfoSettings": (get_default, settings_to_dict, settings_from_dict),
    "blocklist": (str, str, str),
}


class SettingsStore:
    """Key/value settings persisted to a JSON file (in memory when path is None)."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._items: dict[str, Any] | None = None
        self._listeners: list[Listener] = []
        self._lock = asyncio.Lock()

    async def load(self, keys: Iterable[str]) -> dict[str, Any]:
        """Get the current values of keys."""
        items = self._ensure_loaded()
        return {key: items[key] for key in keys}

    async def patch(self, keys: Iterable[str], updater: Callable[[dict[str, Any]], dict[str, Any]]) -> None:
        """Apply updater to the current values of keys and store the result.

        Listeners are notified with the keys whose value changed.
        """
        keys = list(keys)
        async with self._lock:
            items = self._ensure_loaded()
            updated = updater({key: items[key] for key in keys})
            changes = {key: value for key, value in updated.items() if items.get(key) is not value}
            if not changes:
                return
            items.update(changes)
            self._save()

        for listener in list(self._listeners):
            try:
                listener(changes)
            except Exception as e:
                logger.warning("Settings listener failed: %s", e)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call listener with changed keys after every patch; returns unsubscribe."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _ensure_loaded(self) -> dict[str, Any]:
        if self._items is None:
            self._items = {key: default() for key, (default, _, _) in _ITEMS.items()}
            self._load()
        return self._items

    def _load(self) -> None:
        """Load persisted values over the defaults."""
        assert self._items is not None
        if self._path is None or not self._path.exists():
            return

        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Failed to load settings: %s", e)
            return

        for key, (_, _, decode) in _ITEMS.items():
            if key not in data:
                continue
            try:
                self._items[key] = decode(data[key])
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Ignoring invalid setting %s: %s", key, e)

    def _save(self) -> None:
        if self._path is None or self._items is None:
            return

        data = {key: encode(self._items[key]) for key, (_, encode, _) in _ITEMS.items()}
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "w", encoding="utf-8") as f:
                json.dump(data, f)
            logger.debug("Settings saved to %s", self._path)
        except OSError as e:
            logger.warning("Failed to save settings: %s", e)
