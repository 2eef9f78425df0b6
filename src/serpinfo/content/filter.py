"""
Result filter for a live document.

Finds the results described by the active pages, marks them, asks the
ruleset whether each one is blocked or highlighted, and keeps the markers in
step with the document as it changes:

    IDLE -> SCANNING -> OBSERVING <-> RECONCILING

Only the filter writes marker attributes. Faults while evaluating a command
against the document are logged and treated as "no match"; they never stop
the other results from being filtered.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

from bs4 import BeautifulSoup
from bs4.element import Tag

from ..constants import BLOCK_ATTRIBUTE, HIGHLIGHT_ATTRIBUTE, ICON_SIZE, RESULT_ATTRIBUTE
from ..rules.commands import (
    DEFAULT_BUTTON_COMMAND,
    ButtonCommandContext,
    PropertyCommand,
    PropertyCommandContext,
    run_button_command,
    run_property_command,
    run_roots_command,
)
from .document import LiveDocument, MutationObserver, MutationRecord
from .style import ICON_SOURCE

if TYPE_CHECKING:
    from ..rules.models import ResultDescription, SerpDescription
    from ..settings.store import SettingsStore
    from .ruleset import QueryResult, Ruleset

logger = logging.getLogger(__name__)

_RESULT_SELECTOR = f"[{RESULT_ATTRIBUTE}]"


class FilterState(Enum):
    IDLE = auto()
    SCANNING = auto()
    OBSERVING = auto()
    RECONCILING = auto()


@dataclass
class Result:
    """A detected result and the values extracted from it."""

    root: Tag
    url: str
    props: dict[str, str]
    description: ResultDescription
    serp_description: SerpDescription
    remove_button: Callable[[], None] | None = field(default=None, repr=False)

    def fields(self) -> dict[str, str]:
        """Fields passed to the ruleset."""
        return {"url": self.url, **self.props}


def is_valid_url(url: str) -> bool:
    """Whether url is absolute (and has a host, for http and https)."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    if not parts.scheme:
        return False
    if parts.scheme in ("http", "https"):
        return bool(parts.netloc)
    return True


class Filter:
    """Marks the results of one document."""

    def __init__(
        self,
        serps: Sequence[SerpDescription],
        document: LiveDocument,
        ruleset: Ruleset,
        publish_count: Callable[[int], Any] | None = None,
        on_button_click: Callable[[Result], Any] | None = None,
        icon_source: str = ICON_SOURCE,
        icon_size: int = ICON_SIZE,
    ) -> None:
        self._serps = tuple(serps)
        self._document = document
        self._ruleset = ruleset
        self._publish_count = publish_count
        self._on_button_click = on_button_click
        self._icon_source = icon_source
        self._icon_size = icon_size

        self._observer = MutationObserver(self._on_mutation)
        # id(root) -> Result; bs4 tags compare by content, not identity
        self._results: dict[int, Result] = {}
        self._blocked_result_count = 0
        self._state = FilterState.IDLE
        self._reconciling = False

    @property
    def state(self) -> FilterState:
        return self._state

    @property
    def document(self) -> LiveDocument:
        return self._document

    @property
    def results(self) -> list[Result]:
        return list(self._results.values())

    @property
    def blocked_result_count(self) -> int:
        return self._blocked_result_count

    def get_result(self, root: Tag) -> Result | None:
        return self._results.get(id(root))

    def start(self) -> None:
        """Scan the document and start following its changes."""
        self._state = FilterState.SCANNING
        self._scan_results()
        self._resume()

    def stop(self) -> None:
        self._observer.disconnect()
        self._state = FilterState.IDLE

    def update_ruleset(self, ruleset: Ruleset) -> None:
        """Judge every tracked result again with a new ruleset."""
        self._ruleset = ruleset
        for result in list(self._results.values()):
            self._judge_result(result)
        self._notify_blocked_result_count()

    # Observation

    def _resume(self) -> None:
        self._observer.observe(self._document, child_list=True, subtree=True)
        self._state = FilterState.OBSERVING

    @contextmanager
    def _paused(self) -> Iterator[None]:
        self._reconciling = True
        self._state = FilterState.RECONCILING
        self._observer.disconnect()
        try:
            yield
        finally:
            self._reconciling = False
            self._resume()

    def _on_mutation(self, records: list[MutationRecord]) -> None:
        if self._reconciling:
            return
        with self._paused():
            for record in records:
                self._reconcile(record)
            self._scan_results()

    def _reconcile(self, record: MutationRecord) -> None:
        target = record.target
        if not isinstance(target, Tag) or isinstance(target, BeautifulSoup):
            return
        root = self._document.closest(target, _RESULT_SELECTOR)
        if root is None:
            return
        old_result = self._results.get(id(root))
        if old_result is None:
            return

        new_result = self._get_result(root, old_result.description, old_result.serp_description)
        if new_result is None:
            self._remove_result(old_result)
            return
        if new_result.url == old_result.url and new_result.props == old_result.props:
            return

        new_result.remove_button = old_result.remove_button
        self._results[id(root)] = new_result
        logger.debug("Updated result: %s", new_result.url)
        self._judge_result(new_result)

    # Scanning

    def _is_claimed(self, root: Tag) -> bool:
        document = self._document
        return (
            document.closest(root, _RESULT_SELECTOR) is not None
            or document.query_selector(root, _RESULT_SELECTOR) is not None
        )

    def _scan_results(self) -> None:
        for result in list(self._results.values()):
            if not self._document.contains(result.root):
                self._remove_result(result)

        for serp in self._serps:
            for desc in serp.results:
                if desc is None:
                    continue
                for root in self._get_roots(desc):
                    if self._is_claimed(root):
                        continue
                    result = self._get_result(root, desc, serp)
                    if result is None:
                        continue
                    self._document.set_attribute(root, RESULT_ATTRIBUTE, "1")
                    result.remove_button = self._add_button(root, desc)
                    self._results[id(root)] = result
                    logger.debug("New result: %s", result.url)
                    self._judge_result(result)

        self._notify_blocked_result_count()

    def _get_roots(self, desc: ResultDescription) -> list[Tag]:
        try:
            return run_roots_command(self._document, desc.root)
        except Exception as e:
            logger.warning("Failed to find results: %s", e)
            return []

    def _get_url(self, root: Tag, command: PropertyCommand) -> str | None:
        try:
            url = run_property_command(
                PropertyCommandContext(document=self._document, root=root, url=True), command
            )
        except Exception as e:
            logger.warning("Failed to get result URL: %s", e)
            return None
        if url is None or not is_valid_url(url):
            return None
        return url

    def _get_property(self, root: Tag, command: PropertyCommand) -> str | None:
        try:
            return run_property_command(
                PropertyCommandContext(document=self._document, root=root, url=False), command
            )
        except Exception as e:
            logger.warning("Failed to get result property: %s", e)
            return None

    def _get_result(
        self, root: Tag, desc: ResultDescription, serp: SerpDescription
    ) -> Result | None:
        url = self._get_url(root, desc.url)
        if not url:
            return None
        props = dict(serp.common_props)
        for name, command in desc.props.items():
            prop = self._get_property(root, command)
            if prop is not None:
                props[name] = prop
        return Result(root=root, url=url, props=props, description=desc, serp_description=serp)

    def _add_button(self, root: Tag, desc: ResultDescription) -> Callable[[], None] | None:
        def on_click() -> None:
            current_result = self._results.get(id(root))
            if current_result is None or self._on_button_click is None:
                return
            self._on_button_click(current_result)

        context = ButtonCommandContext(
            document=self._document,
            root=root,
            icon_source=self._icon_source,
            icon_size=self._icon_size,
            on_click=on_click,
        )
        try:
            return run_button_command(context, desc.button or DEFAULT_BUTTON_COMMAND)
        except Exception as e:
            logger.warning("Failed to add button: %s", e)
            return None

    # Judging

    def _query(self, result: Result) -> QueryResult | None:
        try:
            return self._ruleset.query(result.fields())
        except Exception as e:
            logger.warning("Ruleset query failed for %s: %s", result.url, e)
            return None

    def _judge_result(self, result: Result) -> None:
        document = self._document
        root = result.root
        if document.has_attribute(root, BLOCK_ATTRIBUTE):
            document.remove_attribute(root, BLOCK_ATTRIBUTE)
            self._blocked_result_count -= 1
        document.remove_attribute(root, HIGHLIGHT_ATTRIBUTE)

        query_result = self._query(result)
        if query_result is None:
            return
        if query_result.type == "block":
            document.set_attribute(root, BLOCK_ATTRIBUTE, "1")
            self._blocked_result_count += 1
        elif query_result.type == "highlight":
            document.set_attribute(root, HIGHLIGHT_ATTRIBUTE, str(query_result.color_number))

    def _remove_result(self, result: Result) -> None:
        document = self._document
        root = result.root
        if result.remove_button is not None:
            try:
                result.remove_button()
            except Exception as e:
                logger.warning("Failed to remove button: %s", e)
        document.remove_attribute(root, RESULT_ATTRIBUTE)
        if document.has_attribute(root, BLOCK_ATTRIBUTE):
            document.remove_attribute(root, BLOCK_ATTRIBUTE)
            self._blocked_result_count -= 1
        document.remove_attribute(root, HIGHLIGHT_ATTRIBUTE)
        self._results.pop(id(root), None)
        logger.debug("Removed result: %s", result.url)

    def _notify_blocked_result_count(self) -> None:
        if self._publish_count is None:
            return
        try:
            self._publish_count(self._blocked_result_count)
        except Exception as e:
            logger.debug("Failed to publish blocked result count: %s", e)


def watch_ruleset(
    store: SettingsStore, filter: Filter, create_ruleset: Callable[[str], Ruleset]
) -> Callable[[], None]:
    """Rebuild the filter's ruleset whenever the blocklist changes.

    Returns:
        A function that stops watching.
    """

    def on_change(changes: dict[str, Any]) -> None:
        if "blocklist" not in changes:
            return
        filter.update_ruleset(create_ruleset(changes["blocklist"]))

    return store.subscribe(on_change)
