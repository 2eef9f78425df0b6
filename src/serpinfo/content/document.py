"""
Live document tree backed by BeautifulSoup.

Wraps a parsed page with the operations the filter needs from a browser DOM:
structural queries through soupsieve, attribute and property access, node
insertion and removal, click events, and batched mutation notifications.
Every write that should be observable goes through LiveDocument so that
connected MutationObservers see it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urljoin

import soupsieve
from bs4 import BeautifulSoup
from bs4.element import NavigableString, PageElement, Tag

logger = logging.getLogger(__name__)

# DOM properties that hold a URL resolved against the document address
_URL_PROPERTIES = {"href", "src", "action"}

# DOM properties that reflect an attribute of the same name
_REFLECTED_PROPERTIES = {
    "id": "id",
    "className": "class",
    "title": "title",
    "lang": "lang",
    "dir": "dir",
    "name": "name",
    "value": "value",
    "alt": "alt",
    "rel": "rel",
    "target": "target",
    "type": "type",
}


@dataclass
class MutationRecord:
    """One change to the tree."""

    type: str  # "childList" or "attributes"
    target: PageElement
    added_nodes: list[PageElement] = field(default_factory=list)
    removed_nodes: list[PageElement] = field(default_factory=list)
    attribute_name: str | None = None


class MutationObserver:
    """Receives batches of MutationRecords from a LiveDocument."""

    def __init__(self, callback: Callable[[list[MutationRecord]], None]) -> None:
        self._callback = callback
        self._document: LiveDocument | None = None
        self._target: PageElement | None = None
        self._child_list = True
        self._attributes = False
        self._subtree = True
        self._records: list[MutationRecord] = []

    @property
    def connected(self) -> bool:
        return self._document is not None

    def observe(
        self,
        document: LiveDocument,
        target: PageElement | None = None,
        *,
        child_list: bool = True,
        attributes: bool = False,
        subtree: bool = True,
    ) -> None:
        """Start receiving records for changes under target (default: body)."""
        if self._document is not None and self._document is not document:
            self.disconnect()
        self._document = document
        self._target = target if target is not None else document.body
        self._child_list = child_list
        self._attributes = attributes
        self._subtree = subtree
        document._add_observer(self)

    def disconnect(self) -> None:
        """Stop receiving records and drop any that are pending."""
        if self._document is not None:
            self._document._remove_observer(self)
        self._document = None
        self._target = None
        self._records = []

    def take_records(self) -> list[MutationRecord]:
        """Return and clear the pending records."""
        records, self._records = self._records, []
        return records

    def _wants(self, record: MutationRecord) -> bool:
        if record.type == "childList" and not self._child_list:
            return False
        if record.type == "attributes" and not self._attributes:
            return False
        if self._target is None:
            return False
        if record.target is self._target:
            return True
        return self._subtree and _is_inclusive_ancestor(self._target, record.target)

    def _enqueue(self, record: MutationRecord) -> None:
        if self._wants(record):
            self._records.append(record)

    def _deliver(self) -> None:
        records = self.take_records()
        if records:
            self._callback(records)


@dataclass
class Event:
    """A dispatched event."""

    type: str
    target: Tag
    default_prevented: bool = False
    propagation_stopped: bool = False

    def prevent_default(self) -> None:
        self.default_prevented = True

    def stop_propagation(self) -> None:
        self.propagation_stopped = True


def _is_inclusive_ancestor(ancestor: PageElement, node: PageElement | None) -> bool:
    while node is not None:
        if node is ancestor:
            return True
        node = node.parent
    return False


def _is_element(node: Any) -> bool:
    return isinstance(node, Tag) and not isinstance(node, BeautifulSoup)


class LiveDocument:
    """A mutable, observable HTML document."""

    def __init__(self, soup: BeautifulSoup, url: str = "about:blank") -> None:
        self.soup = soup
        self.url = url
        self._observers: list[MutationObserver] = []
        self._listeners: dict[int, list[tuple[Tag, str, Callable[[Event], None]]]] = {}

    @classmethod
    def from_html(cls, html: str, url: str = "about:blank", parser: str = "lxml") -> LiveDocument:
        """Parse a whole page."""
        return cls(BeautifulSoup(html, parser), url)

    @property
    def body(self) -> Tag:
        return self.soup.body or self.soup

    def to_html(self) -> str:
        return str(self.soup)

    # Queries

    def query_selector(self, root: Tag, selector: str) -> Tag | None:
        """First descendant of root matching selector."""
        return soupsieve.select_one(selector, root)

    def query_selector_all(self, selector: str, root: Tag | None = None) -> list[Tag]:
        """All descendants of root (default: body) matching selector."""
        return soupsieve.select(selector, root if root is not None else self.body)

    def parent_element(self, element: PageElement) -> Tag | None:
        parent = element.parent
        return parent if _is_element(parent) else None

    def closest(self, element: Tag, selector: str) -> Tag | None:
        """Nearest inclusive ancestor matching selector."""
        return soupsieve.closest(selector, element)

    def contains(self, node: PageElement) -> bool:
        """Whether node is still connected to this document."""
        return _is_inclusive_ancestor(self.soup, node)

    def css_path(self, element: Tag) -> str:
        """Build a structural selector that addresses element uniquely."""
        parts: list[str] = []
        node: Tag | None = element
        while node is not None:
            parent = self.parent_element(node)
            if parent is None:
                parts.append(node.name)
                break
            index = 1
            for sibling in node.previous_siblings:
                if isinstance(sibling, Tag) and sibling.name == node.name:
                    index += 1
            parts.append(f"{node.name}:nth-of-type({index})")
            node = parent
        return " > ".join(reversed(parts))

    # Attributes and properties

    def get_attribute(self, element: Tag, name: str) -> str | None:
        value = element.get(name)
        if value is None:
            return None
        if isinstance(value, list):
            return " ".join(value)
        return str(value)

    def has_attribute(self, element: Tag, name: str) -> bool:
        return element.has_attr(name)

    def set_attribute(self, element: Tag, name: str, value: str) -> None:
        element[name] = value
        self._record(MutationRecord(type="attributes", target=element, attribute_name=name))

    def remove_attribute(self, element: Tag, name: str) -> None:
        if element.has_attr(name):
            del element[name]
            self._record(MutationRecord(type="attributes", target=element, attribute_name=name))

    def get_property(self, element: Tag, name: str) -> str | None:
        """Read a DOM-like property; None when it is not textual."""
        if name in ("textContent", "innerText"):
            return element.get_text()
        if name in _URL_PROPERTIES:
            value = self.get_attribute(element, name)
            if value is None:
                return None
            return urljoin(self.url, value.strip())
        if name in _REFLECTED_PROPERTIES:
            return self.get_attribute(element, _REFLECTED_PROPERTIES[name]) or ""
        if name in ("tagName", "nodeName"):
            return element.name.upper()
        if name == "localName":
            return element.name
        if name == "innerHTML":
            return element.decode_contents()
        if name == "outerHTML":
            return str(element)
        return None

    # Tree mutation

    def create_element(self, name: str, attrs: dict[str, str] | None = None) -> Tag:
        return self.soup.new_tag(name, attrs=attrs or {})

    def append_child(self, parent: Tag, child: PageElement) -> PageElement:
        old_parent = child.parent
        if old_parent is not None:
            self.remove(child)
        parent.append(child)
        self._record(MutationRecord(type="childList", target=parent, added_nodes=[child]))
        return child

    def insert_html(self, parent: Tag, html: str) -> list[PageElement]:
        """Parse an HTML fragment and append its nodes to parent."""
        fragment = BeautifulSoup(html, "html.parser")
        nodes = [node.extract() for node in list(fragment.contents)]
        for node in nodes:
            parent.append(node)
        if nodes:
            self._record(MutationRecord(type="childList", target=parent, added_nodes=nodes))
        return nodes

    def remove(self, node: PageElement) -> None:
        parent = node.parent
        if parent is None:
            return
        node.extract()
        self._record(MutationRecord(type="childList", target=parent, removed_nodes=[node]))

    def set_text_content(self, element: Tag, text: str) -> None:
        removed = [node.extract() for node in list(element.contents)]
        added = NavigableString(text)
        element.append(added)
        self._record(
            MutationRecord(type="childList", target=element, added_nodes=[added], removed_nodes=removed)
        )

    # Events

    def add_event_listener(self, element: Tag, type: str, listener: Callable[[Event], None]) -> None:
        self._listeners.setdefault(id(element), []).append((element, type, listener))

    def remove_event_listeners(self, element: Tag) -> None:
        self._listeners.pop(id(element), None)

    def dispatch_event(self, element: Tag, type: str) -> Event:
        """Dispatch an event at element and bubble it through its ancestors."""
        event = Event(type=type, target=element)
        node: Tag | None = element
        while node is not None and not event.propagation_stopped:
            for owner, listener_type, listener in list(self._listeners.get(id(node), [])):
                if owner is node and listener_type == type:
                    listener(event)
            node = self.parent_element(node)
        return event

    # Mutation observation

    def _add_observer(self, observer: MutationObserver) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    def _remove_observer(self, observer: MutationObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def _record(self, record: MutationRecord) -> None:
        for observer in self._observers:
            observer._enqueue(record)

    def flush(self) -> None:
        """Deliver pending mutation records to every observer."""
        for observer in list(self._observers):
            observer._deliver()
