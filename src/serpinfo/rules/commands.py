"""
Command interpreter for SERPINFO rules.

Commands are small recursive expressions written as YAML sequences whose
first item is the command name, or as a bare string (an implicit selector).
Four families are supported:
- element commands: locate a single element relative to a root
- roots commands: locate the candidate result elements of a page
- property commands: extract a string from an element
- button commands: place the action button on a result

Parsed commands are immutable tuples. Each family is evaluated by dispatching
on the command name into a table of plain functions; the interpreter does not
catch errors raised while evaluating (malformed selectors, unexpected tree
shapes), that is left to the caller.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qsl, urljoin, urlsplit

import soupsieve

from ..constants import BUTTON_ATTRIBUTE, BUTTON_PARENT_ATTRIBUTE
from ..exceptions import CommandError, ValidationError

if TYPE_CHECKING:
    from bs4.element import Tag

    from ..content.document import Event, LiveDocument

# ["id", inner?] | ["or", [cmd...], inner?] | ["selector", css, inner?]
# | ["upward", levels-or-css, inner?] | css
ElementCommand = str | tuple
# ["map", element, roots] | ["selector", css] | css
RootsCommand = str | tuple
# ["attribute", name, element?] | ["domainToURL", prop] | ["jsonItem", name, prop]
# | ["or", [prop...], element?] | ["property", name, element?] | ["string", text]
# | ["urlQueryParameter", name, prop] | css
PropertyCommand = str | tuple
# ["inset", box, element?]
ButtonCommand = tuple

# Domain-like substring: labels of letters/digits (plus "_" and "-" after the
# first character) and a final label of at least two letters/digits
_DOMAIN_RE = re.compile(r"(?:[^\W_][\w-]*\.)+[^\W_]{2,}")


@dataclass(frozen=True)
class InsetBox:
    """Offsets of the action button inside its parent."""

    top: int | str | None = None
    right: int | str | None = None
    bottom: int | str | None = None
    left: int | str | None = None
    z_index: int | float | None = None


DEFAULT_BUTTON_COMMAND: ButtonCommand = ("inset", InsetBox(top=0, right=0))


@dataclass(frozen=True)
class ElementCommandContext:
    """Evaluation context: the document and the current root element."""

    document: LiveDocument
    root: Tag


@dataclass(frozen=True)
class PropertyCommandContext(ElementCommandContext):
    """Property context; url selects "href" instead of "textContent" by default."""

    url: bool = False


@dataclass(frozen=True)
class ButtonCommandContext(ElementCommandContext):
    icon_source: str
    icon_size: int
    on_click: Callable[[], None]


# Element commands


def _get_root(context: ElementCommandContext, root_command: ElementCommand | None) -> Tag | None:
    if root_command is None:
        return context.root
    return run_element_command(context, root_command)


def _element_id(context: ElementCommandContext, root_command: ElementCommand | None = None) -> Tag | None:
    return _get_root(context, root_command)


def _element_or(
    context: ElementCommandContext,
    commands: tuple[ElementCommand, ...],
    root_command: ElementCommand | None = None,
) -> Tag | None:
    root = _get_root(context, root_command)
    if root is None:
        return None
    inner = ElementCommandContext(document=context.document, root=root)
    for command in commands:
        element = run_element_command(inner, command)
        if element is not None:
            return element
    return None


def _element_selector(
    context: ElementCommandContext,
    selector: str,
    root_command: ElementCommand | None = None,
) -> Tag | None:
    root = _get_root(context, root_command)
    if root is None:
        return None
    return context.document.query_selector(root, selector)


def _element_upward(
    context: ElementCommandContext,
    level_or_selector: int | str,
    root_command: ElementCommand | None = None,
) -> Tag | None:
    root = _get_root(context, root_command)
    if root is None:
        return None
    document = context.document
    if isinstance(level_or_selector, int):
        parent: Tag | None = root
        for _ in range(level_or_selector):
            parent = document.parent_element(parent)
            if parent is None:
                return None
        return parent
    parent = document.parent_element(root)
    if parent is None:
        return None
    return document.closest(parent, level_or_selector)


_ELEMENT_COMMANDS: dict[str, Callable[..., Any]] = {
    "id": _element_id,
    "or": _element_or,
    "selector": _element_selector,
    "upward": _element_upward,
}


def run_element_command(context: ElementCommandContext, command: ElementCommand | None) -> Tag | None:
    """Resolve an element command to a single element or None."""
    if command is None:
        return context.root
    if isinstance(command, str):
        return _element_selector(context, command)
    name, *args = command
    impl = _ELEMENT_COMMANDS.get(name)
    if impl is None:
        raise CommandError(f"Unknown element command: {name!r}")
    return impl(context, *args)


# Roots commands


def _roots_map(
    document: LiveDocument, element_command: ElementCommand, roots_command: RootsCommand
) -> list[Tag]:
    elements = []
    for root in run_roots_command(document, roots_command):
        element = run_element_command(ElementCommandContext(document=document, root=root), element_command)
        if element is not None:
            elements.append(element)
    return elements


def _roots_selector(document: LiveDocument, selector: str) -> list[Tag]:
    return document.query_selector_all(selector)


_ROOTS_COMMANDS: dict[str, Callable[..., list[Tag]]] = {
    "map": _roots_map,
    "selector": _roots_selector,
}


def run_roots_command(document: LiveDocument, command: RootsCommand) -> list[Tag]:
    """Resolve a roots command to the list of candidate elements."""
    if isinstance(command, str):
        return _roots_selector(document, command)
    name, *args = command
    impl = _ROOTS_COMMANDS.get(name)
    if impl is None:
        raise CommandError(f"Unknown roots command: {name!r}")
    return impl(document, *args)


# Property commands


def _property_attribute(
    context: PropertyCommandContext, name: str, root_command: ElementCommand | None = None
) -> str | None:
    root = _get_root(context, root_command)
    if root is None:
        return None
    return context.document.get_attribute(root, name)


def _property_domain_to_url(context: PropertyCommandContext, command: PropertyCommand) -> str | None:
    text = run_property_command(context, command)
    if text is None:
        return None
    m = _DOMAIN_RE.search(text)
    if m is None:
        return None
    return f"https://{_to_ascii(m.group(0))}/"


def _to_ascii(domain: str) -> str:
    """Encode non-ASCII labels with punycode."""
    labels = []
    for label in domain.split("."):
        if label.isascii():
            labels.append(label)
        else:
            labels.append("xn--" + label.encode("punycode").decode("ascii"))
    return ".".join(labels)


def _property_json_item(context: PropertyCommandContext, name: str, command: PropertyCommand) -> str | None:
    text = run_property_command(context, command)
    if text is None:
        return None
    try:
        obj = json.loads(text)
    except (ValueError, RecursionError):
        return None
    if not isinstance(obj, dict):
        return None
    value = obj.get(name)
    return value if isinstance(value, str) else None


def _property_or(
    context: PropertyCommandContext,
    commands: tuple[PropertyCommand, ...],
    root_command: ElementCommand | None = None,
) -> str | None:
    # root_command is accepted by the grammar but every alternative runs
    # against the current context
    for command in commands:
        value = run_property_command(context, command)
        if value is not None:
            return value
    return None


def _property_property(
    context: PropertyCommandContext, name: str, root_command: ElementCommand | None = None
) -> str | None:
    root = _get_root(context, root_command)
    if root is None:
        return None
    return context.document.get_property(root, name)


def _property_string(context: PropertyCommandContext, value: str) -> str:
    return value


def _property_url_query_parameter(
    context: PropertyCommandContext, name: str, command: PropertyCommand
) -> str | None:
    url = run_property_command(context, command)
    if url is None:
        return None
    try:
        parsed = urlsplit(urljoin(context.document.url, url))
    except ValueError:
        return None
    if not parsed.scheme:
        return None
    for key, value in parse_qsl(parsed.query, keep_blank_values=True):
        if key == name:
            return value
    return None


_PROPERTY_COMMANDS: dict[str, Callable[..., str | None]] = {
    "attribute": _property_attribute,
    "domainToURL": _property_domain_to_url,
    "jsonItem": _property_json_item,
    "or": _property_or,
    "property": _property_property,
    "string": _property_string,
    "urlQueryParameter": _property_url_query_parameter,
}


def run_property_command(context: PropertyCommandContext, command: PropertyCommand) -> str | None:
    """Resolve a property command to a string or None."""
    if isinstance(command, str):
        return _property_property(context, "href" if context.url else "textContent", command)
    name, *args = command
    impl = _PROPERTY_COMMANDS.get(name)
    if impl is None:
        raise CommandError(f"Unknown property command: {name!r}")
    return impl(context, *args)


# Button commands


def _css_length(value: int | str) -> str:
    return "0" if value == 0 else str(value)


def _inset_style(box: InsetBox) -> str:
    style = {
        "background": "transparent",
        "border": "none",
        "cursor": "pointer",
        "padding": "12px",
        "position": "absolute",
        "z-index": "1",
    }
    for prop in ("top", "right", "bottom", "left"):
        value = getattr(box, prop)
        if value is not None:
            style[prop] = _css_length(value)
    if box.z_index is not None:
        style["z-index"] = str(box.z_index)
    return "; ".join(f"{k}: {v}" for k, v in style.items())


def _button_inset(
    context: ButtonCommandContext, box: InsetBox, root_command: ElementCommand | None = None
) -> Callable[[], None] | None:
    parent = _get_root(context, root_command)
    if parent is None:
        return None
    document = context.document

    document.set_attribute(parent, BUTTON_PARENT_ATTRIBUTE, "1")

    button = document.create_element(
        "button", {"type": "button", BUTTON_ATTRIBUTE: "1", "style": _inset_style(box)}
    )
    size = str(context.icon_size)
    button.append(document.create_element("img", {"src": context.icon_source, "width": size, "height": size}))

    def on_click(event: Event) -> None:
        event.prevent_default()
        event.stop_propagation()
        context.on_click()

    document.add_event_listener(button, "click", on_click)
    document.append_child(parent, button)

    def remove_button() -> None:
        document.remove_event_listeners(button)
        document.remove(button)
        document.remove_attribute(parent, BUTTON_PARENT_ATTRIBUTE)

    return remove_button


_BUTTON_COMMANDS: dict[str, Callable[..., Callable[[], None] | None]] = {
    "inset": _button_inset,
}


def run_button_command(context: ButtonCommandContext, command: ButtonCommand) -> Callable[[], None] | None:
    """Insert the action button; returns a function that removes it again."""
    name, *args = command
    impl = _BUTTON_COMMANDS.get(name)
    if impl is None:
        raise CommandError(f"Unknown button command: {name!r}")
    return impl(context, *args)


# Validation
#
# Rule text comes from untrusted sources, so every command is checked for
# known names, fixed arities and valid selectors before it is ever run.


def _at(path: str) -> str:
    return f' at "{path}"' if path else ""


def _check_string(value: Any, path: str) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"Expected string{_at(path)}")
    return value


def _check_selector(value: Any, path: str) -> str:
    _check_string(value, path)
    try:
        soupsieve.compile(value)
    except (soupsieve.SelectorSyntaxError, TypeError, ValueError, NotImplementedError):
        raise ValidationError(f"Invalid selector{_at(path)}") from None
    return value


def _split_command(value: Any, path: str, arities: dict[str, tuple[int, int]]) -> tuple[str, list[Any]]:
    if not isinstance(value, (list, tuple)) or not value:
        raise ValidationError(f"Expected array{_at(path)}")
    name = value[0]
    if not isinstance(name, str) or name not in arities:
        expected = " | ".join(f"'{n}'" for n in arities)
        raise ValidationError(f"Invalid command name, expected {expected}{_at(f'{path}[0]')}")
    args = list(value[1:])
    low, high = arities[name]
    if not low <= len(args) <= high:
        raise ValidationError(f"Expected {low}-{high} arguments for '{name}'{_at(path)}")
    return name, args


def _optional(
    args: list[Any], index: int, path: str, validate: Callable[[Any, str], Any]
) -> tuple[Any, ...]:
    if index >= len(args) or args[index] is None:
        return ()
    return (validate(args[index], f"{path}[{index + 1}]"),)


def _check_list(value: Any, path: str, validate: Callable[[Any, str], Any]) -> tuple[Any, ...]:
    if not isinstance(value, (list, tuple)):
        raise ValidationError(f"Expected array{_at(path)}")
    return tuple(validate(item, f"{path}[{i}]") for i, item in enumerate(value))


_ELEMENT_ARITIES = {"id": (0, 1), "or": (1, 2), "selector": (1, 2), "upward": (1, 2)}


def validate_element_command(value: Any, path: str = "") -> ElementCommand:
    """Check an element command and return its immutable form."""
    if isinstance(value, str):
        return _check_selector(value, path)
    name, args = _split_command(value, path, _ELEMENT_ARITIES)
    if name == "id":
        return (name, *_optional(args, 0, path, validate_element_command))
    if name == "or":
        commands = _check_list(args[0], f"{path}[1]", validate_element_command)
        return (name, commands, *_optional(args, 1, path, validate_element_command))
    if name == "selector":
        selector = _check_selector(args[0], f"{path}[1]")
        return (name, selector, *_optional(args, 1, path, validate_element_command))
    # upward
    level = args[0]
    if isinstance(level, bool) or not isinstance(level, (int, str)):
        raise ValidationError(f"Expected number or string{_at(f'{path}[1]')}")
    if isinstance(level, int) and level < 0:
        raise ValidationError(f"Expected non-negative number{_at(f'{path}[1]')}")
    if isinstance(level, str):
        _check_selector(level, f"{path}[1]")
    return (name, level, *_optional(args, 1, path, validate_element_command))


_ROOTS_ARITIES = {"map": (2, 2), "selector": (1, 1)}


def validate_roots_command(value: Any, path: str = "") -> RootsCommand:
    """Check a roots command and return its immutable form."""
    if isinstance(value, str):
        return _check_selector(value, path)
    name, args = _split_command(value, path, _ROOTS_ARITIES)
    if name == "map":
        return (
            name,
            validate_element_command(args[0], f"{path}[1]"),
            validate_roots_command(args[1], f"{path}[2]"),
        )
    return (name, _check_selector(args[0], f"{path}[1]"))


_PROPERTY_ARITIES = {
    "attribute": (1, 2),
    "domainToURL": (1, 1),
    "jsonItem": (2, 2),
    "or": (1, 2),
    "property": (1, 2),
    "string": (1, 1),
    "urlQueryParameter": (2, 2),
}


def validate_property_command(value: Any, path: str = "") -> PropertyCommand:
    """Check a property command and return its immutable form."""
    if isinstance(value, str):
        return _check_selector(value, path)
    name, args = _split_command(value, path, _PROPERTY_ARITIES)
    if name in ("attribute", "property"):
        return (
            name,
            _check_string(args[0], f"{path}[1]"),
            *_optional(args, 1, path, validate_element_command),
        )
    if name == "domainToURL":
        return (name, validate_property_command(args[0], f"{path}[1]"))
    if name in ("jsonItem", "urlQueryParameter"):
        return (
            name,
            _check_string(args[0], f"{path}[1]"),
            validate_property_command(args[1], f"{path}[2]"),
        )
    if name == "or":
        commands = _check_list(args[0], f"{path}[1]", validate_property_command)
        return (name, commands, *_optional(args, 1, path, validate_element_command))
    # string
    return (name, _check_string(args[0], f"{path}[1]"))


_BUTTON_ARITIES = {"inset": (1, 2)}


def _check_length(value: Any, path: str) -> int | str | None:
    if value is None:
        return None
    if isinstance(value, str) or (type(value) is int and value == 0):
        return value
    raise ValidationError(f"Expected 0 or string{_at(path)}")


def _check_box(value: Any, path: str) -> InsetBox:
    if not isinstance(value, dict):
        raise ValidationError(f"Expected object{_at(path)}")
    z_index = value.get("zIndex")
    if z_index is not None and (isinstance(z_index, bool) or not isinstance(z_index, (int, float))):
        raise ValidationError(f"Expected number{_at(f'{path}.zIndex')}")
    return InsetBox(
        top=_check_length(value.get("top"), f"{path}.top"),
        right=_check_length(value.get("right"), f"{path}.right"),
        bottom=_check_length(value.get("bottom"), f"{path}.bottom"),
        left=_check_length(value.get("left"), f"{path}.left"),
        z_index=z_index,
    )


def validate_button_command(value: Any, path: str = "") -> ButtonCommand:
    """Check a button command and return its immutable form."""
    name, args = _split_command(value, path, _BUTTON_ARITIES)
    return (name, _check_box(args[0], f"{path}[1]"), *_optional(args, 1, path, validate_element_command))
