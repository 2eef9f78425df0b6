"""
Data model for SERPINFO rule documents.

A rule document names a set of pages (search engine result pages); each page
lists the match patterns it applies to and how to find and read its results.
Documents are validated while they are built: structural problems raise
ValidationError, while an individual malformed result description only
degrades to None so the rest of the document stays usable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from ..exceptions import ValidationError
from ..match_pattern import parse_match_pattern
from .commands import (
    ButtonCommand,
    PropertyCommand,
    RootsCommand,
    validate_button_command,
    validate_property_command,
    validate_roots_command,
)

UserAgent = Literal["any", "desktop", "mobile"]

_USER_AGENTS = ("any", "desktop", "mobile")


def _at(path: str) -> str:
    return f' at "{path}"' if path else ""


def _join(path: str, key: str | int) -> str:
    if isinstance(key, int):
        return f"{path}[{key}]"
    return f"{path}.{key}" if path else key


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def _expect(expected: str, value: Any, path: str) -> str:
    if value is None:
        return f"Required{_at(path)}"
    return f"Expected {expected}, received {_type_name(value)}{_at(path)}"


@dataclass(frozen=True)
class ResultDescription:
    """How to find and read one kind of result on a page."""

    root: RootsCommand
    url: PropertyCommand
    props: dict[str, PropertyCommand] = field(default_factory=dict)
    button: ButtonCommand | None = None

    @classmethod
    def from_dict(cls, data: Any, path: str = "") -> ResultDescription:
        """Create a ResultDescription from a dictionary.

        Raises:
            ValidationError: If any command is malformed.
        """
        if not isinstance(data, dict):
            raise ValidationError(_expect("object", data, path))

        issues: list[str] = []

        def check(key: str, validate: Any, required: bool = True) -> Any:
            value = data.get(key)
            if value is None:
                if required:
                    issues.append(f"Required{_at(_join(path, key))}")
                return None
            try:
                return validate(value, _join(path, key))
            except ValidationError as e:
                issues.extend(e.issues)
                return None

        root = check("root", validate_roots_command)
        url = check("url", validate_property_command)
        button = check("button", validate_button_command, required=False)

        props: dict[str, PropertyCommand] = {}
        raw_props = data.get("props")
        if raw_props is not None:
            if not isinstance(raw_props, dict):
                issues.append(_expect("object", raw_props, _join(path, "props")))
            else:
                for name, command in raw_props.items():
                    prop_path = _join(_join(path, "props"), str(name))
                    if not isinstance(name, str):
                        issues.append(f"Expected string key{_at(prop_path)}")
                        continue
                    try:
                        props[name] = validate_property_command(command, prop_path)
                    except ValidationError as e:
                        issues.extend(e.issues)

        if issues:
            raise ValidationError(issues)

        return cls(root=root, url=url, props=props, button=button)


@dataclass(frozen=True)
class SerpDescription:
    """Rules for one kind of page."""

    name: str
    matches: tuple[str, ...]
    results: tuple[ResultDescription | None, ...]
    exclude_matches: tuple[str, ...] | None = None
    user_agent: UserAgent | None = None
    common_props: dict[str, str] = field(default_factory=dict)
    delay: bool | int | float | None = None

    @classmethod
    def from_dict(
        cls, data: Any, path: str = "", warnings: list[str] | None = None
    ) -> SerpDescription:
        """Create a SerpDescription from a dictionary.

        Malformed result descriptions become None; their issues (and an empty
        result list) are appended to warnings when given.

        Raises:
            ValidationError: If the page itself is malformed.
        """
        if not isinstance(data, dict):
            raise ValidationError(_expect("object", data, path))

        issues: list[str] = []

        name = data.get("name")
        if not isinstance(name, str):
            issues.append(_expect("string", name, _join(path, "name")))

        matches = _match_patterns(data.get("matches"), _join(path, "matches"), issues, required=True)
        exclude_matches = _match_patterns(
            data.get("excludeMatches"), _join(path, "excludeMatches"), issues, required=False
        )

        user_agent = data.get("userAgent")
        if user_agent is not None and user_agent not in _USER_AGENTS:
            expected = " | ".join(f"'{u}'" for u in _USER_AGENTS)
            issues.append(f"Invalid enum value, expected {expected}{_at(_join(path, 'userAgent'))}")

        common_props: dict[str, str] = {}
        raw_common = data.get("commonProps")
        if raw_common is not None:
            if not isinstance(raw_common, dict):
                issues.append(_expect("object", raw_common, _join(path, "commonProps")))
            else:
                for key, value in raw_common.items():
                    if not isinstance(key, str) or not isinstance(value, str):
                        issues.append(_expect("string", value, _join(_join(path, "commonProps"), str(key))))
                    else:
                        common_props[key] = value

        delay = data.get("delay")
        if delay is not None and not isinstance(delay, (bool, int, float)):
            issues.append(f"Expected boolean or number{_at(_join(path, 'delay'))}")

        results: list[ResultDescription | None] = []
        raw_results = data.get("results")
        results_path = _join(path, "results")
        if not isinstance(raw_results, list):
            issues.append(_expect("array", raw_results, results_path))
        else:
            for i, raw in enumerate(raw_results):
                try:
                    results.append(ResultDescription.from_dict(raw, _join(results_path, i)))
                except ValidationError as e:
                    results.append(None)
                    if warnings is not None:
                        warnings.extend(e.issues)

        if issues:
            raise ValidationError(issues)

        if warnings is not None and not any(r is not None for r in results):
            warnings.append(f"No valid results{_at(results_path)}")

        return cls(
            name=name,
            matches=matches,
            results=tuple(results),
            exclude_matches=exclude_matches,
            user_agent=user_agent,
            common_props=common_props,
            delay=delay,
        )


def _match_patterns(value: Any, path: str, issues: list[str], required: bool) -> tuple[str, ...] | None:
    if value is None and not required:
        return None
    if not isinstance(value, list):
        issues.append(_expect("array", value, path))
        return ()
    patterns = []
    for i, pattern in enumerate(value):
        if not isinstance(pattern, str):
            issues.append(_expect("string", pattern, _join(path, i)))
        elif parse_match_pattern(pattern) is None:
            issues.append(f"Invalid match pattern{_at(_join(path, i))}")
        else:
            patterns.append(pattern)
    return tuple(patterns)


@dataclass(frozen=True)
class SerpInfo:
    """A parsed rule document."""

    name: str
    pages: tuple[SerpDescription, ...]
    version: int | None = None

    @classmethod
    def from_dict(cls, data: Any, warnings: list[str] | None = None) -> SerpInfo:
        """Create a SerpInfo from the loaded YAML document.

        Raises:
            ValidationError: If the document is malformed.
        """
        if not isinstance(data, dict):
            raise ValidationError(_expect("object", data, ""))

        issues: list[str] = []

        version = data.get("version")
        if version is not None and (isinstance(version, bool) or version != 1):
            issues.append(f"Invalid literal value, expected 1{_at('version')}")

        name = data.get("name")
        if not isinstance(name, str):
            issues.append(_expect("string", name, "name"))

        pages: list[SerpDescription] = []
        raw_pages = data.get("pages")
        if not isinstance(raw_pages, list):
            issues.append(_expect("array", raw_pages, "pages"))
        else:
            for i, raw in enumerate(raw_pages):
                try:
                    pages.append(SerpDescription.from_dict(raw, _join("pages", i), warnings))
                except ValidationError as e:
                    issues.extend(e.issues)

        if issues:
            raise ValidationError(issues)

        return cls(name=name, pages=tuple(pages), version=version)
