"""
Exception hierarchy for serpinfo.

Every error is attached to the smallest entity that owns it (one remote
source, one page, one result description, one command); none of them is
allowed to block compilation or filtering of unrelated rules.
"""

from __future__ import annotations


class SerpInfoError(Exception):
    """Base class for all serpinfo errors."""


class ParseError(SerpInfoError):
    """Rule text is not well-formed YAML."""

    def __init__(self, detail: str) -> None:
        super().__init__(f"Parse error: {detail}")
        self.detail = detail


class ValidationError(SerpInfoError):
    """Rule document is structurally invalid.

    Each issue is a human readable message that already includes the path of
    the offending value, e.g. ``Expected string at "pages[0].name"``.
    """

    def __init__(self, issues: list[str] | str) -> None:
        if isinstance(issues, str):
            issues = [issues]
        self.issues = list(issues)
        super().__init__("Validation error: " + "; ".join(self.issues))


class InvalidPatternError(SerpInfoError, ValueError):
    """A match pattern was rejected."""

    def __init__(self, pattern: str) -> None:
        super().__init__(f"Invalid match pattern: {pattern!r}")
        self.pattern = pattern


class CommandError(SerpInfoError):
    """A command could not be evaluated against the document."""


class NetworkError(SerpInfoError):
    """A remote rule source could not be downloaded."""


class HttpError(NetworkError):
    """A remote rule source answered with a non-success status."""

    def __init__(self, status: int, reason: str) -> None:
        super().__init__(f"{status} {reason}".rstrip())
        self.status = status
        self.reason = reason
