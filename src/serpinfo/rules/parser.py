"""
Rule text parser.

Rule documents are YAML, read with the YAML 1.2 core schema: only
``true``/``false`` are booleans and dates stay strings. Parsing never raises
for bad input: it returns a ParseResult carrying either the document or an
error message. In strict mode a document whose result descriptions had to be
dropped (or whose pages end up with no usable results) still parses, with the
problems reported in error.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

import yaml

from ..exceptions import ParseError, ValidationError
from .models import SerpInfo

logger = logging.getLogger(__name__)

_BOOL_TAG = "tag:yaml.org,2002:bool"
_TIMESTAMP_TAG = "tag:yaml.org,2002:timestamp"


class RuleLoader(yaml.SafeLoader):
    """SafeLoader without the YAML 1.1 yes/no/on/off booleans and timestamps."""


RuleLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag not in (_BOOL_TAG, _TIMESTAMP_TAG)]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}
RuleLoader.add_implicit_resolver(
    _BOOL_TAG, re.compile(r"^(?:true|True|TRUE|false|False|FALSE)$"), list("tTfF")
)


@dataclass(frozen=True)
class ParseResult:
    """Outcome of parsing one rule document."""

    data: SerpInfo | None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.data is not None


def load_yaml(text: str) -> object:
    """Load YAML rule text.

    Raises:
        ParseError: If the text is not well-formed YAML or nests too deeply.
    """
    try:
        return yaml.load(text, Loader=RuleLoader)
    except yaml.YAMLError as e:
        raise ParseError(str(e)) from None
    except RecursionError:
        raise ParseError("document is nested too deeply") from None


def parse(text: str, strict: bool = False) -> ParseResult:
    """Parse and validate rule text."""
    try:
        doc = load_yaml(text)
    except ParseError as e:
        logger.debug("Failed to parse rule text: %s", e)
        return ParseResult(data=None, error=str(e))

    warnings: list[str] = []
    try:
        serp_info = SerpInfo.from_dict(doc, warnings)
    except ValidationError as e:
        logger.debug("Invalid rule document: %s", e)
        return ParseResult(data=None, error=str(e))
    except RecursionError:
        logger.debug("Rule document nests commands too deeply")
        return ParseResult(data=None, error=str(ValidationError("Commands are nested too deeply")))

    if strict and warnings:
        return ParseResult(data=serp_info, error=str(ValidationError(warnings)))

    if warnings:
        logger.debug("Dropped %d invalid entries from %r", len(warnings), serp_info.name)

    return ParseResult(data=serp_info)
