"""
Community rule sources shipped with serpinfo.

Builtin sources start out already downloaded with the bundled content; the
manager refreshes them from their URL like any other remote source.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class BuiltinSerpInfo:
    url: str
    content: str


BRAVE = """\
name: Brave

pages:
  - name: Brave Search (web)
    matches:
      - https://search.brave.com/search?*
    results:
      - root: "#results > .snippet[data-type='web']"
        url: a
        props:
          title: .title
      - root: "#results .snippet[data-type='news'] .card"
        url: ["selector", "a"]
        props:
          title: .title
      - root: ["selector", "#results .snippet[data-type='videos'] .card"]
        url: a
        props:
          title: .title
  - name: Brave Search (news)
    matches:
      - https://search.brave.com/news?*
    results:
      - root: "#results > .snippet"
        url: a
        props:
          title: .title
"""

BUILTINS: tuple[BuiltinSerpInfo, ...] = (
    BuiltinSerpInfo(
        url="https://raw.githubusercontent.com/iorate/serpinfo/refs/heads/dist/serpinfo/brave.yml",
        content=BRAVE,
    ),
)
