"""
serpinfo CLI

Command-line interface for checking rule documents, trying them on saved
pages, and managing the stored SERPINFO settings.

Usage:
    serpinfo check rules.yml --strict
    serpinfo match "https://search.brave.com/search?q=x" rules.yml community.yml
    serpinfo filter page.html --url "https://search.brave.com/search?q=x" \\
        --rules rules.yml --block "*://*.example.com/*" --output marked.html
    serpinfo enable
    serpinfo user rules.yml
    serpinfo remote add https://example.org/serpinfo.yml
    serpinfo update
    serpinfo status
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .config import SerpInfoConfig, resolve_settings_path
from .constants import BLOCK_ATTRIBUTE, HIGHLIGHT_ATTRIBUTE
from .content.document import LiveDocument
from .content.filter import Filter
from .content.routing import is_excluded, matches_device
from .content.ruleset import PatternRuleset
from .content.style import get_marker_css
from .exceptions import InvalidPatternError
from .rules.compiler import compile_serp_info
from .rules.parser import parse
from .settings.manager import SerpInfoManager
from .settings.store import SettingsStore

logger = logging.getLogger(__name__)


def _read(path: str) -> str:
    return Path(path).read_text(encoding="utf-8")


def _check(args: argparse.Namespace, config: SerpInfoConfig) -> int:
    result = parse(_read(args.file), strict=args.strict)
    if result.data is None:
        print(f"{args.file}: {result.error}")
        return 1
    pages = result.data.pages
    print(f"{args.file}: {result.data.name} ({len(pages)} pages)")
    for page in pages:
        usable = sum(1 for r in page.results if r is not None)
        print(f"   {page.name}: {usable} of {len(page.results)} results")
    if result.error:
        print(f"{args.file}: {result.error}")
        return 1
    return 0


def _match(args: argparse.Namespace, config: SerpInfoConfig) -> int:
    user, *community = [_read(f) for f in args.files]
    compiled = compile_serp_info(user, community)
    if compiled.error:
        print(f"{args.files[0]}: {compiled.error}")
    serps = [s for s in compiled.data.get(args.url) if not is_excluded(s, args.url)]
    if not serps:
        print(f"No pages match {args.url}")
        return 1
    for serp in serps:
        print(serp.name)
    return 0


def _filter(args: argparse.Namespace, config: SerpInfoConfig) -> int:
    compiled = compile_serp_info(_read(args.rules), [])
    if compiled.error:
        print(f"{args.rules}: {compiled.error}")
    mobile = args.mobile or config.mobile
    serps = [
        s
        for s in compiled.data.get(args.url)
        if not is_excluded(s, args.url) and matches_device(s, mobile)
    ]
    if not serps:
        print(f"No pages match {args.url}")
        return 1

    try:
        ruleset = PatternRuleset(block=args.block)
    except InvalidPatternError as e:
        print(str(e))
        return 2
    if args.blocklist:
        ruleset = PatternRuleset.from_text(_read(args.blocklist) + "\n" + "\n".join(args.block))

    document = LiveDocument.from_html(_read(args.html), args.url)
    filter = Filter(serps, document, ruleset, icon_size=config.icon_size)
    filter.start()
    filter.stop()

    for result in filter.results:
        if document.has_attribute(result.root, BLOCK_ATTRIBUTE):
            mark = "blocked"
        elif document.has_attribute(result.root, HIGHLIGHT_ATTRIBUTE):
            mark = "highlighted"
        else:
            mark = "shown"
        print(f"   [{mark}] {result.url}")
    print(f"{len(filter.results)} results, {filter.blocked_result_count} blocked")

    if args.output:
        style = document.create_element("style")
        style.string = get_marker_css(config)
        document.append_child(document.soup.head or document.body, style)
        Path(args.output).write_text(document.to_html(), encoding="utf-8")
        print(f"Wrote {args.output}")
    return 0


# Settings commands


def _manager(config: SerpInfoConfig) -> SerpInfoManager:
    path = resolve_settings_path(config)
    logger.debug("Using settings at %s", path)
    return SerpInfoManager(SettingsStore(path), config)


async def _status(args: argparse.Namespace, config: SerpInfoConfig) -> int:
    settings = await _manager(config).get_settings()
    print(f"SERPINFO: {'enabled' if settings.enabled else 'disabled'}")
    user = settings.user
    pages = len(user.parsed.pages) if user.parsed else 0
    print(f"User rules: {pages} pages" + (f" ({user.error})" if user.error else ""))
    for remote in settings.remote:
        state = "enabled" if remote.enabled else "disabled"
        if remote.download_error:
            detail = f"download failed: {remote.download_error}"
        elif remote.parse_error:
            detail = remote.parse_error
        elif remote.parsed:
            detail = f"{remote.parsed.name} ({len(remote.parsed.pages)} pages)"
        else:
            detail = "not downloaded"
        print(f"   [{state}] {remote.url}: {detail}")
    return 0


async def _enable(args: argparse.Namespace, config: SerpInfoConfig) -> int:
    await _manager(config).enable(args.command == "enable")
    print("SERPINFO enabled" if args.command == "enable" else "SERPINFO disabled")
    return 0


async def _user(args: argparse.Namespace, config: SerpInfoConfig) -> int:
    error = await _manager(config).set_user(_read(args.file))
    if error:
        print(f"{args.file}: {error}")
        return 1
    print(f"User rules set from {args.file}")
    return 0


async def _remote(args: argparse.Namespace, config: SerpInfoConfig) -> int:
    manager = _manager(config)
    if args.action == "add":
        await manager.add_remote(args.url)
    elif args.action == "remove":
        await manager.remove_remote(args.url)
    else:
        await manager.enable_remote(args.url, args.action == "enable")

    settings = await manager.get_settings()
    remote = next((r for r in settings.remote if r.url == args.url), None)
    if remote is not None and remote.download_error:
        print(f"{args.url}: download failed: {remote.download_error}")
        return 1
    print(f"{args.url}: {args.action} done")
    return 0


async def _update(args: argparse.Namespace, config: SerpInfoConfig) -> int:
    manager = _manager(config)
    await manager.on_startup()
    settings = await manager.get_settings()
    failed = [r for r in settings.remote if r.enabled and r.download_error]
    for remote in failed:
        print(f"{remote.url}: download failed: {remote.download_error}")
    return 1 if failed else 0


_COMMANDS = {
    "check": _check,
    "match": _match,
    "filter": _filter,
}

_SETTINGS_COMMANDS = {
    "status": _status,
    "enable": _enable,
    "disable": _enable,
    "user": _user,
    "remote": _remote,
    "update": _update,
}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="serpinfo", description="Check SERPINFO rule documents, filter saved pages and manage settings"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("-c", "--config", help="Config file (default: <config dir>/config.json)")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Check command
    check_parser = subparsers.add_parser("check", help="Validate a rule document")
    check_parser.add_argument("file", help="Rule document (YAML)")
    check_parser.add_argument("-s", "--strict", action="store_true",
                              help="Also report dropped results and pages without results")

    # Match command
    match_parser = subparsers.add_parser("match", help="Show the pages that apply to a URL")
    match_parser.add_argument("url", help="Page URL")
    match_parser.add_argument("files", nargs="+",
                              help="Rule documents; the first is treated as the user's")

    # Filter command
    filter_parser = subparsers.add_parser("filter", help="Filter the results of a saved page")
    filter_parser.add_argument("html", help="Saved HTML page")
    filter_parser.add_argument("-u", "--url", required=True, help="URL the page was saved from")
    filter_parser.add_argument("-r", "--rules", required=True, help="Rule document (YAML)")
    filter_parser.add_argument("-b", "--block", action="append", default=[],
                               help="Match pattern of result URLs to block (repeatable)")
    filter_parser.add_argument("-l", "--blocklist", help="Blocklist file")
    filter_parser.add_argument("-m", "--mobile", action="store_true",
                               help="Treat the page as mobile (default: config 'mobile')")
    filter_parser.add_argument("-o", "--output", help="Write the marked page here")

    # Settings commands
    subparsers.add_parser("status", help="Show the stored settings")
    subparsers.add_parser("enable", help="Enable SERPINFO and download remote sources")
    subparsers.add_parser("disable", help="Disable SERPINFO")

    user_parser = subparsers.add_parser("user", help="Set the user's rule document")
    user_parser.add_argument("file", help="Rule document (YAML)")

    remote_parser = subparsers.add_parser("remote", help="Manage remote rule sources")
    remote_parser.add_argument("action", choices=["add", "remove", "enable", "disable"])
    remote_parser.add_argument("url", help="Source URL")

    subparsers.add_parser("update", help="Merge builtin sources and download every enabled source")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 1

    try:
        config = SerpInfoConfig.load(Path(args.config) if args.config else None)
    except (OSError, ValueError) as e:
        print(f"Invalid config: {e}")
        return 2

    try:
        if args.command in _SETTINGS_COMMANDS:
            return asyncio.run(_SETTINGS_COMMANDS[args.command](args, config))
        return _COMMANDS[args.command](args, config)
    except OSError as e:
        print(f"Error: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
