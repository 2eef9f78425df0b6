"""Unit tests for the result filter."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

URL = "https://search.example.com/search?q=test"

PAGE = """
<html><body>
<div id="results">
  <div class="result"><a href="https://good.example.com/">Good</a><h1>Good news</h1></div>
  <div class="result"><a href="https://ads.example.net/">Buy</a><h1>Cheap ad here</h1></div>
</div>
</body></html>
"""

RULES = """
name: Test
pages:
  - name: Results
    matches:
      - https://search.example.com/*
    commonProps:
      engine: example
    results:
      - root: div.result
        url: a
        props:
          title: h1
"""


class TitleRuleset:
    """Blocks titles containing "ad", highlights titles containing "news"."""

    def query(self, props: Mapping[str, str]) -> Any:
        from serpinfo.content.ruleset import QueryResult

        title = props.get("title", "")
        if "ad" in title:
            return QueryResult.block()
        if "news" in title:
            return QueryResult.highlight(2)
        return None


def _serps(rules: str = RULES) -> Any:
    from serpinfo.rules.parser import parse

    result = parse(rules)
    assert result.data is not None
    return result.data.pages


def _roots(document: Any) -> list[Any]:
    return document.query_selector_all("div.result")


@pytest.fixture
def document() -> Any:
    from serpinfo.content.document import LiveDocument

    return LiveDocument.from_html(PAGE, URL)


@pytest.fixture
def publish() -> MagicMock:
    return MagicMock()


@pytest.fixture
def started(document: Any, publish: MagicMock) -> Any:
    from serpinfo.content.filter import Filter

    f = Filter(_serps(), document, TitleRuleset(), publish_count=publish)
    f.start()
    return f


class TestInitialScan:
    """Tests for the first scan of a document."""

    def test_markers_and_count(self, started: Any, document: Any, publish: MagicMock) -> None:
        """Test that results are marked and judged."""
        from serpinfo.content.filter import FilterState

        good, ad = _roots(document)
        assert len(started.results) == 2
        assert started.blocked_result_count == 1
        assert started.state is FilterState.OBSERVING

        assert good.has_attr("data-ub-result")
        assert good.get("data-ub-highlight") == "2"
        assert not good.has_attr("data-ub-block")

        assert ad.has_attr("data-ub-result")
        assert ad.has_attr("data-ub-block")
        assert not ad.has_attr("data-ub-highlight")

        publish.assert_called_with(1)

    def test_extracted_fields(self, started: Any, document: Any) -> None:
        """Test URL and property extraction with common props."""
        good, _ = _roots(document)
        result = started.get_result(good)
        assert result is not None
        assert result.url == "https://good.example.com/"
        assert result.props == {"engine": "example", "title": "Good news"}
        assert result.fields() == {"url": "https://good.example.com/", "engine": "example", "title": "Good news"}

    def test_buttons_added(self, started: Any, document: Any) -> None:
        """Test that every result gets the default inset button."""
        for root in _roots(document):
            assert root.has_attr("data-ub-button-parent")
            assert document.query_selector(root, "button[data-ub-button]") is not None

    def test_button_click(self, document: Any) -> None:
        """Test that clicking a button reports the current result."""
        from serpinfo.content.filter import Filter

        on_click = MagicMock()
        f = Filter(_serps(), document, TitleRuleset(), on_button_click=on_click)
        f.start()

        good, _ = _roots(document)
        button = document.query_selector(good, "button[data-ub-button]")
        document.dispatch_event(button, "click")
        on_click.assert_called_once_with(f.get_result(good))

    def test_missing_url_skips_candidate(self, document: Any) -> None:
        """Test that candidates without a URL are not tracked."""
        from serpinfo.content.filter import Filter

        document.insert_html(document.soup.find(id="results"), '<div class="result"><h1>No link</h1></div>')
        f = Filter(_serps(), document, TitleRuleset())
        f.start()

        assert len(f.results) == 2
        assert not _roots(document)[2].has_attr("data-ub-result")

    def test_invalid_url_skips_candidate(self, document: Any) -> None:
        """Test that a URL that does not parse as absolute is rejected."""
        from serpinfo.content.filter import Filter

        rules = RULES.replace("url: a", 'url: ["string", "not a url"]')
        f = Filter(_serps(rules), document, TitleRuleset())
        f.start()
        assert f.results == []

    def test_overlapping_roots_are_claimed_once(self, document: Any) -> None:
        """Test that candidates inside or around a claimed root are skipped."""
        from serpinfo.content.filter import Filter

        rules = RULES.replace("      - root: div.result", "      - root: '#results'\n        url: a\n      - root: div.result")
        f = Filter(_serps(rules), document, TitleRuleset())
        f.start()

        assert len(f.results) == 1
        assert document.soup.find(id="results").has_attr("data-ub-result")
        assert not any(root.has_attr("data-ub-result") for root in _roots(document))

    def test_command_fault_degrades_to_no_match(self, document: Any) -> None:
        """Test that evaluation faults are logged and not raised."""
        from serpinfo.content.filter import Filter

        f = Filter(_serps(), document, TitleRuleset())
        with patch("serpinfo.content.filter.run_roots_command", side_effect=RuntimeError("boom")):
            f.start()
        assert f.results == []

    def test_failing_ruleset(self, document: Any) -> None:
        """Test that a failing oracle leaves results unmarked."""
        from serpinfo.content.filter import Filter

        ruleset = MagicMock()
        ruleset.query.side_effect = RuntimeError("boom")
        f = Filter(_serps(), document, ruleset)
        f.start()

        assert len(f.results) == 2
        assert f.blocked_result_count == 0

    def test_failing_publish(self, document: Any) -> None:
        """Test that a failing count sink is not an error."""
        from serpinfo.content.filter import Filter

        f = Filter(_serps(), document, TitleRuleset(), publish_count=MagicMock(side_effect=RuntimeError))
        f.start()
        assert f.blocked_result_count == 1


class TestMutations:
    """Tests for following document changes."""

    def test_inserted_result(self, started: Any, document: Any, publish: MagicMock) -> None:
        """Test that a dynamically inserted result is picked up."""
        good, ad = _roots(document)

        document.insert_html(
            document.soup.find(id="results"),
            '<div class="result"><a href="https://x.example.org/">X</a><h1>Another ad</h1></div>',
        )
        document.flush()

        third = _roots(document)[2]
        assert len(started.results) == 3
        assert started.blocked_result_count == 2
        assert third.has_attr("data-ub-block")
        assert good.get("data-ub-highlight") == "2"
        assert ad.has_attr("data-ub-block")
        publish.assert_called_with(2)

    def test_changed_result_is_judged_again(self, started: Any, document: Any) -> None:
        """Test that a changed property re-judges its result."""
        good, _ = _roots(document)
        document.set_text_content(good.find("h1"), "Now an ad")
        document.flush()

        assert good.has_attr("data-ub-block")
        assert not good.has_attr("data-ub-highlight")
        assert started.blocked_result_count == 2
        assert started.get_result(good).props["title"] == "Now an ad"

    def test_unchanged_result_is_not_judged(self, document: Any) -> None:
        """Test that unrelated changes inside a result do not query the ruleset."""
        from serpinfo.content.filter import Filter

        ruleset = MagicMock(wraps=TitleRuleset())
        f = Filter(_serps(), document, ruleset)
        f.start()
        ruleset.query.reset_mock()

        good, _ = _roots(document)
        document.append_child(good, document.create_element("span"))
        document.flush()

        ruleset.query.assert_not_called()
        assert len(f.results) == 2

    def test_result_losing_url_is_removed(self, started: Any, document: Any, publish: MagicMock) -> None:
        """Test that a result whose extraction fails is torn down."""
        _, ad = _roots(document)
        document.remove(ad.find("a"))
        document.flush()

        assert len(started.results) == 1
        assert started.blocked_result_count == 0
        assert not ad.has_attr("data-ub-result")
        assert not ad.has_attr("data-ub-block")
        assert not ad.has_attr("data-ub-button-parent")
        assert document.query_selector(ad, "button") is None
        publish.assert_called_with(0)

    def test_removed_root(self, started: Any, document: Any) -> None:
        """Test that a disconnected result is dropped."""
        _, ad = _roots(document)
        document.remove(ad)
        document.flush()

        assert len(started.results) == 1
        assert started.blocked_result_count == 0

    def test_empty_batch_changes_nothing(self, started: Any) -> None:
        """Test idempotence for an empty mutation batch."""
        before = [(r.url, dict(r.props)) for r in started.results]
        started._on_mutation([])
        assert [(r.url, dict(r.props)) for r in started.results] == before
        assert started.blocked_result_count == 1

    def test_rescan_adds_nothing(self, started: Any, document: Any) -> None:
        """Test that scanning unchanged content is a no-op."""
        html = document.to_html()
        started._scan_results()
        assert len(started.results) == 2
        assert started.blocked_result_count == 1
        assert document.to_html() == html

    def test_observer_resumes_after_error(self, started: Any, document: Any) -> None:
        """Test that observation resumes even if reconciling fails."""
        from serpinfo.content.filter import FilterState

        document.insert_html(document.soup.find(id="results"), "<p>x</p>")
        with patch.object(started, "_scan_results", side_effect=RuntimeError("boom")):
            with pytest.raises(RuntimeError):
                document.flush()

        assert started.state is FilterState.OBSERVING
        assert started._observer.connected

        document.insert_html(
            document.soup.find(id="results"),
            '<div class="result"><a href="https://x.example.org/">X</a><h1>Plain</h1></div>',
        )
        document.flush()
        assert len(started.results) == 3

    def test_own_writes_are_not_observed(self, started: Any, document: Any) -> None:
        """Test that buttons added while reconciling do not trigger another pass."""
        document.insert_html(
            document.soup.find(id="results"),
            '<div class="result"><a href="https://x.example.org/">X</a><h1>Plain</h1></div>',
        )
        document.flush()
        assert started._observer.take_records() == []

    def test_stop(self, started: Any, document: Any) -> None:
        """Test that a stopped filter ignores changes."""
        from serpinfo.content.filter import FilterState

        started.stop()
        assert started.state is FilterState.IDLE
        document.insert_html(
            document.soup.find(id="results"),
            '<div class="result"><a href="https://x.example.org/">X</a><h1>Plain</h1></div>',
        )
        document.flush()
        assert len(started.results) == 2


class TestRulesetUpdates:
    """Tests for ruleset changes."""

    def test_update_ruleset(self, started: Any, document: Any, publish: MagicMock) -> None:
        """Test that every tracked result is judged with the new ruleset."""
        from serpinfo.content.ruleset import PatternRuleset

        started.update_ruleset(PatternRuleset(block=["<all_urls>"]))

        assert started.blocked_result_count == 2
        assert all(root.has_attr("data-ub-block") for root in _roots(document))
        assert not any(root.has_attr("data-ub-highlight") for root in _roots(document))
        publish.assert_called_with(2)

        started.update_ruleset(PatternRuleset())
        assert started.blocked_result_count == 0
        publish.assert_called_with(0)

    @pytest.mark.asyncio
    async def test_watch_ruleset(self, started: Any, document: Any) -> None:
        """Test that blocklist edits in the store reach the filter."""
        from serpinfo.content.filter import watch_ruleset
        from serpinfo.content.ruleset import PatternRuleset
        from serpinfo.settings.store import SettingsStore

        store = SettingsStore()
        unsubscribe = watch_ruleset(store, started, PatternRuleset.from_text)

        await store.patch(["blocklist"], lambda items: {"blocklist": "*://good.example.com/*"})
        good, ad = _roots(document)
        assert good.has_attr("data-ub-block")
        assert not ad.has_attr("data-ub-block")
        assert started.blocked_result_count == 1

        unsubscribe()
        await store.patch(["blocklist"], lambda items: {"blocklist": ""})
        assert good.has_attr("data-ub-block")


class TestPatternRuleset:
    """Tests for the reference pattern ruleset."""

    def test_block_and_highlight(self) -> None:
        """Test verdicts by URL."""
        from serpinfo.content.ruleset import PatternRuleset, QueryResult

        ruleset = PatternRuleset(
            block=["*://*.spam.example/*"],
            highlight={1: ["*://*.docs.example/*"], 2: ["*://*.example/*"]},
        )
        assert ruleset.query({"url": "https://www.spam.example/"}) == QueryResult.block()
        assert ruleset.query({"url": "https://docs.example/x"}) == QueryResult.highlight(1)
        assert ruleset.query({"url": "https://other.example/"}) == QueryResult.highlight(2)
        assert ruleset.query({"url": "https://elsewhere.org/"}) is None
        assert ruleset.query({"title": "no url"}) is None

    def test_invalid_colour_number(self) -> None:
        """Test that colour numbers start at 1."""
        from serpinfo.content.ruleset import PatternRuleset

        with pytest.raises(ValueError):
            PatternRuleset(highlight={0: ["<all_urls>"]})

    def test_from_text(self) -> None:
        """Test parsing a blocklist."""
        from serpinfo.content.ruleset import PatternRuleset, QueryResult

        ruleset = PatternRuleset.from_text(
            """
# comment
*://*.spam.example/*
@3 *://*.good.example/*
@x *://*.bad-number.example/*
not a pattern
"""
        )
        assert len(ruleset) == 2
        assert ruleset.query({"url": "https://spam.example/"}) == QueryResult.block()
        assert ruleset.query({"url": "https://good.example/"}) == QueryResult.highlight(3)


def test_is_valid_url() -> None:
    """Test the URL validity check used for result URLs."""
    from serpinfo.content.filter import is_valid_url

    assert is_valid_url("https://example.com/")
    assert is_valid_url("mailto:someone@example.com")
    assert not is_valid_url("example.com")
    assert not is_valid_url("https://")
    assert not is_valid_url("/relative/path")
