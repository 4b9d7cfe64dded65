"""Unit tests for rescontent.pages.

Pages come from a stub pool; ``evaluate`` answers are keyed by the script
constants the extractor sends.
"""

from __future__ import annotations

import pytest
from playwright.async_api import Error as PlaywrightError

from rescontent.errors import BrowserPoolTimeout, ErrorType
from rescontent.pages import (
    EXTRACT_CONTENT_JS,
    EXTRACT_METADATA_JS,
    META_PREFERENCES,
    SCROLL_STEP_JS,
    SCROLL_TOP_JS,
    PageExtractor,
    auto_scroll,
    is_valid_url,
    normalize_whitespace,
)

URL = "https://example.com/post"
ARTICLE_TEXT = " ".join(f"word{i}" for i in range(40))


def _results(text: str = ARTICLE_TEXT, **meta) -> dict:
    return {
        EXTRACT_CONTENT_JS: {"text": text, "html": "<p>article</p>", "selector": "article"},
        EXTRACT_METADATA_JS: {"documentTitle": "Doc title", "title": "OG title", **meta},
    }


def _extractor(pool, cache) -> PageExtractor:
    return PageExtractor(pool, cache, page_timeout_ms=8000, settle_delay_ms=1500)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    @pytest.mark.parametrize(
        ("url", "valid"),
        [
            ("https://example.com", True),
            ("http://example.com/a?b=c", True),
            ("ftp://example.com", False),
            ("example.com", False),
            ("https://", False),
            ("", False),
        ],
    )
    def test_is_valid_url(self, url: str, valid: bool) -> None:
        assert is_valid_url(url) is valid

    def test_normalize_whitespace(self) -> None:
        raw = "  Title\t\t here \r\n\n\n\n  Body   text \n \nEnd  "
        assert normalize_whitespace(raw) == "Title here\n\nBody text\n\nEnd"

    def test_meta_preferences_order(self) -> None:
        assert META_PREFERENCES["author"][0] == "author"
        assert META_PREFERENCES["published_at"][0] == "article:published_time"
        assert META_PREFERENCES["description"] == [
            "description",
            "og:description",
            "twitter:description",
        ]

    async def test_auto_scroll_stops_at_bottom_and_returns_to_top(self, make_page) -> None:
        steps = iter([False, False, True])
        page = make_page(evaluate_results={SCROLL_STEP_JS: lambda distance: next(steps)})

        taken = await auto_scroll(page)

        assert taken == 3
        assert page.timeouts == [100, 100, 100]
        assert page.evaluations[0] == (SCROLL_STEP_JS, 400)
        assert page.evaluations[-1][0] == SCROLL_TOP_JS

    async def test_auto_scroll_bounded(self, make_page) -> None:
        page = make_page(evaluate_results={SCROLL_STEP_JS: False})
        assert await auto_scroll(page) == 10


# ---------------------------------------------------------------------------
# Fetch
# ---------------------------------------------------------------------------


class TestFetch:
    async def test_success(self, make_page, make_pool, cache) -> None:
        page = make_page(evaluate_results=_results(author="Ada", description="About things"))
        pool = make_pool([page])

        result = await _extractor(pool, cache).fetch(URL)

        assert result.success is True
        assert result.content.text == ARTICLE_TEXT
        assert result.content.html == "<p>article</p>"
        assert result.metadata.title == "Doc title"
        assert result.metadata.author == "Ada"
        assert result.metadata.description == "About things"
        assert result.metadata.word_count == 40
        assert result.metadata.method == "playwright"
        assert page.visits == [(URL, {"wait_until": "networkidle", "timeout": 8000})]
        assert 1500 in page.timeouts
        assert page.closed is True
        assert pool.released == 1

    async def test_title_falls_back_to_meta(self, make_page, make_pool, cache) -> None:
        page = make_page(evaluate_results=_results(documentTitle=None))
        result = await _extractor(make_pool([page]), cache).fetch(URL)
        assert result.metadata.title == "OG title"

    async def test_content_script_receives_profile_selectors(self, make_page, make_pool, cache) -> None:
        page = make_page(evaluate_results=_results())
        await _extractor(make_pool([page]), cache).fetch("https://writer.substack.com/p/x")

        script, arg = next(e for e in page.evaluations if e[0] == EXTRACT_CONTENT_JS)
        assert arg["selectors"][0] == ".post-content"
        assert arg["minChars"] == 100
        assert "script" in arg["boilerplate"]
        assert page.selector_waits == [(".post-content, .body", 4000)]

    async def test_caller_selector_overrides_profile(self, make_page, make_pool, cache) -> None:
        page = make_page(evaluate_results=_results())
        await _extractor(make_pool([page]), cache).fetch(
            URL, wait_for_selector="#story", timeout_ms=2000
        )
        assert page.selector_waits == [("#story", 1000)]
        assert page.visits[0][1]["timeout"] == 2000

    async def test_missing_selector_is_tolerated(self, make_page, make_pool, cache) -> None:
        page = make_page(missing_selectors={"#never"}, evaluate_results=_results())
        result = await _extractor(make_pool([page]), cache).fetch(URL, wait_for_selector="#never")
        assert result.success is True

    async def test_scrolling_profile_scrolls(self, make_page, make_pool, cache) -> None:
        results = {**_results(), SCROLL_STEP_JS: True}
        page = make_page(evaluate_results=results)
        await _extractor(make_pool([page]), cache).fetch("https://medium.com/@a/story")
        scripts = [script for script, _ in page.evaluations]
        assert SCROLL_STEP_JS in scripts
        assert SCROLL_TOP_JS in scripts

    async def test_non_scrolling_profile_does_not_scroll(self, make_page, make_pool, cache) -> None:
        page = make_page(evaluate_results=_results())
        await _extractor(make_pool([page]), cache).fetch(URL)
        assert SCROLL_STEP_JS not in [script for script, _ in page.evaluations]

    async def test_invalid_url_skips_browser(self, make_pool, cache) -> None:
        pool = make_pool([])
        result = await _extractor(pool, cache).fetch("not a url")
        assert result.success is False
        assert result.error_type == ErrorType.INVALID_URL
        assert result.error == "Invalid URL format"
        assert pool.handed_out == []

    @pytest.mark.parametrize(
        ("status", "error_type"),
        [(404, ErrorType.NOT_FOUND), (403, ErrorType.BLOCKED), (503, ErrorType.SERVER_ERROR)],
    )
    async def test_http_error_status(
        self, make_page, make_pool, cache, status: int, error_type: ErrorType
    ) -> None:
        page = make_page(status=status, evaluate_results=_results())
        pool = make_pool([page])
        result = await _extractor(pool, cache).fetch(URL)
        assert result.success is False
        assert result.error_type == error_type
        assert result.error == f"HTTP {status} fetching {URL}"
        assert page.closed is True
        assert pool.released == 1

    async def test_navigation_timeout(self, make_page, make_pool, cache) -> None:
        page = make_page(goto_error=PlaywrightError("net::ERR_TIMED_OUT at https://example.com/post"))
        result = await _extractor(make_pool([page]), cache).fetch(URL)
        assert result.error_type == ErrorType.TIMEOUT
        assert page.closed is True

    async def test_pool_exhaustion_is_classified(self, make_pool, cache) -> None:
        pool = make_pool(error=BrowserPoolTimeout(60000))
        result = await _extractor(pool, cache).fetch(URL)
        assert result.error_type == ErrorType.TIMEOUT
        assert "Timeout waiting for browser context" in result.error

    async def test_in_page_script_failure(self, make_page, make_pool, cache) -> None:
        results = {**_results(), EXTRACT_CONTENT_JS: PlaywrightError("Execution context was destroyed")}
        page = make_page(evaluate_results=results)
        result = await _extractor(make_pool([page]), cache).fetch(URL)
        assert result.success is False
        assert result.error_type == ErrorType.UNKNOWN
        assert page.closed is True


# ---------------------------------------------------------------------------
# Caching
# ---------------------------------------------------------------------------


class TestCaching:
    async def test_second_fetch_hits_cache(self, make_page, make_pool, cache) -> None:
        pool = make_pool([make_page(evaluate_results=_results())])
        extractor = _extractor(pool, cache)

        first = await extractor.fetch(URL)
        second = await extractor.fetch(URL)

        assert len(pool.handed_out) == 1
        assert second.metadata.method == "cache"
        assert second.content == first.content
        assert second.metadata.fetched_at == first.metadata.fetched_at
        assert second.metadata.word_count == first.metadata.word_count

    async def test_thin_pages_succeed_but_are_not_cached(self, make_page, make_pool, cache) -> None:
        pages = [make_page(evaluate_results=_results(text="only five words right here"))]
        pages.append(make_page(evaluate_results=_results(text="only five words right here")))
        pool = make_pool(pages)
        extractor = _extractor(pool, cache)

        first = await extractor.fetch(URL)
        await extractor.fetch(URL)

        assert first.success is True
        assert first.metadata.word_count == 5
        assert len(pool.handed_out) == 2

    async def test_failures_are_not_cached(self, make_page, make_pool, cache) -> None:
        pool = make_pool([make_page(status=500), make_page(evaluate_results=_results())])
        extractor = _extractor(pool, cache)
        assert (await extractor.fetch(URL)).success is False
        assert (await extractor.fetch(URL)).success is True
