"""Generic page extraction through a pooled headless browser.

Per request: validate URL → cache lookup → borrow a page from the pool →
navigate until network idle → wait for a content selector → optional
scroll-to-load → settle → strip boilerplate and pick the main content
element in-page → read meta tags. The page is closed and the session
released on every exit path by ``BrowserPool.page``.
"""

from __future__ import annotations

import re
import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

import structlog
from playwright.async_api import Error as PlaywrightError

from rescontent.cache import make_cache_key
from rescontent.errors import ErrorType, FetchError, classify_error, error_from_exception
from rescontent.models.results import PageContent, PageMetadata, PageResult
from rescontent.sites import SiteProfile, profile_for_url

if TYPE_CHECKING:
    from playwright.async_api import Page

    from rescontent.protocols import CacheProtocol, PagePoolProtocol

MIN_MEANINGFUL_WORDS = 20
MIN_CANDIDATE_CHARS = 100
SETTLE_DELAY_MS = 1500
SCROLL_STEP_PX = 400
SCROLL_MAX_STEPS = 10
SCROLL_INTERVAL_MS = 100

BOILERPLATE_SELECTOR = ", ".join(
    [
        "script",
        "style",
        "noscript",
        "iframe",
        "nav",
        "header",
        "footer",
        ".sidebar",
        ".comments",
        ".related-posts",
        ".advertisement",
        ".ad",
        '[role="navigation"]',
        '[role="banner"]',
        '[role="complementary"]',
        ".share-buttons",
        ".social-share",
        ".newsletter-signup",
        ".cookie-banner",
    ]
)

# Field → meta name/property values, in preference order
META_PREFERENCES: dict[str, list[str]] = {
    "title": ["og:title", "twitter:title"],
    "author": ["author", "article:author", "twitter:creator", "dc.creator"],
    "published_at": [
        "article:published_time",
        "publishedDate",
        "datePublished",
        "og:published_time",
    ],
    "description": ["description", "og:description", "twitter:description"],
}

EXTRACT_CONTENT_JS = """
({ boilerplate, selectors, minChars }) => {
  document.querySelectorAll(boilerplate).forEach((el) => el.remove());
  let main = null;
  let matched = null;
  for (const selector of selectors) {
    const candidate = document.querySelector(selector);
    if (candidate && (candidate.textContent || '').trim().length > minChars) {
      main = candidate;
      matched = selector;
      break;
    }
  }
  const source = main || document.body;
  return {
    text: source.innerText || source.textContent || '',
    html: source.innerHTML,
    selector: matched,
  };
}
"""

EXTRACT_METADATA_JS = """
(preferences) => {
  const read = (names) => {
    for (const name of names) {
      const meta = document.querySelector(`meta[name="${name}"], meta[property="${name}"]`);
      const content = meta && meta.getAttribute('content');
      if (content) return content;
    }
    return null;
  };
  const out = { documentTitle: document.title || null };
  for (const [field, names] of Object.entries(preferences)) {
    out[field] = read(names);
  }
  return out;
}
"""

SCROLL_STEP_JS = """
(distance) => {
  window.scrollBy(0, distance);
  return window.scrollY + window.innerHeight >= document.body.scrollHeight;
}
"""

SCROLL_TOP_JS = "() => window.scrollTo(0, 0)"

_HSPACE_RE = re.compile(r"[^\S\n]+")
_LINE_EDGE_RE = re.compile(r" ?\n ?")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


def is_valid_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.hostname)


def normalize_whitespace(text: str) -> str:
    """Collapse whitespace runs and blank-line runs, then trim."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _HSPACE_RE.sub(" ", text)
    text = _LINE_EDGE_RE.sub("\n", text)
    text = _BLANK_LINES_RE.sub("\n\n", text)
    return text.strip()


def count_words(text: str) -> int:
    return len(text.split())


async def auto_scroll(
    page: Page,
    *,
    step_px: int = SCROLL_STEP_PX,
    max_steps: int = SCROLL_MAX_STEPS,
    interval_ms: int = SCROLL_INTERVAL_MS,
) -> int:
    """Scroll down in fixed steps to trigger lazy loading, then back to top.

    Returns the number of steps taken.
    """
    steps = 0
    for _ in range(max_steps):
        at_bottom = await page.evaluate(SCROLL_STEP_JS, step_px)
        steps += 1
        await page.wait_for_timeout(interval_ms)
        if at_bottom:
            break
    await page.evaluate(SCROLL_TOP_JS)
    return steps


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 1)


class PageExtractor:
    """Fetches arbitrary article pages; implements the content fetch contract."""

    def __init__(
        self,
        pool: PagePoolProtocol,
        cache: CacheProtocol,
        *,
        page_timeout_ms: int = 30_000,
        settle_delay_ms: int = SETTLE_DELAY_MS,
        min_word_count: int = MIN_MEANINGFUL_WORDS,
    ) -> None:
        self._pool = pool
        self._cache = cache
        self._page_timeout_ms = page_timeout_ms
        self._settle_delay_ms = settle_delay_ms
        self._min_word_count = min_word_count

    @staticmethod
    def cache_key(url: str) -> str:
        return make_cache_key("content", {"url": url})

    async def fetch(
        self,
        url: str,
        wait_for_selector: str | None = None,
        timeout_ms: int | None = None,
    ) -> PageResult:
        """Fetch and extract one page. Never raises; failures come back classified."""
        started = time.perf_counter()
        log = structlog.get_logger().bind(url=url)

        if not is_valid_url(url):
            log.info("page_invalid_url")
            return PageResult.failure(url, "Invalid URL format", ErrorType.INVALID_URL)

        key = self.cache_key(url)
        cached: PageResult | None = self._cache.get(key)
        if cached is not None and cached.metadata is not None:
            log.info("page_cache_hit")
            metadata = cached.metadata.model_copy(
                update={"method": "cache", "latency_ms": _elapsed_ms(started)}
            )
            return cached.model_copy(update={"metadata": metadata})

        timeout = timeout_ms or self._page_timeout_ms
        profile = profile_for_url(url)
        log.info("page_fetch_started", timeout_ms=timeout, scroll=profile.scroll_page)

        try:
            async with self._pool.page() as page:
                extracted, meta = await self._extract(
                    page, url, profile, wait_for_selector, timeout, log
                )
        except Exception as exc:
            error_type, message = error_from_exception(exc)
            log.error("page_fetch_failed", error_type=error_type, error=message)
            return PageResult.failure(url, message, error_type)

        text = normalize_whitespace(extracted.get("text") or "")
        word_count = count_words(text)
        if word_count < self._min_word_count:
            log.warning("page_low_word_count", word_count=word_count)

        result = PageResult(
            success=True,
            url=url,
            content=PageContent(text=text, html=extracted.get("html")),
            metadata=PageMetadata(
                title=meta.get("documentTitle") or meta.get("title"),
                author=meta.get("author"),
                published_at=meta.get("published_at"),
                description=meta.get("description"),
                word_count=word_count,
                fetched_at=datetime.now(UTC),
                method="playwright",
                latency_ms=_elapsed_ms(started),
            ),
        )

        if word_count >= self._min_word_count:
            self._cache.set(key, result, "content")

        log.info(
            "page_fetched",
            word_count=word_count,
            selector=extracted.get("selector"),
            latency_ms=result.metadata.latency_ms,
        )
        return result

    async def _extract(
        self,
        page: Page,
        url: str,
        profile: SiteProfile,
        wait_for_selector: str | None,
        timeout: int,
        log,
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        response = await page.goto(url, wait_until="networkidle", timeout=timeout)
        if response is not None and response.status >= 400:
            raise FetchError(
                classify_error(f"HTTP {response.status}"),
                f"HTTP {response.status} fetching {url}",
            )

        selector = wait_for_selector or profile.wait_for
        if selector:
            try:
                await page.wait_for_selector(selector, timeout=timeout / 2)
            except PlaywrightError:
                log.warning("page_wait_selector_missing", selector=selector)

        if profile.scroll_page:
            await auto_scroll(page)

        await page.wait_for_timeout(self._settle_delay_ms)

        extracted = await page.evaluate(
            EXTRACT_CONTENT_JS,
            {
                "boilerplate": BOILERPLATE_SELECTOR,
                "selectors": list(profile.content_selectors),
                "minChars": MIN_CANDIDATE_CHARS,
            },
        )
        meta = await page.evaluate(EXTRACT_METADATA_JS, META_PREFERENCES)
        return extracted or {}, meta or {}
