"""Social post extraction: Nitter mirrors first, x.com direct as last resort.

Mirrors render posts server-side without a login wall, so they are tried in
a fixed order; the first one yielding non-empty text wins. The direct site
usually demands a login, which is detected and reported as ``Blocked``.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

import structlog
from playwright.async_api import Error as PlaywrightError

from rescontent.cache import make_cache_key
from rescontent.errors import ErrorType, FetchError, error_from_exception
from rescontent.models.results import SocialPostContent, SocialPostResult

if TYPE_CHECKING:
    from playwright.async_api import Page

    from rescontent.protocols import CacheProtocol, PagePoolProtocol

log = structlog.get_logger()

MIRROR_HOSTS: tuple[str, ...] = (
    "nitter.privacydev.net",
    "nitter.poast.org",
    "nitter.woodland.cafe",
    "nitter.kavin.rocks",
)

CANONICAL_HOST = "x.com"

ACCEPTED_HOSTS: frozenset[str] = frozenset(
    {
        "twitter.com",
        "www.twitter.com",
        "mobile.twitter.com",
        "x.com",
        "www.x.com",
        "mobile.x.com",
        *MIRROR_HOSTS,
    }
)

MIRROR_NAV_TIMEOUT_MS = 15_000
MIRROR_SELECTOR_TIMEOUT_MS = 10_000
MIRROR_SETTLE_MS = 1_000
MIRROR_POST_SELECTOR = ".main-tweet, .timeline-item"

DIRECT_SELECTOR_TIMEOUT_MS = 15_000
DIRECT_SETTLE_MS = 2_000
DIRECT_POST_SELECTOR = '[data-testid="tweetText"], article'

LOGIN_PROMPTS: tuple[str, ...] = ("Sign in to X", "Log in to Twitter", "Sign up now")

_STATUS_PATH_RE = re.compile(r"^/([A-Za-z0-9_]+)/status/(\d+)")
_DIGITS_RE = re.compile(r"[\d,]+")
_COMPACT_RE = re.compile(r"([\d.,]+)\s*([KkMm]?)")

EXTRACT_MIRROR_POST_JS = """
() => {
  const post = document.querySelector('.main-tweet') || document.querySelector('.timeline-item');
  if (!post) return null;
  const textOf = (selector) => {
    const el = post.querySelector(selector);
    return el && el.textContent ? el.textContent.trim() : null;
  };
  const stat = (icon) => {
    const el = post.querySelector(`.tweet-stats .${icon} + .tweet-stat-count, .tweet-stats .${icon} ~ span`);
    return el ? el.textContent : null;
  };
  const date = post.querySelector('.tweet-date a');
  return {
    text: textOf('.tweet-content') || '',
    authorName: textOf('.fullname'),
    authorHandle: textOf('.username'),
    timestamp: date ? date.getAttribute('title') : null,
    likes: stat('icon-heart'),
    retweets: stat('icon-retweet'),
    replies: stat('icon-comment'),
  };
}
"""

DETECT_LOGIN_JS = """
(prompts) => {
  const body = document.body ? document.body.textContent || '' : '';
  return prompts.some((prompt) => body.includes(prompt)) ||
    document.querySelector('[data-testid="LoginForm"]') !== null;
}
"""

EXTRACT_DIRECT_POST_JS = """
() => {
  const article = document.querySelector('article[data-testid="tweet"]') || document.querySelector('article');
  if (!article) return null;
  const textOf = (selector) => {
    const el = article.querySelector(selector);
    return el && el.textContent ? el.textContent.trim() : null;
  };
  const authorLink = article.querySelector('a[href*="/"]');
  const href = authorLink ? authorLink.getAttribute('href') || '' : '';
  const displayName = textOf('[data-testid="User-Name"]');
  const time = article.querySelector('time');
  return {
    text: textOf('[data-testid="tweetText"]') || '',
    authorName: displayName ? displayName.split('@')[0].trim() : null,
    authorHandle: href.split('/')[1] || null,
    timestamp: time ? time.getAttribute('datetime') : null,
    likes: textOf('[data-testid="like"] span'),
    retweets: textOf('[data-testid="retweet"] span'),
    replies: textOf('[data-testid="reply"] span'),
  };
}
"""


@dataclass(frozen=True)
class PostRef:
    handle: str
    post_id: str

    @property
    def canonical_url(self) -> str:
        return f"https://{CANONICAL_HOST}/{self.handle}/status/{self.post_id}"

    def mirror_url(self, host: str) -> str:
        return f"https://{host}/{self.handle}/status/{self.post_id}"


def parse_post_url(url: str) -> PostRef | None:
    """Return the post reference for a supported post URL, else None."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https"):
        return None
    if (parsed.hostname or "") not in ACCEPTED_HOSTS:
        return None
    match = _STATUS_PATH_RE.match(parsed.path)
    if match is None:
        return None
    return PostRef(handle=match.group(1), post_id=match.group(2))


def is_social_post_url(url: str) -> bool:
    return parse_post_url(url) is not None


def parse_count(raw: str | None) -> int | None:
    """Parse a comma-grouped integer such as ``"1,234"``."""
    if not raw:
        return None
    match = _DIGITS_RE.search(raw)
    if match is None:
        return None
    digits = match.group(0).replace(",", "")
    return int(digits) if digits else None


def parse_compact_count(raw: str | None) -> int | None:
    """Parse an abbreviated count such as ``"1.2K"`` or ``"3M"``."""
    if not raw:
        return None
    match = _COMPACT_RE.search(raw)
    if match is None:
        return None
    number = match.group(1).replace(",", "")
    try:
        value = float(number)
    except ValueError:
        return None
    suffix = match.group(2).upper()
    if suffix == "K":
        value *= 1_000
    elif suffix == "M":
        value *= 1_000_000
    return round(value)


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 1)


def _build_content(raw: dict[str, Any], count_parser) -> SocialPostContent:
    handle = raw.get("authorHandle")
    if handle:
        handle = handle.lstrip("@").strip() or None
    return SocialPostContent(
        text=(raw.get("text") or "").strip(),
        author_name=raw.get("authorName") or None,
        author_handle=handle,
        timestamp=raw.get("timestamp") or None,
        likes=count_parser(raw.get("likes")),
        retweets=count_parser(raw.get("retweets")),
        replies=count_parser(raw.get("replies")),
    )


class SocialPostExtractor:
    """Fetches a single post through mirrors, then the canonical site."""

    def __init__(
        self,
        pool: PagePoolProtocol,
        cache: CacheProtocol,
        *,
        mirror_hosts: tuple[str, ...] = MIRROR_HOSTS,
        page_timeout_ms: int = 30_000,
    ) -> None:
        self._pool = pool
        self._cache = cache
        self._mirror_hosts = mirror_hosts
        self._page_timeout_ms = page_timeout_ms

    @staticmethod
    def cache_key(ref: PostRef) -> str:
        return make_cache_key("twitter", {"url": ref.canonical_url})

    async def fetch(self, url: str) -> SocialPostResult:
        """Fetch one post. Never raises; failures come back classified."""
        started = time.perf_counter()

        ref = parse_post_url(url)
        if ref is None:
            return SocialPostResult.failure(url, "Invalid Twitter/X URL", ErrorType.INVALID_URL)

        key = self.cache_key(ref)
        cached: SocialPostResult | None = self._cache.get(key)
        if cached is not None:
            log.info("social_cache_hit", url=ref.canonical_url)
            return cached.model_copy(
                update={"url": url, "source": "cache", "fetch_time_ms": _elapsed_ms(started)}
            )

        for host in self._mirror_hosts:
            try:
                content = await self._fetch_from_mirror(ref, host)
            except Exception as exc:
                _, message = error_from_exception(exc)
                log.warning("social_mirror_failed", host=host, error=message)
                continue
            result = SocialPostResult(
                success=True,
                url=url,
                content=content,
                fetch_time_ms=_elapsed_ms(started),
                source=host,
            )
            self._cache.set(key, result, "twitter")
            log.info("social_post_fetched", source=host, fetch_time_ms=result.fetch_time_ms)
            return result

        log.info("social_mirrors_exhausted", url=ref.canonical_url)
        try:
            content = await self._fetch_direct(ref)
        except Exception as exc:
            error_type, message = error_from_exception(exc)
            log.error("social_fetch_failed", url=ref.canonical_url, error_type=error_type, error=message)
            return SocialPostResult.failure(url, message, error_type, _elapsed_ms(started))

        result = SocialPostResult(
            success=True,
            url=url,
            content=content,
            fetch_time_ms=_elapsed_ms(started),
            source=CANONICAL_HOST,
        )
        self._cache.set(key, result, "twitter")
        log.info("social_post_fetched", source=CANONICAL_HOST, fetch_time_ms=result.fetch_time_ms)
        return result

    async def _fetch_from_mirror(self, ref: PostRef, host: str) -> SocialPostContent:
        async with self._pool.page() as page:
            await page.goto(
                ref.mirror_url(host), wait_until="domcontentloaded", timeout=MIRROR_NAV_TIMEOUT_MS
            )
            await page.wait_for_selector(MIRROR_POST_SELECTOR, timeout=MIRROR_SELECTOR_TIMEOUT_MS)
            await page.wait_for_timeout(MIRROR_SETTLE_MS)
            raw = await page.evaluate(EXTRACT_MIRROR_POST_JS)
        return self._require_text(raw, parse_count, f"Could not extract post content from {host}")

    async def _fetch_direct(self, ref: PostRef) -> SocialPostContent:
        async with self._pool.page() as page:
            await page.goto(ref.canonical_url, wait_until="networkidle", timeout=self._page_timeout_ms)
            await self._wait_tolerant(page, DIRECT_POST_SELECTOR, DIRECT_SELECTOR_TIMEOUT_MS)
            await page.wait_for_timeout(DIRECT_SETTLE_MS)
            if await page.evaluate(DETECT_LOGIN_JS, list(LOGIN_PROMPTS)):
                raise FetchError(ErrorType.BLOCKED, "Twitter requires login to view this content")
            raw = await page.evaluate(EXTRACT_DIRECT_POST_JS)
        return self._require_text(raw, parse_compact_count, "Could not extract post content")

    @staticmethod
    async def _wait_tolerant(page: Page, selector: str, timeout_ms: int) -> None:
        try:
            await page.wait_for_selector(selector, timeout=timeout_ms)
        except PlaywrightError:
            log.warning("social_wait_selector_missing", selector=selector)

    @staticmethod
    def _require_text(raw: dict[str, Any] | None, count_parser, message: str) -> SocialPostContent:
        if not raw:
            raise FetchError(ErrorType.NOT_FOUND, message)
        content = _build_content(raw, count_parser)
        if not content.text:
            raise FetchError(ErrorType.NOT_FOUND, message)
        return content
