"""Per-domain extraction profiles.

A static lookup table keyed by hostname substring. Adding a site means adding
a row here; the page extractor never branches on domain names itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlparse


@dataclass(frozen=True)
class SiteProfile:
    content_selectors: tuple[str, ...]
    wait_for: str | None = None
    scroll_page: bool = False


DEFAULT_PROFILE = SiteProfile(
    content_selectors=(
        "article",
        '[role="main"]',
        "main",
        ".post-content",
        ".article-content",
        ".article-body",
        ".entry-content",
        ".story-body",
        ".post-body",
        ".content-body",
        ".article__body",
        '[itemprop="articleBody"]',
        ".wysiwyg",
        ".prose",
        "#article-body",
        "#main-content",
        ".main-content",
        ".content",
        "#content",
    ),
)

SITE_PROFILES: dict[str, SiteProfile] = {
    "substack.com": SiteProfile(
        content_selectors=(".post-content", ".body", "article", ".markup"),
        wait_for=".post-content, .body",
    ),
    "medium.com": SiteProfile(
        content_selectors=("article", ".meteredContent", ".pw-post-body-paragraph"),
        wait_for="article",
        scroll_page=True,
    ),
    "linkedin.com": SiteProfile(
        content_selectors=(
            ".article-content",
            ".feed-shared-update-v2__description",
            ".share-article__description",
        ),
        wait_for=".article-content, .feed-shared-update-v2",
        scroll_page=True,
    ),
    # Community posts and video descriptions
    "youtube.com": SiteProfile(
        content_selectors=("#content", "ytd-text-inline-expander", "#description-inline-expander"),
        wait_for="#content",
    ),
    "notion.so": SiteProfile(
        content_selectors=(".notion-page-content", ".notion-selectable"),
        wait_for=".notion-page-content",
    ),
}


def normalized_hostname(url: str) -> str:
    """Lowercased hostname without a leading ``www.``; empty if unparseable."""
    try:
        hostname = urlparse(url).hostname or ""
    except ValueError:
        return ""
    return hostname.removeprefix("www.")


def profile_for_url(url: str) -> SiteProfile:
    hostname = normalized_hostname(url)
    if hostname:
        for site, profile in SITE_PROFILES.items():
            if site in hostname:
                return profile
    return DEFAULT_PROFILE
