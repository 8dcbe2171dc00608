"""Find an article on a site through its RSS or Atom feed."""

from __future__ import annotations

import asyncio
import xml.etree.ElementTree as ET
from urllib.parse import urljoin, urlparse, urlunparse

import requests
from playwright.async_api import Page

from ..logging import jlog

GUESS_PATHS = ("/feed", "/feeds", "/rss")
FEED_TIMEOUT_S = 15
_ATOM_NS = "{http://www.w3.org/2005/Atom}"

_FEED_LINKS_JS = """
() => {
    const feeds = Array.from(document.querySelectorAll(
        'link[rel="alternate"][type="application/rss+xml"], link[rel="alternate"][type="application/atom+xml"]'))
        .map((link) => link.href)
        .filter((href) => !!href && !href.includes('comments'));
    const anchors = Array.from(document.querySelectorAll('a'))
        .map((a) => a.href)
        .filter((href) => !!href && href.includes('rss'));
    return Array.from(new Set(feeds.concat(anchors)));
}
"""


def first_item_link(xml_text: str | bytes) -> str | None:
    """Link of the first entry in an RSS 2.0 or Atom document."""

    root = ET.fromstring(xml_text)
    for item in root.iter("item"):
        link = item.findtext("link")
        if link and link.strip():
            return link.strip()
    for entry in root.iter(f"{_ATOM_NS}entry"):
        for link in entry.findall(f"{_ATOM_NS}link"):
            if link.get("rel", "alternate") == "alternate" and link.get("href"):
                return link.get("href")
    return None


def fetch_first_article(feed_url: str, session: requests.Session | None = None) -> str | None:
    """Download ``feed_url`` and return its first article link, if any."""

    http = session or requests
    try:
        resp = http.get(feed_url, timeout=FEED_TIMEOUT_S)
        resp.raise_for_status()
        return first_item_link(resp.content)
    except (requests.RequestException, ET.ParseError) as exc:
        jlog("debug", event="feed_unusable", feed_url=feed_url, error=str(exc))
        return None


def guessed_feed_urls(page_url: str) -> list[str]:
    parsed = urlparse(page_url)
    return [urlunparse((parsed.scheme, parsed.netloc, path, "", "", "")) for path in GUESS_PATHS]


async def get_article_from_rss(page: Page) -> str | None:
    """Try feeds linked from the page header first, then common feed paths."""

    page_url = page.url
    header_feeds = await page.evaluate(_FEED_LINKS_JS)
    jlog("info", event="rss_header_feeds", page_url=page_url, feeds=len(header_feeds))
    for feed_url in [*header_feeds, *guessed_feed_urls(page_url)]:
        link = await asyncio.to_thread(fetch_first_article, feed_url)
        if link:
            article = urljoin(feed_url, link)
            jlog("info", event="rss_article_found", page_url=page_url, feed_url=feed_url, article_url=article)
            return article
    jlog("info", event="rss_article_not_found", page_url=page_url)
    return None


__all__ = ["GUESS_PATHS", "fetch_first_article", "first_item_link", "get_article_from_rss", "guessed_feed_urls"]
