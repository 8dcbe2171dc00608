"""Subpage discovery: an article page, or any same-site page with ads."""

from __future__ import annotations

import random
from typing import Awaitable, Callable, Sequence

from playwright.async_api import Page, TimeoutError as PlaywrightTimeoutError

from ..ads.detection import identify_ads
from ..context import CrawlContext
from ..logging import jlog
from ..playwright import close_quietly
from ..timeouts import sleep_ms
from .rss import get_article_from_rss

MAX_GUESSES = 20
GUESS_SETTLE_MS = 1500

_SAME_HOST_LINKS_JS = """
() => Array.from(document.querySelectorAll('a'))
    .map((a) => a.href)
    .filter((href) => {
        try {
            return new URL(href).hostname === window.location.hostname;
        } catch (e) {
            return false;
        }
    })
"""

# Reader-mode heuristic: enough visible paragraphs of real text.
_PROBABLY_READERABLE_JS = """
() => {
    const unlikely = /-ad-|ai2html|banner|breadcrumbs|combx|comment|community|cover-wrap|disqus|extra|footer|gdpr|header|legends|menu|related|remark|replies|rss|shoutbox|sidebar|skyscraper|social|sponsor|supplemental|ad-break|agegate|pagination|pager|popup|yom-remote/i;
    const maybe = /and|article|body|column|content|main|shadow/i;
    const visible = (node) => (!node.style || node.style.display !== 'none')
        && !node.hasAttribute('hidden')
        && node.getAttribute('aria-hidden') !== 'true';
    const nodes = new Set(document.querySelectorAll('p, pre'));
    document.querySelectorAll('div > br').forEach((br) => nodes.add(br.parentNode));
    let score = 0;
    for (const node of nodes) {
        if (!visible(node)) continue;
        const match = node.className + ' ' + node.id;
        if (unlikely.test(match) && !maybe.test(match)) continue;
        if (node.matches('li p')) continue;
        const length = node.textContent.trim().length;
        if (length < 140) continue;
        score += Math.sqrt(length - 140);
        if (score > 20) return true;
    }
    return false;
}
"""

GuessCriteria = Callable[[Page], Awaitable[bool]]


async def random_guess_page(
    ctx: CrawlContext,
    page: Page,
    criteria: GuessCriteria,
    max_guesses: int = MAX_GUESSES,
    rng: random.Random | None = None,
) -> str | None:
    """Open random same-host links from ``page`` until one meets ``criteria``."""

    links: list[str] = list(dict.fromkeys(await page.evaluate(_SAME_HOST_LINKS_JS)))
    if not links:
        jlog("info", event="no_same_host_links", page_url=page.url)
        return None
    rng = rng or random.Random()
    guess_page = await ctx.session.new_page()
    try:
        guesses = 0
        while links and guesses < max_guesses:
            url = links.pop(rng.randrange(len(links)))
            guesses += 1
            try:
                await guess_page.goto(url, timeout=ctx.flags.timeouts.page_navigation_ms)
            except PlaywrightTimeoutError:
                jlog("debug", event="guess_timeout", page_url=page.url, guess_url=url)
                continue
            await sleep_ms(GUESS_SETTLE_MS)
            if await criteria(guess_page):
                jlog("info", event="guess_matched", page_url=page.url, guess_url=url, guesses=guesses)
                return url
        jlog("info", event="guess_exhausted", page_url=page.url, guesses=guesses)
        return None
    finally:
        await close_quietly(guess_page)


async def is_probably_article(page: Page) -> bool:
    return bool(await page.evaluate(_PROBABLY_READERABLE_JS))


async def find_article(ctx: CrawlContext, page: Page) -> str | None:
    """An article linked from ``page``: its RSS feed first, then link sampling."""

    url = await get_article_from_rss(page)
    if url:
        return url
    jlog("info", event="article_guessing", page_url=page.url)
    return await random_guess_page(ctx, page, is_probably_article)


async def find_page_with_ads(ctx: CrawlContext, page: Page, selectors: Sequence[str] | None = None) -> str | None:
    """A same-host page linked from ``page`` on which ads are detected."""

    selectors = list(selectors if selectors is not None else ctx.ad_selectors)

    async def has_ads(candidate: Page) -> bool:
        ads = await identify_ads(candidate, selectors)
        for ad in ads:
            await ad.handle.dispose()
        return bool(ads)

    jlog("info", event="page_with_ads_guessing", page_url=page.url)
    return await random_guess_page(ctx, page, has_ads)


__all__ = [
    "MAX_GUESSES",
    "find_article",
    "find_page_with_ads",
    "is_probably_article",
    "random_guess_page",
]
