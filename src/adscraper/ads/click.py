"""Ad clickthrough: click, resolve what the click did, archive the landing page.

A click can navigate the current tab (intercepted and aborted, the target
is then opened in a fresh tab), open a popup, or do nothing visible. The
first of those events resolves a per-click future owned by
:class:`ClickWatcher`, which also guarantees the route and popup listeners
are removed however the click ends.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum

from playwright.async_api import ElementHandle, Error as PlaywrightError, Page, Request, Route

from ..config import ClickMode
from ..context import CrawlContext
from ..errors import CaptureError, OperationTimeout
from ..logging import adlog
from ..pages.capture import capture_page, record_page
from ..pages.types import PageVisit
from ..playwright import close_quietly
from ..timeouts import sleep_ms, with_timeout

_ALL_REQUESTS = "**/*"


class ClickState(Enum):
    ARMED = "armed"
    NAVIGATION_BLOCKED = "navigation_blocked"
    POPUP_OPENED = "popup_opened"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class ClickOutcome:
    state: ClickState
    url: str | None = None
    referer: str | None = None
    popup: Page | None = None


@dataclass(frozen=True)
class ClickResult:
    state: ClickState
    url: str | None = None
    landing_page_id: int | None = None


class ClickWatcher:
    """Scoped listeners that turn the first click effect into a future."""

    def __init__(self, page: Page) -> None:
        self.page = page
        self.state = ClickState.ARMED
        self.outcome: asyncio.Future[ClickOutcome] | None = None
        self._stray_popups: list[Page] = []

    async def __aenter__(self) -> "ClickWatcher":
        self.outcome = asyncio.get_running_loop().create_future()
        await self.page.route(_ALL_REQUESTS, self._on_route)
        self.page.on("popup", self._on_popup)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        self.page.remove_listener("popup", self._on_popup)
        try:
            await self.page.unroute(_ALL_REQUESTS, self._on_route)
        except PlaywrightError:
            pass
        if self.outcome is not None and not self.outcome.done():
            self.outcome.cancel()
            self.state = ClickState.TIMED_OUT
        for popup in self._stray_popups:
            await close_quietly(popup)
        return False

    def _resolve(self, outcome: ClickOutcome) -> bool:
        if self.outcome is None or self.outcome.done():
            return False
        self.state = outcome.state
        self.outcome.set_result(outcome)
        return True

    async def _on_route(self, route: Route, request: Request) -> None:
        if request.is_navigation_request() and request.frame == self.page.main_frame:
            # Main-frame navigations never proceed while armed.
            await route.abort("aborted")
            self._resolve(
                ClickOutcome(
                    ClickState.NAVIGATION_BLOCKED,
                    url=request.url,
                    referer=request.headers.get("referer"),
                )
            )
            return
        try:
            await route.continue_()
        except PlaywrightError:
            pass

    def _on_popup(self, popup: Page) -> None:
        if not self._resolve(ClickOutcome(ClickState.POPUP_OPENED, popup=popup)):
            self._stray_popups.append(popup)

    async def wait(self, timeout_ms: int | None = None) -> ClickOutcome | None:
        """Wait for the outcome; ``None`` if ``timeout_ms`` passes first."""

        if self.outcome is None:
            raise RuntimeError("click watcher is not armed")
        timeout = None if timeout_ms is None else max(0, timeout_ms) / 1000.0
        done, _ = await asyncio.wait({self.outcome}, timeout=timeout)
        if not done:
            return None
        return self.outcome.result()


async def _trigger_click(ctx: CrawlContext, page: Page, target: ElementHandle, watcher: ClickWatcher, ad_id: int) -> ClickOutcome:
    click_timeout = ctx.flags.timeouts.ad_click_ms
    try:
        await target.click(delay=10, timeout=click_timeout)
    except PlaywrightError as exc:
        adlog("debug", "ad_click_failed", ad_id=ad_id, page_url=page.url, error=str(exc))
    outcome = await watcher.wait(click_timeout)
    if outcome is not None:
        return outcome

    # Overlays can swallow automation clicks; click the centre of the ad instead.
    bb = await target.bounding_box()
    if not bb:
        raise CaptureError(f"ad {ad_id} has no bounding box for the fallback click")
    adlog("debug", "ad_click_fallback", ad_id=ad_id, page_url=page.url)
    await page.mouse.click(bb["x"] + bb["width"] / 2, bb["y"] + bb["height"] / 2)
    outcome = await watcher.wait()
    if outcome is None:
        raise RuntimeError(f"ad {ad_id} click watcher returned no outcome")
    return outcome


async def _open_landing_page(ctx: CrawlContext, outcome: ClickOutcome) -> Page:
    nav_timeout = ctx.flags.timeouts.page_navigation_ms
    if outcome.popup is not None:
        await outcome.popup.wait_for_load_state("load", timeout=nav_timeout)
        return outcome.popup
    landing = await ctx.session.new_page()
    try:
        await landing.goto(outcome.url, referer=outcome.referer, timeout=nav_timeout)
    except (Exception, asyncio.CancelledError):
        await close_quietly(landing)
        raise
    return landing


async def _archive_landing_page(ctx: CrawlContext, landing: Page, source: Page, ad_id: int, ad_depth: int) -> int:
    visit = PageVisit.landing(ad_id, ad_depth, referrer_url=source.url)
    page_id = record_page(ctx, landing, visit)
    adlog("info", "landing_page_archived", ad_id=ad_id, page_url=landing.url, page_id=page_id)
    if ctx.flags.scrape.scrape_site:
        await sleep_ms(ctx.flags.timeouts.page_sleep_ms)
        # Records its own failure on the page row.
        await capture_page(ctx, landing, page_id)
    return page_id


async def _clickthrough(
    ctx: CrawlContext,
    page: Page,
    target: ElementHandle,
    ad_id: int,
    ad_depth: int,
) -> ClickResult:
    mode = ctx.flags.scrape.click_ads
    if ctx.flags.scrape.clear_cookies_before_click:
        await page.context.clear_cookies()

    async with ClickWatcher(page) as watcher:
        adlog("info", "ad_click", ad_id=ad_id, page_url=page.url)
        outcome = await _trigger_click(ctx, page, target, watcher, ad_id)

    landing: Page | None = outcome.popup
    try:
        if outcome.state is ClickState.POPUP_OPENED and mode is ClickMode.CLICK_AND_BLOCK_LOAD:
            await outcome.popup.wait_for_load_state("domcontentloaded", timeout=ctx.flags.timeouts.page_navigation_ms)
        if outcome.state is ClickState.NAVIGATION_BLOCKED:
            ctx.db.update_ad(ad_id, {"url": outcome.url})
            url = outcome.url
        else:
            url = None

        if mode is ClickMode.CLICK_AND_BLOCK_LOAD:
            if url is None:
                url = outcome.popup.url
                ctx.db.update_ad(ad_id, {"url": url})
            adlog("verbose", "ad_load_blocked", ad_id=ad_id, page_url=page.url, ad_url=url)
            return ClickResult(outcome.state, url=url)

        landing = await _open_landing_page(ctx, outcome)
        if url is None:
            url = landing.url
            ctx.db.update_ad(ad_id, {"url": url})
        landing_id = await _archive_landing_page(ctx, landing, page, ad_id, ad_depth)
        return ClickResult(outcome.state, url=url, landing_page_id=landing_id)
    finally:
        await close_quietly(landing)


async def click_ad(
    ctx: CrawlContext,
    page: Page,
    target: ElementHandle,
    ad_id: int,
    parent_page_id: int,
    ad_depth: int,
) -> ClickResult:
    """Click ``target`` and follow it according to the configured click mode.

    Raises :class:`OperationTimeout` if nothing resolves within the
    clickthrough timeout; listeners are removed and any new tab is closed on
    every exit path.
    """

    if ctx.flags.scrape.click_ads is ClickMode.NO_CLICK:
        raise ValueError("click_ad called with clicking disabled")
    adlog("debug", "clickthrough_start", ad_id=ad_id, page_url=page.url, parent_page=parent_page_id)
    try:
        return await with_timeout(
            _clickthrough(ctx, page, target, ad_id, ad_depth),
            ctx.flags.timeouts.clickthrough_ms,
            f"{page.url}: clickthrough timed out",
        )
    except OperationTimeout:
        adlog("warning", "clickthrough_timeout", ad_id=ad_id, page_url=page.url)
        raise


__all__ = ["ClickOutcome", "ClickResult", "ClickState", "ClickWatcher", "click_ad"]
