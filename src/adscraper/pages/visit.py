"""Load one URL and run the configured capture steps on it."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

from playwright.async_api import Page, Request

from ..ads.scraper import scrape_ads_on_page
from ..context import CrawlContext
from ..logging import jlog
from ..playwright import scroll_down_page
from ..timeouts import sleep_ms
from ..urls import same_origin
from .capture import capture_page, record_page, record_page_error
from .types import PageVisit

UTC = getattr(datetime, "UTC", timezone.utc)


class RequestRecorder:
    """Passively records cross-origin requests made while a page is open."""

    def __init__(self, page: Page) -> None:
        self.page = page
        self.requests: list[dict[str, Any]] = []

    def __call__(self, request: Request) -> None:
        if request.is_navigation_request() and request.frame == self.page.main_frame:
            return
        if same_origin(request.url, self.page.url):
            return
        self.requests.append(
            {
                "timestamp": datetime.now(UTC),
                "initiator": self.page.url,
                "target_url": request.url,
                "resource_type": request.resource_type,
            }
        )

    def save(self, ctx: CrawlContext, page_id: int) -> int:
        for row in self.requests:
            ctx.db.archive_request({**row, "parent_page": page_id})
        return len(self.requests)


async def load_and_handle_page(ctx: CrawlContext, page: Page, url: str, visit: PageVisit) -> int:
    """Navigate ``page`` to ``url``, archive it and its ads; return the page id.

    The page row is created once navigation succeeds. A failed page capture
    is logged and ad capture still runs; any other failure is recorded on
    the page row and re-raised.
    """

    scrape = ctx.flags.scrape
    jlog("info", event="page_loading", page_url=url, page_type=visit.page_type.value)
    recorder = RequestRecorder(page) if scrape.capture_third_party_requests else None
    if recorder:
        page.on("request", recorder)
    try:
        await page.goto(url, timeout=ctx.flags.timeouts.page_navigation_ms)
        page_id = record_page(ctx, page, visit, original_url=url)
        try:
            await sleep_ms(ctx.flags.timeouts.page_sleep_ms)
            jlog("info", event="page_loaded", page_url=page.url, page_id=page_id)
            await scroll_down_page(page)

            if scrape.scrape_site:
                try:
                    await capture_page(ctx, page, page_id)
                except Exception as exc:
                    jlog("warning", event="page_capture_failed", page_url=page.url, page_id=page_id, error=str(exc))

            if scrape.scrape_ads:
                await scrape_ads_on_page(ctx, page, page_id, visit.page_type.value, visit.depth)

            if recorder:
                saved = recorder.save(ctx, page_id)
                jlog("info", event="requests_saved", page_url=page.url, page_id=page_id, requests=saved)
        except (Exception, asyncio.CancelledError) as exc:
            record_page_error(ctx, page_id, exc)
            raise
        return page_id
    finally:
        if recorder:
            page.remove_listener("request", recorder)


__all__ = ["RequestRecorder", "load_and_handle_page"]
