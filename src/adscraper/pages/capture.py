"""Page rows and page content capture."""

from __future__ import annotations

import asyncio
import os
from datetime import datetime, timezone

from playwright.async_api import Page

from ..ads.frames import scrape_child_frames
from ..context import CrawlContext
from ..db import archive_frames
from ..imaging import ensure_dir, remove_dir_if_empty, save_screenshot
from ..logging import jlog
from ..timeouts import with_timeout
from .types import PageVisit

UTC = getattr(datetime, "UTC", timezone.utc)


def page_directory(ctx: CrawlContext, page_id: int) -> str:
    return os.path.join(ctx.crawl_output_dir(), "scraped_pages", f"page_{page_id}")


def record_page(ctx: CrawlContext, page: Page, visit: PageVisit, original_url: str | None = None) -> int:
    """Insert the row for a page that has just finished navigating."""

    return ctx.db.archive_page(
        {
            "timestamp": datetime.now(UTC),
            "job_id": ctx.flags.job_id,
            "crawl_id": ctx.crawl_id,
            "url": page.url,
            "original_url": original_url or page.url,
            "page_type": visit.page_type.value,
            "depth": visit.depth,
            "crawl_list_index": ctx.crawl_list_index,
            "referrer_page": visit.referrer_page,
            "referrer_page_url": visit.referrer_page_url,
            "referrer_ad": visit.referrer_ad,
        }
    )


def record_page_error(ctx: CrawlContext, page_id: int, exc: BaseException) -> None:
    ctx.db.update_page(page_id, {"error": str(exc) or type(exc).__name__})


def _write_text(path: str, text: str) -> None:
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(text)


async def _capture(ctx: CrawlContext, page: Page, page_id: int, page_dir: str) -> None:
    html = await page.content()
    png = await page.screenshot(full_page=True)
    base = os.path.join(page_dir, f"page_{page_id}")
    await asyncio.to_thread(_write_text, base + ".html", html)
    screenshot = await asyncio.to_thread(save_screenshot, png, base)
    frames = await scrape_child_frames(page.main_frame)

    ctx.db.update_page(
        page_id,
        {
            "timestamp": datetime.now(UTC),
            "url": page.url,
            "html": ctx.relative(base + ".html"),
            "screenshot": ctx.relative(screenshot),
        },
    )
    archive_frames(ctx.db, frames, page_id=page_id)
    jlog("info", event="page_archived", page_id=page_id, page_url=page.url, frames=len(frames))


async def capture_page(ctx: CrawlContext, page: Page, page_id: int) -> None:
    """Store the HTML, a full-page screenshot and the frames of ``page``.

    On failure the error is recorded on the page row, whose content fields
    stay empty, and the page's empty output directory is removed.
    """

    page_url = page.url
    page_dir = ensure_dir(page_directory(ctx, page_id))
    try:
        await with_timeout(
            _capture(ctx, page, page_id, page_dir),
            ctx.flags.timeouts.page_scrape_ms,
            f"{page_url}: timed out while capturing page",
        )
    except (Exception, asyncio.CancelledError) as exc:
        record_page_error(ctx, page_id, exc)
        remove_dir_if_empty(page_dir)
        raise


__all__ = ["capture_page", "page_directory", "record_page", "record_page_error"]
