"""Capture of a single ad: screenshot, markup, bid data and nested frames."""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from playwright.async_api import ElementHandle, Error as PlaywrightError, Page

from ..config import MIN_AD_SIZE_PX
from ..context import CrawlContext
from ..db import archive_frames
from ..errors import CaptureError, OperationTimeout
from ..geometry import Box, context_box
from ..imaging import crop_and_save, ensure_dir, remove_dir_if_empty
from ..logging import adlog, jlog
from ..timeouts import sleep_ms, with_timeout
from .external_urls import extract_external_urls
from .frames import scrape_frames_in_element

UTC = getattr(datetime, "UTC", timezone.utc)

_SCROLL_INTO_VIEW_JS = "(el) => el.scrollIntoView({ block: 'center' })"
_OUTER_HTML_JS = "(el) => el.outerHTML"

# Winning bids first, then the highest bid response for a slot inside the ad.
_PREBID_JS = """
(ad) => {
    if (typeof pbjs === 'undefined' || typeof pbjs.getAllWinningBids !== 'function') {
        return null;
    }
    const inAd = (el) => !!el && ad.contains(el);
    const wins = pbjs.getAllWinningBids().filter((win) => inAd(document.getElementById(win.adUnitCode)));
    if (wins.length > 0) {
        return { max_bid_price: wins[0].cpm, winning_bid: true };
    }
    const responses = typeof pbjs.getBidResponses === 'function' ? pbjs.getBidResponses() : {};
    const slot = Object.keys(responses).find((code) => inAd(document.getElementById(code)));
    if (!slot || !responses[slot].bids || responses[slot].bids.length === 0) {
        return null;
    }
    return {
        max_bid_price: Math.max(...responses[slot].bids.map((b) => b.cpm)),
        winning_bid: false,
    };
}
"""


@dataclass(frozen=True)
class AdMetadata:
    """Where an ad was found; stored alongside the captured content."""

    parent_page_id: int
    parent_page_type: str
    depth: int
    chumbox_id: int | None = None
    platform: str | None = None


def ad_directory(ctx: CrawlContext, ad_id: int) -> str:
    return os.path.join(ctx.crawl_output_dir(), "scraped_ads", f"ad_{ad_id}")


async def get_prebid_bids(ad: ElementHandle) -> dict[str, Any]:
    """Bid price data from Prebid.js for ``ad``; empty when unavailable."""

    try:
        result = await ad.evaluate(_PREBID_JS)
    except PlaywrightError as exc:
        jlog("warning", event="prebid_lookup_failed", error=str(exc))
        return {}
    return result or {}


async def _measure(target: ElementHandle) -> Box:
    bb = await target.bounding_box()
    if not bb:
        raise CaptureError("no ad bounding box")
    if bb["width"] < MIN_AD_SIZE_PX or bb["height"] < MIN_AD_SIZE_PX:
        raise CaptureError(
            f"ad smaller than {MIN_AD_SIZE_PX}px in one dimension ({bb['width']:.0f}x{bb['height']:.0f})"
        )
    return Box.from_bounding_box(bb)


async def _screenshot_ad(ctx: CrawlContext, page: Page, target: ElementHandle, base_path: str) -> dict[str, Any]:
    viewport = page.viewport_size
    if not viewport:
        raise CaptureError("page has no viewport")
    ad_box = await _measure(target)
    png = await page.screenshot()

    with_context = ctx.flags.scrape.screenshot_ads_with_context
    fields: dict[str, Any] = {"with_context": with_context}
    crop = ad_box
    if with_context:
        crop = context_box(ad_box, viewport["width"], viewport["height"], ctx.flags.context_margin_px)
        local = ad_box.relative_to(crop)
        fields.update(bb_x=local.left, bb_y=local.top, bb_width=local.width, bb_height=local.height)
    # Cropping server-side avoids blank element screenshots.
    path = await asyncio.to_thread(crop_and_save, png, crop, base_path)
    fields["screenshot"] = ctx.relative(path)
    return fields


async def _capture(ctx: CrawlContext, page: Page, target: ElementHandle, meta: AdMetadata, state: dict[str, Any]) -> int:
    db = ctx.db
    ad_id = db.create_empty_ad()
    state["ad_id"] = ad_id

    await target.evaluate(_SCROLL_INTO_VIEW_JS)
    await sleep_ms(ctx.flags.timeouts.ad_sleep_ms)

    ad_dir = ensure_dir(ad_directory(ctx, ad_id))
    state["ad_dir"] = ad_dir

    html = await target.evaluate(_OUTER_HTML_JS)
    shot = await _screenshot_ad(ctx, page, target, os.path.join(ad_dir, f"ad_{ad_id}"))
    bids = await get_prebid_bids(target)
    capture_externals = ctx.flags.scrape.capture_external_urls
    externals = await extract_external_urls(target) if capture_externals else None
    frames = await scrape_frames_in_element(target, capture_externals=capture_externals)

    # No awaits past this point: a timeout never interrupts the row writes.
    db.update_ad(
        ad_id,
        {
            "timestamp": datetime.now(UTC),
            "job_id": ctx.flags.job_id,
            "crawl_id": ctx.crawl_id,
            "parent_page": meta.parent_page_id,
            "parent_page_url": page.url,
            "parent_page_type": meta.parent_page_type,
            "depth": meta.depth,
            "chumbox_id": meta.chumbox_id,
            "platform": meta.platform,
            "html": html,
            "winning_bid": bids.get("winning_bid"),
            "max_bid_price": bids.get("max_bid_price"),
            **shot,
        },
    )
    if externals is not None:
        db.archive_external_urls(externals, ad_id)
    archive_frames(db, frames, ad_id=ad_id)
    adlog("debug", "ad_archived", ad_id=ad_id, page_url=page.url)
    return ad_id


async def capture_ad(ctx: CrawlContext, page: Page, target: ElementHandle, meta: AdMetadata) -> int:
    """Capture one ad and return its id.

    Any failure, including the capture timeout, removes the ad row and its
    output directory (if empty) before the error propagates.
    """

    page_url = page.url
    timeout_ms = ctx.flags.timeouts.ad_scrape_ms
    state: dict[str, Any] = {}
    try:
        return await with_timeout(
            _capture(ctx, page, target, meta, state),
            timeout_ms,
            f"{page_url}: timed out while capturing ad",
        )
    except (Exception, asyncio.CancelledError) as exc:
        ad_id = state.get("ad_id")
        if ad_id is not None:
            ctx.db.delete_ad(ad_id)
            remove_dir_if_empty(state.get("ad_dir") or ad_directory(ctx, ad_id))
        if isinstance(exc, OperationTimeout):
            jlog("error", event="ad_capture_timeout", page_url=page_url, ad_id=ad_id, timeout_ms=timeout_ms)
        raise


__all__ = ["AdMetadata", "ad_directory", "capture_ad", "get_prebid_bids"]
