"""Detect, capture and optionally click every ad on a page."""

from __future__ import annotations

from playwright.async_api import Page

from ..config import MIN_AD_SIZE_PX, ClickMode
from ..context import CrawlContext
from ..errors import CrawlInterrupted
from ..logging import adlog, jlog
from .capture import AdMetadata, capture_ad
from .chumbox import AdHandles, split_chumbox
from .click import click_ad
from .detection import identify_ads


async def _click_if_clickable(ctx: CrawlContext, page: Page, handles: AdHandles, ad_id: int, parent_page_id: int, ad_depth: int) -> None:
    bb = await handles.click_target.bounding_box()
    if not bb:
        adlog("warning", "ad_click_skipped", ad_id=ad_id, page_url=page.url, reason="no bounding box")
        return
    if bb["width"] < MIN_AD_SIZE_PX or bb["height"] < MIN_AD_SIZE_PX:
        adlog(
            "warning",
            "ad_click_skipped",
            ad_id=ad_id,
            page_url=page.url,
            reason=f"bounding box too small ({bb['width']:.0f}x{bb['height']:.0f})",
        )
        return
    await click_ad(ctx, page, handles.click_target, ad_id, parent_page_id, ad_depth)


async def scrape_ads_on_page(ctx: CrawlContext, page: Page, parent_page_id: int, page_type: str, depth: int) -> dict[str, int]:
    """Capture the ads on ``page``.

    Returns the detection key of each captured creative mapped to its ad id
    (chumbox members get ``<key>.<n>`` keys). A failed capture or click is
    logged and the next ad is processed.
    """

    ads = await identify_ads(page, ctx.ad_selectors)
    captured: dict[str, int] = {}
    ad_depth = depth + 1
    clicking = ctx.flags.scrape.click_ads is not ClickMode.NO_CLICK

    for n, ad in enumerate(ads, start=1):
        if ctx.interrupted:
            raise CrawlInterrupted(f"{page.url}: interrupted while scraping ads")
        jlog("info", event="ad_scrape", page_url=page.url, ad_key=ad.key, position=n, total=len(ads))
        split = await split_chumbox(ad.handle)
        if split:
            chumbox_id = ctx.db.insert_chumbox(split.platform, parent_page_id)
            members = [(f"{ad.key}.{i}", h) for i, h in enumerate(split.handles, start=1)]
            platform = split.platform
        else:
            chumbox_id = None
            members = [(ad.key, AdHandles(click_target=ad.handle, screenshot_target=ad.handle))]
            platform = None

        meta = AdMetadata(
            parent_page_id=parent_page_id,
            parent_page_type=page_type,
            depth=ad_depth,
            chumbox_id=chumbox_id,
            platform=platform,
        )
        for key, handles in members:
            try:
                ad_id = await capture_ad(ctx, page, handles.screenshot_target, meta)
            except Exception as exc:
                jlog("warning", event="ad_skipped", page_url=page.url, ad_key=key, error=str(exc))
                continue
            captured[key] = ad_id

            if not clicking:
                continue
            try:
                await _click_if_clickable(ctx, page, handles, ad_id, parent_page_id, ad_depth)
            except Exception as exc:
                adlog("warning", "ad_click_error", ad_id=ad_id, page_url=page.url, error=str(exc))
    return captured


__all__ = ["scrape_ads_on_page"]
