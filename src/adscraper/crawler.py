"""Crawl list loading, crawl row bookkeeping and the traversal loop."""

from __future__ import annotations

import csv
import os
import random
import socket
from dataclasses import dataclass
from datetime import datetime, timezone

import requests
from playwright.async_api import Error as PlaywrightError, Page

from .config import CrawlerFlags
from .context import CrawlContext
from .db import CrawlDb
from .errors import CrawlInterrupted, InputError
from .logging import jlog
from .pages.find_page import find_article, find_page_with_ads
from .pages.types import PageType, PageVisit
from .pages.visit import load_and_handle_page
from .playwright import close_quietly
from .profile import Checkpointer
from .timeouts import with_timeout
from .urls import is_valid_url

UTC = getattr(datetime, "UTC", timezone.utc)
PUBLIC_IP_URL = os.getenv("PUBLIC_IP_URL", "https://api.ipify.org")


@dataclass(frozen=True)
class CrawlList:
    urls: list[str]
    # File the list came from; None for a single-URL crawl.
    source: str | None = None
    # Referrer ad of each URL, for ad landing page crawls.
    ad_ids: list[int | None] | None = None

    def __len__(self) -> int:
        return len(self.urls)

    @property
    def is_ad_url_crawl(self) -> bool:
        return self.ad_ids is not None


@dataclass(frozen=True)
class CrawlState:
    crawl_id: int
    start_index: int = 0
    resumed: bool = False


def _read_url_list(path: str) -> list[str]:
    with open(path, encoding="utf-8") as fh:
        return [line.strip() for line in fh if line.strip()]


def _read_ad_url_list(path: str) -> tuple[list[str], list[int | None]]:
    urls: list[str] = []
    ad_ids: list[int | None] = []
    with open(path, newline="", encoding="utf-8") as fh:
        reader = csv.DictReader(fh)
        missing = {"ad_id", "url"} - set(reader.fieldnames or ())
        if missing:
            raise InputError(f"{path} is missing column(s): {', '.join(sorted(missing))}")
        for line, row in enumerate(reader, start=2):
            try:
                ad_ids.append(int(row["ad_id"]) if row["ad_id"] else None)
            except ValueError:
                raise InputError(f"invalid ad_id in {path} at line {line}: {row['ad_id']!r}") from None
            urls.append((row["url"] or "").strip())
    return urls, ad_ids


def load_crawl_list(flags: CrawlerFlags) -> CrawlList:
    """Read the crawl list named by ``flags``; malformed lists are input errors."""

    ad_ids: list[int | None] | None = None
    source: str | None = None
    if flags.url:
        urls = [flags.url]
        if flags.ad_id is not None:
            ad_ids = [flags.ad_id]
    else:
        source = flags.url_list or flags.ad_url_list
        if not source or not os.path.isfile(source):
            raise InputError(f"{source} does not exist")
        if flags.url_list:
            urls = _read_url_list(source)
        else:
            urls, ad_ids = _read_ad_url_list(source)

    for line, url in enumerate(urls, start=1):
        if not is_valid_url(url):
            raise InputError(f"invalid URL in crawl list {source or '<url>'} at line {line}: {url}")
    if not urls:
        raise InputError(f"crawl list {source} is empty")

    if flags.crawl.shuffle_crawl_list:
        # Seeded so that a resumed crawl sees the same order.
        rng = random.Random(f"{flags.job_id}:{flags.crawl_name}:{source}")
        order = list(range(len(urls)))
        rng.shuffle(order)
        urls = [urls[i] for i in order]
        if ad_ids is not None:
            ad_ids = [ad_ids[i] for i in order]
    return CrawlList(urls=urls, source=source, ad_ids=ad_ids)


def get_public_ip(timeout_s: float = 10) -> str | None:
    try:
        resp = requests.get(PUBLIC_IP_URL, timeout=timeout_s)
        resp.raise_for_status()
        return resp.text.strip() or None
    except requests.RequestException as exc:
        jlog("warning", event="public_ip_unavailable", error=str(exc))
        return None


def _basename(path: str | None) -> str | None:
    return os.path.basename(path) if path else None


def start_or_resume_crawl(
    flags: CrawlerFlags,
    db: CrawlDb,
    crawl_list: CrawlList,
    *,
    hostname: str | None = None,
    public_ip: str | None = None,
) -> CrawlState:
    """Create the crawl row, or read back the resume position of a previous one."""

    previous = None
    if flags.crawl_id is not None:
        previous = db.get_crawl(flags.crawl_id)
        if previous is None:
            raise InputError(f"invalid crawl_id: {flags.crawl_id}")
    elif flags.resume_if_able and flags.crawl_name:
        previous = db.find_crawl_by_name(flags.crawl_name)

    if previous is not None:
        expected = _basename(previous.get("crawl_list"))
        if expected != _basename(crawl_list.source):
            raise InputError(
                f"crawl list {crawl_list.source} does not have the same name as the original crawl (expected {expected})"
            )
        if previous.get("crawl_list_length") != len(crawl_list):
            raise InputError(
                f"crawl list {crawl_list.source} has {len(crawl_list)} URLs, "
                f"the original crawl had {previous.get('crawl_list_length')}"
            )
        start = int(previous.get("crawl_list_current_index") or 0)
        jlog("info", event="crawl_resumed", crawl_id=previous["id"], crawl_list_index=start)
        return CrawlState(crawl_id=previous["id"], start_index=start, resumed=True)

    crawl_id = db.create_crawl(
        {
            "job_id": flags.job_id,
            "name": flags.crawl_name,
            "start_time": datetime.now(UTC),
            "completed": False,
            "crawl_list": crawl_list.source,
            "crawl_list_current_index": 0,
            "crawl_list_length": len(crawl_list),
            "profile_dir": flags.profile.profile_dir,
            "crawler_hostname": hostname or socket.gethostname(),
            "crawler_ip": public_ip if public_ip is not None else get_public_ip(),
        }
    )
    jlog("info", event="crawl_created", crawl_id=crawl_id, crawl_list_length=len(crawl_list))
    return CrawlState(crawl_id=crawl_id)


async def _crawl_subpage(ctx: CrawlContext, url: str, parent_id: int, parent: Page, parent_depth: int) -> int:
    page = await ctx.session.new_page()
    try:
        return await load_and_handle_page(ctx, page, url, PageVisit.subpage(parent_id, parent.url, parent_depth))
    finally:
        await close_quietly(page)


async def _crawl_item(ctx: CrawlContext, page: Page, crawl_list: CrawlList, index: int) -> None:
    url = crawl_list.urls[index]
    if crawl_list.ad_ids is not None:
        visit = PageVisit(PageType.AD_LANDING, depth=0, referrer_ad=crawl_list.ad_ids[index])
    else:
        visit = PageVisit.seed()
    page_id = await load_and_handle_page(ctx, page, url, visit)

    options = ctx.flags.crawl
    if options.find_and_crawl_article_page:
        article = await find_article(ctx, page)
        if article:
            await _crawl_subpage(ctx, article, page_id, page, visit.depth)
        else:
            jlog("warning", event="article_not_found", page_url=url)
    if options.find_and_crawl_page_with_ads:
        with_ads = await find_page_with_ads(ctx, page)
        if with_ads:
            await _crawl_subpage(ctx, with_ads, page_id, page, visit.depth)
        else:
            jlog("warning", event="page_with_ads_not_found", page_url=url)


async def run_crawl(
    ctx: CrawlContext,
    crawl_list: CrawlList,
    state: CrawlState,
    checkpointer: Checkpointer | None = None,
) -> None:
    """Process the crawl list from ``state.start_index`` to the end.

    The resume index is written after every item, whether it succeeded or
    failed, so a restarted worker repeats at most the item in progress. An
    item cut short by a termination signal is not counted as processed.
    """

    ctx.crawl_id = state.crawl_id
    item_timeout_ms = ctx.flags.timeouts.crawl_item_ms
    for index in range(state.start_index, len(crawl_list)):
        if ctx.interrupted:
            raise CrawlInterrupted(f"crawl interrupted before item {index}")
        url = crawl_list.urls[index]
        ctx.crawl_list_index = index
        try:
            page = await ctx.session.new_page()
        except PlaywrightError as exc:
            if ctx.interrupted:
                raise CrawlInterrupted(f"crawl interrupted before item {index}") from exc
            raise

        try:
            await with_timeout(
                _crawl_item(ctx, page, crawl_list, index),
                (len(crawl_list) - index) * item_timeout_ms,
                f"{url}: overall site timeout reached",
            )
        except Exception as exc:
            jlog("error", event="crawl_item_failed", page_url=url, crawl_list_index=index, error=str(exc))
        finally:
            if not ctx.interrupted:
                ctx.db.update_crawl_index(state.crawl_id, index + 1)
            await close_quietly(page)

        if ctx.interrupted:
            raise CrawlInterrupted(f"crawl interrupted during item {index}")
        if checkpointer is not None:
            await checkpointer.maybe_checkpoint(index + 1)

    ctx.db.mark_crawl_complete(state.crawl_id)
    jlog("info", event="crawl_completed", crawl_id=state.crawl_id, items=len(crawl_list))


__all__ = [
    "CrawlList",
    "CrawlState",
    "get_public_ip",
    "load_crawl_list",
    "run_crawl",
    "start_or_resume_crawl",
]
