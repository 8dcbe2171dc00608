"""Crawler configuration.

A worker receives its assignment as a JSON document (from the work queue or an
indexed input file). :meth:`CrawlerFlags.from_dict` turns that document into an
immutable configuration value which is then threaded explicitly through every
component via :class:`adscraper.context.CrawlContext`.

Timeout defaults can be overridden per process with environment variables, and
per assignment with the ``timeouts`` object.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Iterable, Mapping

from .errors import InputError
from .logging import parse_level

# How long to wait for a page to load.
DEFAULT_PAGE_NAVIGATION_TIMEOUT_MS = int(os.getenv("PAGE_NAVIGATION_TIMEOUT_MS", str(3 * 60 * 1000)))
# How long the crawler can spend capturing the HTML and screenshot of a page.
DEFAULT_PAGE_SCRAPE_TIMEOUT_MS = int(os.getenv("PAGE_SCRAPE_TIMEOUT_MS", str(2 * 60 * 1000)))
# How long the crawler can spend capturing one ad; must exceed the ad settle time.
DEFAULT_AD_SCRAPE_TIMEOUT_MS = int(os.getenv("AD_SCRAPE_TIMEOUT_MS", "20000"))
# How long one clickthrough may take, landing page included.
DEFAULT_CLICKTHROUGH_TIMEOUT_MS = int(os.getenv("CLICKTHROUGH_TIMEOUT_MS", "60000"))
# How long to wait for a click to do something before falling back to a mouse click.
DEFAULT_AD_CLICK_TIMEOUT_MS = int(os.getenv("AD_CLICK_TIMEOUT_MS", "10000"))
DEFAULT_AD_SLEEP_MS = int(os.getenv("AD_SLEEP_MS", "5000"))
DEFAULT_PAGE_SLEEP_MS = int(os.getenv("PAGE_SLEEP_MS", "10000"))
# Per crawl list item budget, multiplied by the number of remaining items.
DEFAULT_CRAWL_ITEM_TIMEOUT_MS = int(os.getenv("CRAWL_ITEM_TIMEOUT_MS", str(15 * 60 * 1000)))

DEFAULT_VIEWPORT_WIDTH = 1366
DEFAULT_VIEWPORT_HEIGHT = 768
DEFAULT_CONTEXT_MARGIN_PX = 150
MIN_AD_SIZE_PX = 30
DEFAULT_WORK_PROFILE_DIR = os.getenv("ADSCRAPER_WORK_PROFILE_DIR", "/tmp/adscraper/chrome_profile")


class ClickMode(str, Enum):
    NO_CLICK = "noClick"
    CLICK_AND_BLOCK_LOAD = "clickAndBlockLoad"
    CLICK_AND_SCRAPE_LANDING_PAGE = "clickAndScrapeLandingPage"


@dataclass(frozen=True)
class Timeouts:
    page_navigation_ms: int = DEFAULT_PAGE_NAVIGATION_TIMEOUT_MS
    page_scrape_ms: int = DEFAULT_PAGE_SCRAPE_TIMEOUT_MS
    ad_scrape_ms: int = DEFAULT_AD_SCRAPE_TIMEOUT_MS
    clickthrough_ms: int = DEFAULT_CLICKTHROUGH_TIMEOUT_MS
    ad_click_ms: int = DEFAULT_AD_CLICK_TIMEOUT_MS
    ad_sleep_ms: int = DEFAULT_AD_SLEEP_MS
    page_sleep_ms: int = DEFAULT_PAGE_SLEEP_MS
    crawl_item_ms: int = DEFAULT_CRAWL_ITEM_TIMEOUT_MS


@dataclass(frozen=True)
class CrawlOptions:
    shuffle_crawl_list: bool = False
    find_and_crawl_page_with_ads: bool = False
    find_and_crawl_article_page: bool = False


@dataclass(frozen=True)
class ScrapeOptions:
    scrape_site: bool = True
    scrape_ads: bool = True
    click_ads: ClickMode = ClickMode.NO_CLICK
    screenshot_ads_with_context: bool = False
    capture_third_party_requests: bool = False
    capture_external_urls: bool = True
    clear_cookies_before_click: bool = False


@dataclass(frozen=True)
class ProfileOptions:
    use_existing_profile: bool = False
    # Durable location of the profile: a local directory or gs://bucket/prefix.
    profile_dir: str | None = None
    # Write-back destination, if the original profile should be left untouched.
    new_profile_dir: str | None = None
    write_profile: bool = False
    compress_profile: bool = False
    # Seconds between mid-crawl profile checkpoints; 0 disables checkpointing.
    checkpoint_freq: int = 0
    proxy_server: str | None = None
    # Local working copy the browser actually runs on.
    work_profile_dir: str = DEFAULT_WORK_PROFILE_DIR


@dataclass(frozen=True)
class ChromeOptions:
    headless: bool = True
    executable_path: str | None = None
    viewport_width: int = DEFAULT_VIEWPORT_WIDTH
    viewport_height: int = DEFAULT_VIEWPORT_HEIGHT


@dataclass(frozen=True)
class CrawlerFlags:
    job_id: int
    output_dir: str
    crawl_name: str | None = None
    crawl_id: int | None = None
    resume_if_able: bool = False
    url: str | None = None
    ad_id: int | None = None
    url_list: str | None = None
    ad_url_list: str | None = None
    log_level: str = "info"
    chrome: ChromeOptions = field(default_factory=ChromeOptions)
    crawl: CrawlOptions = field(default_factory=CrawlOptions)
    scrape: ScrapeOptions = field(default_factory=ScrapeOptions)
    profile: ProfileOptions = field(default_factory=ProfileOptions)
    timeouts: Timeouts = field(default_factory=Timeouts)
    context_margin_px: int = DEFAULT_CONTEXT_MARGIN_PX
    ad_selectors_file: str | None = None

    @property
    def should_checkpoint(self) -> bool:
        return bool(self.profile.write_profile and self.profile.checkpoint_freq > 0)

    @classmethod
    def from_dict(cls, doc: Mapping[str, Any]) -> "CrawlerFlags":
        """Build flags from an assignment document; raise :class:`InputError` if malformed."""

        if not isinstance(doc, Mapping):
            raise InputError("crawl assignment must be a JSON object")
        job_id = doc.get("jobId")
        if not isinstance(job_id, int) or isinstance(job_id, bool):
            raise InputError(f"invalid jobId: {job_id!r}")
        output_dir = doc.get("outputDir")
        if not output_dir or not isinstance(output_dir, str):
            raise InputError("outputDir is required")
        inputs = [k for k in ("url", "urlList", "adUrlList") if doc.get(k)]
        if len(inputs) != 1:
            raise InputError("exactly one of url, urlList or adUrlList is required")

        scrape = _section(doc, "scrapeOptions", ScrapeOptions)
        click = scrape.get("click_ads", ClickMode.NO_CLICK.value)
        try:
            scrape["click_ads"] = ClickMode(click)
        except ValueError:
            raise InputError(f"invalid clickAds mode: {click!r}") from None

        profile = _section(doc, "profileOptions", ProfileOptions)
        _require_ints(profile, "profileOptions", ("checkpoint_freq",))
        if profile.get("write_profile") and not (profile.get("profile_dir") or profile.get("new_profile_dir")):
            raise InputError("writeProfile requires profileDir or newProfileDir")

        chrome = _section(doc, "chromeOptions", ChromeOptions)
        _require_ints(chrome, "chromeOptions", ("viewport_width", "viewport_height"))
        timeouts = _section(doc, "timeouts", Timeouts)
        _require_ints(timeouts, "timeouts", list(timeouts))

        log_level = str(doc.get("logLevel", "info"))
        try:
            parse_level(log_level)
        except ValueError:
            raise InputError(f"invalid logLevel: {log_level!r}") from None
        margin = _opt_int(doc, "contextMarginPx")
        if margin is not None and margin < 0:
            raise InputError(f"invalid contextMarginPx: {margin!r}")

        return cls(
            job_id=job_id,
            output_dir=output_dir,
            crawl_name=doc.get("crawlName"),
            crawl_id=_opt_int(doc, "crawlId"),
            resume_if_able=bool(doc.get("resumeIfAble", False)),
            url=doc.get("url"),
            ad_id=_opt_int(doc, "adId"),
            url_list=doc.get("urlList"),
            ad_url_list=doc.get("adUrlList"),
            log_level=log_level,
            chrome=ChromeOptions(**chrome),
            crawl=CrawlOptions(**_section(doc, "crawlOptions", CrawlOptions)),
            scrape=ScrapeOptions(**scrape),
            profile=ProfileOptions(**profile),
            timeouts=Timeouts(**timeouts),
            context_margin_px=DEFAULT_CONTEXT_MARGIN_PX if margin is None else margin,
            ad_selectors_file=doc.get("adSelectorsFile"),
        )


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(p.capitalize() for p in rest)


def _section(doc: Mapping[str, Any], key: str, cls: type) -> dict[str, Any]:
    """Translate a camelCase sub-document into dataclass keyword arguments."""

    raw = doc.get(key) or {}
    if not isinstance(raw, Mapping):
        raise InputError(f"{key} must be an object")
    known = {_camel(f.name): f.name for f in fields(cls)}
    unknown = sorted(set(raw) - set(known))
    if unknown:
        raise InputError(f"unknown {key} field(s): {', '.join(unknown)}")
    return {known[k]: v for k, v in raw.items()}


def _require_ints(values: Mapping[str, Any], key: str, names: Iterable[str]) -> None:
    for name in names:
        if name not in values:
            continue
        value = values[name]
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise InputError(f"invalid {key}.{_camel(name)}: {value!r}")


def _opt_int(doc: Mapping[str, Any], key: str) -> int | None:
    value = doc.get(key)
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InputError(f"invalid {key}: {value!r}") from None


__all__ = [
    "ChromeOptions",
    "ClickMode",
    "CrawlOptions",
    "CrawlerFlags",
    "MIN_AD_SIZE_PX",
    "ProfileOptions",
    "ScrapeOptions",
    "Timeouts",
]
