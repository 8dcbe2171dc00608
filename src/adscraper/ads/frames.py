"""Recursive capture of the frames nested inside an ad or page."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from playwright.async_api import ElementHandle, Error as PlaywrightError, Frame

from ..logging import jlog
from .external_urls import extract_external_urls

UTC = getattr(datetime, "UTC", timezone.utc)

# frame.content() can hang on some ad frames; evaluating the markup does not.
_OUTER_HTML_JS = "() => document.documentElement ? document.documentElement.outerHTML : ''"


@dataclass(frozen=True)
class ScrapedFrame:
    timestamp: datetime
    url: str
    html: str
    externals: dict[str, list[str]] | None = None
    children: tuple["ScrapedFrame", ...] = field(default_factory=tuple)

    def walk(self):
        """Yield this frame and its descendants, parents first."""

        yield self
        for child in self.children:
            yield from child.walk()


async def scrape_frame(frame: Frame, visited: set[Any] | None = None, *, capture_externals: bool = False) -> ScrapedFrame | None:
    """Capture ``frame`` and its descendants; ``None`` if it was already visited."""

    if visited is None:
        visited = set()
    if frame in visited:
        return None
    visited.add(frame)

    timestamp = datetime.now(UTC)
    html = await frame.evaluate(_OUTER_HTML_JS)
    externals = None
    if capture_externals:
        root = await frame.query_selector("html")
        if root is not None:
            externals = await extract_external_urls(root)

    children: list[ScrapedFrame] = []
    for child in frame.child_frames:
        try:
            scraped = await scrape_frame(child, visited, capture_externals=capture_externals)
        except PlaywrightError as exc:
            jlog("warning", event="frame_scrape_failed", frame_url=child.url, error=str(exc))
            continue
        if scraped is not None:
            children.append(scraped)

    return ScrapedFrame(
        timestamp=timestamp,
        url=frame.url,
        html=html,
        externals=externals,
        children=tuple(children),
    )


async def scrape_frames_in_element(element: ElementHandle, *, capture_externals: bool = False) -> list[ScrapedFrame]:
    """Capture every ``<iframe>`` inside ``element`` in document order."""

    visited: set[Any] = set()
    scraped: list[ScrapedFrame] = []
    for iframe in await element.query_selector_all("iframe"):
        frame = await iframe.content_frame()
        if frame is None:
            continue
        try:
            result = await scrape_frame(frame, visited, capture_externals=capture_externals)
        except PlaywrightError as exc:
            jlog("warning", event="frame_scrape_failed", frame_url=frame.url, error=str(exc))
            continue
        if result is not None:
            scraped.append(result)
    return scraped


async def scrape_child_frames(frame: Frame, *, capture_externals: bool = False) -> list[ScrapedFrame]:
    """Capture the frames directly below ``frame`` (used for whole pages)."""

    visited: set[Any] = {frame}
    scraped: list[ScrapedFrame] = []
    for child in frame.child_frames:
        try:
            result = await scrape_frame(child, visited, capture_externals=capture_externals)
        except PlaywrightError as exc:
            jlog("warning", event="frame_scrape_failed", frame_url=child.url, error=str(exc))
            continue
        if result is not None:
            scraped.append(result)
    return scraped


__all__ = [
    "ScrapedFrame",
    "scrape_child_frames",
    "scrape_frame",
    "scrape_frames_in_element",
]
