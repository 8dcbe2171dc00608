"""Playwright helpers shared by the crawler."""

from __future__ import annotations

import random
from typing import Any

from playwright.async_api import BrowserContext, Error as PlaywrightError, Page, Playwright, async_playwright

from .config import ChromeOptions, ProfileOptions
from .logging import jlog
from .timeouts import sleep_ms

CHROMIUM_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-setuid-sandbox",
    "--disable-gpu",
    "--no-zygote",
]

# Scrolling stops after this many wheel events even if the page keeps growing.
MAX_SCROLL_STEPS = 30


class BrowserSession:
    """A persistent Chromium context running on the working profile directory."""

    def __init__(self, chrome: ChromeOptions, profile: ProfileOptions) -> None:
        self.chrome = chrome
        self.profile = profile
        self._playwright: Playwright | None = None
        self.context: BrowserContext | None = None

    async def launch(self) -> "BrowserSession":
        if self._playwright is None:
            self._playwright = await async_playwright().start()
        kwargs: dict[str, Any] = {
            "headless": self.chrome.headless,
            "args": CHROMIUM_LAUNCH_ARGS,
            "viewport": {"width": self.chrome.viewport_width, "height": self.chrome.viewport_height},
        }
        if self.chrome.executable_path:
            kwargs["executable_path"] = self.chrome.executable_path
        if self.profile.proxy_server:
            kwargs["proxy"] = {"server": self.profile.proxy_server}
        self.context = await self._playwright.chromium.launch_persistent_context(
            self.profile.work_profile_dir, **kwargs
        )
        jlog("info", event="browser_launched", headless=self.chrome.headless, profile_dir=self.profile.work_profile_dir)
        return self

    @property
    def is_closed(self) -> bool:
        return self.context is None

    async def new_page(self) -> Page:
        if self.context is None:
            raise PlaywrightError("browser is not running")
        return await self.context.new_page()

    async def close_browser(self) -> None:
        """Close the browser but keep the driver, so :meth:`launch` can follow."""

        context, self.context = self.context, None
        if context is None:
            return
        try:
            await context.close()
        except PlaywrightError as exc:
            jlog("warning", event="browser_close_failed", error=str(exc))

    async def close(self) -> None:
        await self.close_browser()
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except PlaywrightError:
                pass
            self._playwright = None


async def close_quietly(page: Page | None) -> None:
    """Close ``page`` unless it is gone already."""

    if page is None or page.is_closed():
        return
    try:
        await page.close()
    except PlaywrightError:
        pass


async def scroll_down_page(page: Page, pause_ms: int = 1000) -> int:
    """Wheel-scroll to the bottom of ``page`` in random steps; return the step count."""

    inner_height = await page.evaluate("() => window.innerHeight")
    scroll_height = await page.evaluate("() => document.body ? document.body.scrollHeight : 0")
    scroll_y = await page.evaluate("() => window.scrollY")
    steps = 0
    while scroll_y + inner_height < scroll_height and steps < MAX_SCROLL_STEPS:
        await page.mouse.move(random.uniform(50, 100), random.uniform(50, 100))
        await page.mouse.wheel(0, random.uniform(200, 400))
        await sleep_ms(pause_ms)
        scroll_y = await page.evaluate("() => window.scrollY")
        steps += 1
    return steps


__all__ = [
    "BrowserSession",
    "CHROMIUM_LAUNCH_ARGS",
    "close_quietly",
    "scroll_down_page",
]
