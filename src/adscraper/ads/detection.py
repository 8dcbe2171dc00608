"""Ad detection with EasyList element-hiding selectors."""

from __future__ import annotations

import json
from dataclasses import dataclass
from importlib import resources
from typing import Any, Hashable, Iterable, Mapping, Sequence, TypeVar

from playwright.async_api import ElementHandle, Page

from ..logging import jlog

K = TypeVar("K", bound=Hashable)

# Selectors for widgets EasyList does not hide generically.
CUSTOM_SELECTORS = [
    ".ob-widget",
    '[id^="rc_widget"]',
]

# Collect every match once, and for each match the indices of the other
# matches found on its ancestor chain.
_COLLECT_CANDIDATES_JS = """
(selectors) => {
    const matched = new Set();
    for (const selector of selectors) {
        document.querySelectorAll(selector).forEach((el) => matched.add(el));
    }
    const elements = Array.from(matched);
    const index = new Map(elements.map((el, i) => [el, i]));
    const ancestors = elements.map((el) => {
        const found = [];
        let current = el.parentElement;
        while (current) {
            if (index.has(current)) {
                found.push(index.get(current));
            }
            current = current.parentElement;
        }
        return found;
    });
    return { elements, ancestors };
}
"""


@dataclass(frozen=True)
class DetectedAd:
    """A top-level ad match, keyed by a synthetic id assigned at detection time."""

    key: str
    handle: ElementHandle


def load_ad_selectors(path: str | None = None) -> list[str]:
    """Return EasyList generic selectors (bundled or from ``path``) plus custom ones."""

    if path:
        with open(path, encoding="utf-8") as fh:
            easylist = json.load(fh)
    else:
        data = resources.files("adscraper.ads").joinpath("data/easylist_selectors.json")
        easylist = json.loads(data.read_text(encoding="utf-8"))
    if not isinstance(easylist, list):
        raise ValueError("selector file must contain a JSON list")
    selectors = [s for s in easylist if isinstance(s, str) and s]
    return selectors + [s for s in CUSTOM_SELECTORS if s not in selectors]


def remove_nested(candidates: Iterable[K], ancestors: Mapping[K, Iterable[K]] | Sequence[Iterable[K]]) -> list[K]:
    """Keep only candidates with no other candidate on their ancestor chain.

    ``ancestors[c]`` lists every ancestor of ``c``. The result does not depend
    on the order of ``candidates``, and applying the filter to its own output
    returns it unchanged.
    """

    members = list(dict.fromkeys(candidates))
    member_set = set(members)
    return [c for c in members if not any(a in member_set and a != c for a in ancestors[c])]


async def identify_ads(page: Page, selectors: Sequence[str]) -> list[DetectedAd]:
    """Return the top-most elements on ``page`` matching any of ``selectors``."""

    result = await page.evaluate_handle(_COLLECT_CANDIDATES_JS, list(selectors))
    try:
        ancestors: list[list[int]] = await (await result.get_property("ancestors")).json_value()
        elements = await result.get_property("elements")
        props: dict[str, Any] = await elements.get_properties()
    finally:
        await result.dispose()

    handles: dict[int, ElementHandle] = {}
    for key, prop in props.items():
        if not key.isdigit():
            continue
        el = prop.as_element()
        if el is not None:
            handles[int(key)] = el

    top_level = set(remove_nested(range(len(ancestors)), ancestors))
    ads: list[DetectedAd] = []
    for idx in sorted(handles):
        if idx in top_level:
            ads.append(DetectedAd(key=f"ad-{len(ads) + 1}", handle=handles[idx]))
        else:
            await handles[idx].dispose()
    jlog("info", event="ads_identified", page_url=page.url, candidates=len(ancestors), ads=len(ads))
    return ads


__all__ = [
    "CUSTOM_SELECTORS",
    "DetectedAd",
    "identify_ads",
    "load_ad_selectors",
    "remove_nested",
]
