"""Split native-ad widgets ("chumboxes") into their individual creatives."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from playwright.async_api import ElementHandle


@dataclass(frozen=True)
class ChumboxDefinition:
    platform: str
    # Selector for each clickable sub-ad inside the container.
    selector: str
    # Ancestor hops from the sub-ad to the region worth screenshotting.
    screenshot_parent_depth: int = 0


# Tried in order; the first definition with a match wins.
CHUMBOX_DEFINITIONS: tuple[ChumboxDefinition, ...] = (
    ChumboxDefinition("adblade", ".adblade-dyna a.description", 2),
    ChumboxDefinition("contentad", ".ac_container"),
    ChumboxDefinition("feednetwork", ".my6_item"),
    ChumboxDefinition("mgid", ".mgline"),
    ChumboxDefinition("outbrain", ".ob-dynamic-rec-container.ob-p"),
    ChumboxDefinition("revcontent", ".rc-item"),
    ChumboxDefinition("taboola", ".trc_spotlight_item.syndicatedItem"),
    ChumboxDefinition("zergnet", ".zergentity"),
)

_NTH_ANCESTOR_JS = """
(el, depth) => {
    let current = el;
    for (let i = 0; i < depth && current.parentElement; i++) {
        current = current.parentElement;
    }
    return current;
}
"""


@dataclass(frozen=True)
class AdHandles:
    """What to click and what to capture for a single creative."""

    click_target: ElementHandle
    screenshot_target: ElementHandle


@dataclass(frozen=True)
class ChumboxSplit:
    platform: str
    handles: list[AdHandles]


async def _screenshot_target(link: ElementHandle, depth: int) -> ElementHandle:
    if depth <= 0:
        return link
    ancestor = (await link.evaluate_handle(_NTH_ANCESTOR_JS, depth)).as_element()
    return ancestor or link


async def split_chumbox(
    element: ElementHandle,
    definitions: Sequence[ChumboxDefinition] = CHUMBOX_DEFINITIONS,
) -> ChumboxSplit | None:
    """Return the sub-ads of ``element``, or ``None`` if it is a single ad."""

    for definition in definitions:
        links = await element.query_selector_all(definition.selector)
        if not links:
            continue
        handles = [
            AdHandles(click_target=link, screenshot_target=await _screenshot_target(link, definition.screenshot_parent_depth))
            for link in links
        ]
        return ChumboxSplit(platform=definition.platform, handles=handles)
    return None


__all__ = [
    "AdHandles",
    "CHUMBOX_DEFINITIONS",
    "ChumboxDefinition",
    "ChumboxSplit",
    "split_chumbox",
]
