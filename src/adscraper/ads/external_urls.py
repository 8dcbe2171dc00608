"""URLs referenced by an ad's markup (anchors, frames, scripts, images)."""

from __future__ import annotations

from playwright.async_api import ElementHandle

_EXTRACT_JS = """
(root) => {
    const collect = (selector, attr) => Array.from(root.querySelectorAll(selector))
        .map((el) => el[attr])
        .filter((url) => typeof url === 'string' && url.length > 0);
    return {
        anchor_href: collect('a', 'href'),
        iframe_src: collect('iframe', 'src'),
        script_src: collect('script', 'src'),
        img_src: collect('img', 'src'),
    };
}
"""


async def extract_external_urls(handle: ElementHandle) -> dict[str, list[str]]:
    """Return URLs keyed by provenance type."""

    return await handle.evaluate(_EXTRACT_JS)


__all__ = ["extract_external_urls"]
