"""Page classification and provenance."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class PageType(str, Enum):
    SEED = "seed"
    SUBPAGE = "subpage"
    AD_LANDING = "ad-landing"


@dataclass(frozen=True)
class PageVisit:
    """How the crawler arrived at a page.

    A page is referred either by another page (subpages) or by an ad
    (landing pages), never both. Pages sit at even depths: seeds at 0, a
    subpage two below the page linking to it, a landing page one below the
    ad that was clicked.
    """

    page_type: PageType
    depth: int = 0
    referrer_page: int | None = None
    referrer_page_url: str | None = None
    referrer_ad: int | None = None

    def __post_init__(self) -> None:
        if self.referrer_page is not None and self.referrer_ad is not None:
            raise ValueError("referrer_page and referrer_ad are mutually exclusive")

    @classmethod
    def seed(cls) -> "PageVisit":
        return cls(PageType.SEED, depth=0)

    @classmethod
    def subpage(cls, parent_id: int, parent_url: str, parent_depth: int = 0) -> "PageVisit":
        return cls(PageType.SUBPAGE, depth=parent_depth + 2, referrer_page=parent_id, referrer_page_url=parent_url)

    @classmethod
    def landing(cls, ad_id: int | None, ad_depth: int, referrer_url: str | None = None) -> "PageVisit":
        return cls(PageType.AD_LANDING, depth=ad_depth + 1, referrer_page_url=referrer_url, referrer_ad=ad_id)


__all__ = ["PageType", "PageVisit"]
