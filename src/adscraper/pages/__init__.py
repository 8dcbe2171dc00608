"""Page loading, capture and subpage discovery."""

from __future__ import annotations

from .types import PageType, PageVisit

__all__ = ["PageType", "PageVisit"]
