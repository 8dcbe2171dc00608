"""Per-crawl state threaded through every crawler component."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .config import CrawlerFlags

if TYPE_CHECKING:
    from .db.postgres import CrawlDb
    from .playwright import BrowserSession


@dataclass
class CrawlContext:
    flags: CrawlerFlags
    db: "CrawlDb"
    session: "BrowserSession | Any" = None
    crawl_id: int | None = None
    # Crawl list position currently being processed.
    crawl_list_index: int | None = None
    # Set by the worker when a termination signal arrives mid-crawl.
    interrupted: bool = False
    ad_selectors: list[str] = field(default_factory=list)

    def crawl_output_dir(self) -> str:
        """Absolute directory that holds this crawl's artifacts."""

        name = self.flags.crawl_name or f"crawl_{self.crawl_id}"
        return os.path.join(self.flags.output_dir, name)

    def relative(self, path: str) -> str:
        """Path stored in the database: relative to the output directory."""

        return os.path.relpath(path, self.flags.output_dir)


__all__ = ["CrawlContext"]
