"""Database helpers for the crawler."""

from .postgres import EXTERNAL_URL_TYPES, CrawlDb, archive_frames, sql_connect

__all__ = [
    "CrawlDb",
    "EXTERNAL_URL_TYPES",
    "archive_frames",
    "sql_connect",
]
