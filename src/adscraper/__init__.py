"""Distributed ad crawler: find, capture and click ads, archive their landing pages."""

from .config import ClickMode, CrawlerFlags
from .errors import CrawlInterrupted, ExitCode, InputError, NonRetryableError, OperationTimeout
from .geometry import Box, context_box
from .logging import adlog, jlog
from .metadata import build_profile_metadata
from .playwright import CHROMIUM_LAUNCH_ARGS, BrowserSession
from .urls import is_valid_url, same_origin
from .versioning import get_crawler_version

__all__ = [
    "adlog",
    "Box",
    "BrowserSession",
    "build_profile_metadata",
    "ClickMode",
    "context_box",
    "CrawlerFlags",
    "CrawlInterrupted",
    "ExitCode",
    "get_crawler_version",
    "InputError",
    "is_valid_url",
    "jlog",
    "NonRetryableError",
    "OperationTimeout",
    "same_origin",
    "CHROMIUM_LAUNCH_ARGS",
]
