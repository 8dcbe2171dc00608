"""Crawler version resolution helpers."""

from __future__ import annotations

import os
from importlib import metadata


def get_crawler_version(component: str = "crawler") -> str:
    """Return ``<component>:<package version>`` unless ``ADSCRAPER_VERSION`` overrides it."""

    override = os.getenv("ADSCRAPER_VERSION")
    if override:
        return override
    try:
        version = metadata.version("adscraper")
    except metadata.PackageNotFoundError:
        version = "dev"
    return f"{component}:{version}"


__all__ = ["get_crawler_version"]
