"""Object metadata for profile archives written to GCS."""

from __future__ import annotations

from collections import OrderedDict
from typing import OrderedDict as OrderedDictType


def build_profile_metadata(
    *,
    job_id: int,
    crawler_version: str,
    crawler_hostname: str,
    saved_at: str,
    crawl_id: int | None = None,
    crawl_name: str | None = None,
    checkpoint_index: int | None = None,
    compressed: bool = True,
) -> OrderedDictType[str, str]:
    """Return metadata with deterministic ordering for auditability."""

    md: OrderedDictType[str, str] = OrderedDict()
    md["job_id"] = str(job_id)
    if crawl_id is not None:
        md["crawl_id"] = str(crawl_id)
    if crawl_name:
        md["crawl_name"] = crawl_name
    md["crawler_version"] = crawler_version
    md["crawler_hostname"] = crawler_hostname
    md["saved_at"] = saved_at
    md["compressed"] = "true" if compressed else "false"
    if checkpoint_index is not None:
        md["checkpoint_index"] = str(checkpoint_index)
    return md


__all__ = ["build_profile_metadata"]
