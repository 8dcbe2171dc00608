#!/usr/bin/env python3
"""CLI shim for a crawler worker that takes its assignment from the job queue."""
from __future__ import annotations

import sys

from adscraper.entrypoints import queue_worker_main
from adscraper.logging import configure_logging, logging_context, set_global_context
from adscraper.versioning import get_crawler_version

SCRIPT_NAME = "queue_worker"


def main() -> None:
    configure_logging()
    set_global_context(app="adscraper", pipeline=SCRIPT_NAME)
    with logging_context(script=SCRIPT_NAME, crawler_version=get_crawler_version()):
        sys.exit(queue_worker_main())


if __name__ == "__main__":
    main()
