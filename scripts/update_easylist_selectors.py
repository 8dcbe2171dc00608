#!/usr/bin/env python3
"""Download EasyList's generic hiding rules into the bundled selector file."""
from __future__ import annotations

import argparse
from importlib import resources

from adscraper.ads.easylist import EASYLIST_GENERAL_HIDE_URL, fetch_general_hide, write_selectors
from adscraper.logging import configure_logging, logging_context, set_global_context

SCRIPT_NAME = "update_easylist"


def main() -> None:
    configure_logging()
    set_global_context(app="adscraper", pipeline=SCRIPT_NAME)
    p = argparse.ArgumentParser(description=__doc__)
    p.add_argument("--url", default=EASYLIST_GENERAL_HIDE_URL)
    p.add_argument(
        "--output",
        default=str(resources.files("adscraper.ads").joinpath("data/easylist_selectors.json")),
        help="Where to write the JSON selector list (default: the bundled file)",
    )
    args = p.parse_args()
    with logging_context(script=SCRIPT_NAME):
        write_selectors(fetch_general_hide(args.url), args.output)


if __name__ == "__main__":
    main()
