"""Refresh the bundled EasyList element-hiding selectors."""

from __future__ import annotations

import json
from typing import Iterable

import requests

from ..logging import jlog

EASYLIST_GENERAL_HIDE_URL = (
    "https://raw.githubusercontent.com/easylist/easylist/master/easylist/easylist_general_hide.txt"
)


def parse_general_hide(lines: Iterable[str]) -> list[str]:
    """Selectors of generic ``##selector`` hiding rules, in file order, without duplicates.

    Domain-scoped rules, exceptions (``#@#``), extended syntax (``#?#``) and
    comments are ignored.
    """

    seen: set[str] = set()
    selectors: list[str] = []
    for raw in lines:
        line = raw.strip()
        if not line.startswith("##"):
            continue
        selector = line[2:].strip()
        if not selector or selector in seen:
            continue
        seen.add(selector)
        selectors.append(selector)
    return selectors


def fetch_general_hide(url: str = EASYLIST_GENERAL_HIDE_URL, timeout_s: float = 30) -> list[str]:
    resp = requests.get(url, timeout=timeout_s)
    resp.raise_for_status()
    return parse_general_hide(resp.text.splitlines())


def write_selectors(selectors: list[str], path: str) -> None:
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(selectors, fh, indent=2)
        fh.write("\n")
    jlog("info", event="easylist_selectors_written", path=path, count=len(selectors))


__all__ = ["EASYLIST_GENERAL_HIDE_URL", "fetch_general_hide", "parse_general_hide", "write_selectors"]
