"""Structured logging helpers shared by the crawler entrypoints."""

from __future__ import annotations

import json
import logging
import os
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator

UTC = getattr(datetime, "UTC", timezone.utc)
_LOGGER_NAME = "adscraper"
VERBOSE = 5
_LEVELS = {
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "verbose": VERBOSE,
}
_configured = False
_file_handler: logging.Handler | None = None
_base_context: dict[str, Any] = {}
_context_stack: list[dict[str, Any]] = []

logging.addLevelName(VERBOSE, "VERBOSE")


def parse_level(name: str | int | None) -> int:
    """Map a level name (``error`` .. ``verbose``) to a ``logging`` level."""

    if name is None:
        return logging.INFO
    if isinstance(name, int):
        return name
    try:
        return _LEVELS[name.lower()]
    except KeyError:
        raise ValueError(f"unknown log level: {name}") from None


def configure_logging(level: int | str = logging.INFO) -> None:
    """Configure the global logging formatter once."""

    global _configured
    if _configured:
        return
    logging.basicConfig(level=parse_level(level), format="%(asctime)s %(levelname)s %(message)s")
    logging.getLogger(_LOGGER_NAME).setLevel(parse_level(level))
    _configured = True


def set_log_level(level: int | str) -> None:
    """Change the threshold of the `adscraper` logger, e.g. per assignment."""

    logging.getLogger(_LOGGER_NAME).setLevel(parse_level(level))


def add_log_file(output_dir: str, crawl_name: str | None) -> str:
    """Also append every structured record to ``<output_dir>/logs``."""

    global _file_handler
    log_dir = os.path.join(output_dir, "logs")
    os.makedirs(log_dir, exist_ok=True)
    stamp = datetime.now(UTC).strftime("%Y-%m-%dT%H-%M-%S")
    path = os.path.join(log_dir, f"crawl_{stamp}_{crawl_name or 'unnamed'}.txt")
    log = logging.getLogger(_LOGGER_NAME)
    if _file_handler is not None:
        log.removeHandler(_file_handler)
        _file_handler.close()
    _file_handler = logging.FileHandler(path, encoding="utf-8")
    _file_handler.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
    log.addHandler(_file_handler)
    return path


def set_global_context(**fields: Any) -> None:
    """Add persistent context fields that appear on every structured log."""

    _base_context.update({k: v for k, v in fields.items() if v is not None})


@contextmanager
def logging_context(**fields: Any) -> Iterator[None]:
    """Push a temporary logging context for the duration of the ``with`` block."""

    ctx = {k: v for k, v in fields.items() if v is not None}
    _context_stack.append(ctx)
    try:
        yield
    finally:
        _context_stack.pop()


def _merged_context() -> dict[str, Any]:
    merged: dict[str, Any] = {}
    merged.update(_base_context)
    for ctx in _context_stack:
        merged.update(ctx)
    return merged


def _utcnow_iso() -> str:
    return datetime.now(UTC).isoformat()


def jlog(level: str, /, **fields: Any) -> None:
    """Emit a structured JSON log payload under the ``adscraper`` logger."""

    log = logging.getLogger(_LOGGER_NAME)
    lvl = parse_level(level)
    if not log.isEnabledFor(lvl):
        return
    record = {"ts": _utcnow_iso(), "level": level.lower(), **_merged_context(), **fields}
    log.log(lvl, json.dumps(record, ensure_ascii=False, sort_keys=True, default=str))


def adlog(level: str, event: str, *, ad_id: int | None, page_url: str, **kw: Any) -> None:
    """Shortcut for ad-scoped JSON logging records."""

    jlog(level, event=event, ad_id=ad_id, page_url=page_url, **kw)


__all__ = [
    "VERBOSE",
    "add_log_file",
    "adlog",
    "configure_logging",
    "jlog",
    "logging_context",
    "parse_level",
    "set_global_context",
    "set_log_level",
]
