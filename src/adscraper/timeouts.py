"""Timeout races for externally bounded operations."""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from .errors import OperationTimeout

T = TypeVar("T")


async def with_timeout(aw: Awaitable[T], timeout_ms: int, message: str) -> T:
    """Race ``aw`` against ``timeout_ms``; raise :class:`OperationTimeout` if the timer wins.

    The losing operation is cancelled before the error is raised, so any late
    browser result is discarded. Timeouts raised by nested races propagate
    with their own message.
    """

    timer = asyncio.timeout(max(0, timeout_ms) / 1000.0)
    try:
        async with timer:
            return await aw
    except TimeoutError:
        if timer.expired():
            raise OperationTimeout(f"{message} - {timeout_ms}ms") from None
        raise


async def sleep_ms(ms: int) -> None:
    await asyncio.sleep(max(0, ms) / 1000.0)


__all__ = ["sleep_ms", "with_timeout"]
