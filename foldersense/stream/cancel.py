"""Cooperative cancellation for in-flight chat requests."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from .errors import Canceled

T = TypeVar("T")


class CancellationToken:
    """
    One-shot cancellation signal shared between a caller and the transport.

    Cancelling twice, or after the request finished, is a no-op.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise Canceled()


async def race(
    awaitable: Awaitable[T],
    token: CancellationToken | None,
    timeout: float | None = None,
) -> T:
    """
    Await ``awaitable`` unless the token fires or the timeout elapses first.

    Raises:
        Canceled: token fired first (the awaitable is cancelled)
        asyncio.TimeoutError: timeout elapsed first (the awaitable is cancelled)
    """
    task = asyncio.ensure_future(awaitable)
    if token is None:
        return await asyncio.wait_for(task, timeout)
    if token.cancelled:
        task.cancel()
        raise Canceled()

    waiter = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait(
            {task, waiter}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task in done:
        return task.result()
    task.cancel()
    if waiter in done:
        raise Canceled()
    raise asyncio.TimeoutError()


__all__ = ["CancellationToken", "race"]
