"""Async concurrency primitives used by the asset and target fan-outs."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, TypeVar

from docexport.domain.outcome import Failure, Success

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable, Sequence

T = TypeVar("T")


class BoundedSemaphore:
    """Small wrapper over ``asyncio.Semaphore`` with usage diagnostics."""

    def __init__(self, limit: int) -> None:
        if limit <= 0:
            raise ValueError("limit must be > 0")
        self._limit = limit
        self._semaphore = asyncio.Semaphore(limit)
        self._in_use = 0

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def in_use(self) -> int:
        return self._in_use

    @property
    def available(self) -> int:
        return self._limit - self._in_use

    async def acquire(self) -> None:
        # Cancellation while waiting here does not acquire a permit.
        await self._semaphore.acquire()
        self._in_use += 1

    def release(self) -> None:
        if self._in_use <= 0:
            raise RuntimeError("release called more times than acquire")
        self._in_use -= 1
        self._semaphore.release()

    @asynccontextmanager
    async def permit(self) -> AsyncIterator[None]:
        await self.acquire()
        try:
            yield
        finally:
            self.release()


async def settle_all(
    calls: Sequence[Callable[[], Awaitable[T]]],
    *,
    max_concurrency: int | None = None,
) -> list[Success[T] | Failure]:
    """
    Run every deferred call concurrently and wait for all of them to settle.

    Each branch's ``Exception`` is captured as a ``Failure``; no branch failure
    stops a sibling from starting or completing. Results follow submission
    order. Cancellation is not captured and propagates to the caller.
    """

    semaphore = BoundedSemaphore(max_concurrency) if max_concurrency is not None else None

    async def _settle(call: Callable[[], Awaitable[T]]) -> Success[T] | Failure:
        try:
            if semaphore is None:
                return Success(await call())
            async with semaphore.permit():
                return Success(await call())
        except Exception as exc:  # noqa: BLE001 - settle-all captures every branch failure.
            return Failure(exc)

    if not calls:
        return []
    return list(await asyncio.gather(*(_settle(call) for call in calls)))


__all__ = ["BoundedSemaphore", "settle_all"]
