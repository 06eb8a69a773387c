"""Single-flight coordination of credential refreshes.

One request at a time may own the refresh lock. Everyone else waits on a
FIFO queue of futures and is woken, in arrival order, when the owner
releases. A generation counter advances on every successful refresh (or
sign-in) so a request can tell whether its credentials were renewed while it
was in flight. A failed refresh is remembered so late 401s from the same
storm do not start another one.
"""

from __future__ import annotations

import asyncio
from collections import deque
from contextlib import suppress

from instrukt_ai_logging import get_logger

logger = get_logger(__name__)


class RefreshCoordinator:
    """Refresh lock with explicit FIFO waiters. Process-lifetime only."""

    def __init__(self) -> None:
        self._locked = False
        self._waiters: deque[asyncio.Future[None]] = deque()
        self.generation = 0
        self.failed_generation: int | None = None

    @property
    def locked(self) -> bool:
        return self._locked

    @property
    def waiting(self) -> int:
        return sum(1 for fut in self._waiters if not fut.done())

    def try_acquire(self) -> bool:
        """Take the lock if it is free. Never blocks."""
        if self._locked:
            return False
        self._locked = True
        logger.debug("Refresh lock acquired (generation=%d)", self.generation)
        return True

    def release(self, *, refreshed: bool) -> None:
        """Free the lock and wake every waiter in arrival order.

        Args:
            refreshed: True when the refresh succeeded (advances the generation)
        """
        if not self._locked:
            raise RuntimeError("RefreshCoordinator released while not locked")
        if refreshed:
            self.generation += 1
        else:
            self.failed_generation = self.generation
        woken = self._unlock()
        logger.debug("Refresh lock released (refreshed=%s, woke %d waiters)", refreshed, woken)

    def abandon(self) -> None:
        """Free the lock without an outcome (the refresh was cancelled).

        Neither the generation nor the failure marker changes, so the first
        woken waiter still sees an unrefreshed storm and takes the refresh over.
        """
        if not self._locked:
            raise RuntimeError("RefreshCoordinator abandoned while not locked")
        woken = self._unlock()
        logger.debug("Refresh abandoned, woke %d waiters", woken)

    def _unlock(self) -> int:
        self._locked = False
        woken = 0
        while self._waiters:
            fut = self._waiters.popleft()
            if not fut.done():
                fut.set_result(None)
                woken += 1
        return woken

    def mark_renewed(self) -> None:
        """Record credentials renewed outside a refresh (e.g. a fresh sign-in)."""
        self.generation += 1

    def failed_at(self, generation: int) -> bool:
        """True when the refresh for `generation` already ran and failed."""
        return self.failed_generation == generation

    async def wait_until_free(self) -> None:
        """Suspend until no refresh is in progress. Does not take the lock."""
        if not self._locked:
            return
        fut: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        try:
            await fut
        except asyncio.CancelledError:
            with suppress(ValueError):
                self._waiters.remove(fut)
            raise
