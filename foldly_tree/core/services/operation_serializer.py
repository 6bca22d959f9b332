from __future__ import annotations

"""Mutual-exclusion gate plus FIFO queue for tree mutations.

Each handler suspends while it awaits the Persistence Gateway. Without a gate,
a second handler could read the store during that gap, compute its change
from stale child lists and corrupt the tree. The serializer runs whole handler
bodies, awaited gap included, one at a time and in submission order.

Design principles
-----------------
- One instance per logical tree; instances never share state.
- The gate is handed directly from the finishing operation to the next queued
  one, so a newcomer can never overtake a queued operation.
- A failing operation only fails its own caller; later operations still run.
- No cancellation: admitted operations run to completion.
"""

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, Deque, TypeVar

__all__ = ["OperationSerializer"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OperationSerializer:
    """Run submitted coroutine factories strictly one at a time, FIFO.

    Examples
    --------
    >>> serializer = OperationSerializer("workspace")
    >>> await serializer.submit(lambda: handler(request))  # doctest: +SKIP
    """

    def __init__(self, name: str = "tree") -> None:
        self._name = name
        self._active = False
        self._queue: Deque[asyncio.Future] = deque()
        self._completed = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_busy(self) -> bool:
        return self._active

    @property
    def pending(self) -> int:
        """Number of submitted operations waiting for the gate."""
        return sum(1 for ticket in self._queue if not ticket.done())

    @property
    def completed(self) -> int:
        return self._completed

    async def submit(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run *operation* once every earlier submission has finished.

        Parameters
        ----------
        operation
            Zero-argument callable returning an awaitable. It is not called
            until the gate is held, so it always reads the latest store state.

        Returns
        -------
        The operation's own result. Its exception, if any, propagates to this
        caller only.
        """
        if self._active:
            ticket = asyncio.get_running_loop().create_future()
            self._queue.append(ticket)
            logger.debug("Serializer[%s]: operation queued (pending=%d)", self._name, self.pending)
            try:
                await ticket
            except asyncio.CancelledError:
                # The gate may already have been handed to us; pass it on.
                if ticket.done() and not ticket.cancelled():
                    self._release()
                raise
        else:
            self._active = True

        try:
            return await operation()
        except Exception:
            logger.debug("Serializer[%s]: operation failed", self._name, exc_info=True)
            raise
        finally:
            self._completed += 1
            self._release()

    def _release(self) -> None:
        """Hand the gate to the next live waiter, or open it."""
        while self._queue:
            ticket = self._queue.popleft()
            if not ticket.done():
                ticket.set_result(None)
                return
        self._active = False
