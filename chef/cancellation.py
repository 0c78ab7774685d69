"""
Cooperative cancellation.

A single token threads through an update or install call. Code checks it at
phase boundaries; callbacks let in-flight provider requests react at once.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from .errors import Cancelled

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cancellation signal shared between a caller and the work it started."""

    def __init__(self) -> None:
        self._cancelled = False
        self._reason = "Operation cancelled"
        self._callbacks: list[Callable[[], None]] = []
        self._waiters: list[asyncio.Future] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        """Fire the token. Later calls are no-ops."""
        if self._cancelled:
            return
        self._cancelled = True
        if reason:
            self._reason = reason

        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Cancellation callback failed")

        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        Run callback when the token fires.

        If the token already fired the callback runs immediately.

        Returns:
            A function that unregisters the callback
        """
        if self._cancelled:
            callback()
            return lambda: None

        self._callbacks.append(callback)

        def remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return remove

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise Cancelled(self._reason)

    async def wait(self) -> None:
        """Block until the token fires."""
        if self._cancelled:
            return
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        finally:
            if waiter in self._waiters:
                self._waiters.remove(waiter)
