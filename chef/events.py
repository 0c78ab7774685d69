"""
Observer interface for presentation layers.

The runner reports running/idle transitions and the download transport
reports byte progress. Listeners are called synchronously; a failing
listener is logged and does not disturb the emitter.
"""

from __future__ import annotations

import logging
from typing import Callable

logger = logging.getLogger(__name__)

StatusListener = Callable[[str, bool], None]
ProgressListener = Callable[[str, int, "int | None"], None]


class ChefEvents:
    """Listener registry for status-change and progress events."""

    def __init__(self) -> None:
        self._status_listeners: list[StatusListener] = []
        self._progress_listeners: list[ProgressListener] = []

    def on_status_change(self, listener: StatusListener) -> Callable[[], None]:
        """
        Subscribe to running/idle transitions, called as listener(name, is_running).

        Returns:
            A function that unsubscribes the listener
        """
        self._status_listeners.append(listener)
        return lambda: self._discard(self._status_listeners, listener)

    def on_progress(self, listener: ProgressListener) -> Callable[[], None]:
        """Subscribe to download progress, called as listener(name, loaded, total)."""
        self._progress_listeners.append(listener)
        return lambda: self._discard(self._progress_listeners, listener)

    def emit_status(self, name: str, running: bool) -> None:
        for listener in list(self._status_listeners):
            try:
                listener(name, running)
            except Exception:
                logger.exception(f"Status listener failed for {name}")

    def emit_progress(self, name: str, loaded: int, total: int | None) -> None:
        for listener in list(self._progress_listeners):
            try:
                listener(name, loaded, total)
            except Exception:
                logger.exception(f"Progress listener failed for {name}")

    def progress_callback(self, name: str) -> Callable[[int, "int | None"], None]:
        """Bind a transport progress callback to one artifact name."""
        def callback(loaded: int, total: int | None) -> None:
            self.emit_progress(name, loaded, total)
        return callback

    @staticmethod
    def _discard(listeners: list, listener) -> None:
        if listener in listeners:
            listeners.remove(listener)
