"""
Per-artifact phase tracking for update runs.

Presentation layers register callbacks to render rows as artifacts move
through checking, installing and their final state.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable

# Phase names, in the order an artifact normally passes through them
PENDING = "pending"
CHECKING = "checking"
UP_TO_DATE = "up_to_date"
NEEDS_UPDATE = "needs_update"
INSTALLING = "installing"
INSTALLED = "installed"
FAILED = "failed"
SKIPPED = "skipped"
ERROR = "error"
CANCELLED = "cancelled"

PHASES = (
    PENDING, CHECKING, UP_TO_DATE, NEEDS_UPDATE, INSTALLING,
    INSTALLED, FAILED, SKIPPED, ERROR, CANCELLED,
)


@dataclass
class ProgressTracker:
    """
    Progress tracking for update runs.

    All access happens on the event loop thread, so no locking is needed.

    Attributes:
        _progress: Progress state for each artifact
        _callbacks: Callbacks to invoke on progress updates
    """
    _progress: dict[str, dict] = field(default_factory=dict)
    _callbacks: list[Callable[[str, str, str], None]] = field(default_factory=list)

    def register_callback(self, callback: Callable[[str, str, str], None]) -> None:
        """Register a callback for progress updates."""
        self._callbacks.append(callback)

    def update(self, name: str, status: str, message: str = "") -> None:
        """
        Update progress for an artifact.

        Args:
            name: Artifact name
            status: One of PHASES
            message: Optional status message
        """
        if status not in PHASES:
            raise ValueError(f"Unknown progress status: {status}")

        self._progress[name] = {
            "status": status,
            "message": message,
            "timestamp": time.time(),
        }
        for callback in self._callbacks:
            callback(name, status, message)

    def get_progress(self, name: str) -> dict | None:
        return self._progress.get(name)

    def get_all_progress(self) -> dict[str, dict]:
        return self._progress.copy()

    def get_summary(self) -> dict[str, int]:
        """Get summary counts by status."""
        summary = {phase: 0 for phase in PHASES}
        for progress in self._progress.values():
            status = progress.get("status", PENDING)
            summary[status] = summary.get(status, 0) + 1
        return summary
