"""
Tests for progress tracking, event listeners and cancellation tokens.
"""

import asyncio
import logging

import pytest

from chef.cancellation import CancellationToken
from chef.errors import Cancelled
from chef.events import ChefEvents
from chef.progress import CHECKING, INSTALLED, PHASES, ProgressTracker


class TestProgressTracker:
    """Test progress tracking functionality."""

    def test_update_and_get(self):
        """Test updating and reading progress."""
        tracker = ProgressTracker()
        tracker.update("ripgrep", CHECKING, "looking up")

        progress = tracker.get_progress("ripgrep")
        assert progress["status"] == CHECKING
        assert progress["message"] == "looking up"
        assert "timestamp" in progress

    def test_unknown_status_rejected(self):
        """Test statuses outside PHASES are rejected."""
        with pytest.raises(ValueError, match="Unknown progress status"):
            ProgressTracker().update("ripgrep", "exploded")

    def test_callbacks(self):
        """Test callbacks receive every update."""
        tracker = ProgressTracker()
        seen = []
        tracker.register_callback(lambda name, status, message: seen.append((name, status, message)))

        tracker.update("a", CHECKING)
        tracker.update("a", INSTALLED, "1.0")

        assert seen == [("a", CHECKING, ""), ("a", INSTALLED, "1.0")]

    def test_summary_counts_every_phase(self):
        """Test the summary has all phases, zero-filled."""
        tracker = ProgressTracker()
        tracker.update("a", INSTALLED)
        tracker.update("b", INSTALLED)
        tracker.update("c", CHECKING)

        summary = tracker.get_summary()

        assert set(summary) == set(PHASES)
        assert summary[INSTALLED] == 2
        assert summary[CHECKING] == 1
        assert sum(summary.values()) == 3

    def test_get_all_progress_is_copy(self):
        tracker = ProgressTracker()
        tracker.update("a", CHECKING)
        snapshot = tracker.get_all_progress()
        snapshot.clear()
        assert tracker.get_progress("a") is not None


class TestChefEvents:
    """Test status and progress listeners."""

    def test_status_listeners_and_unsubscribe(self):
        events = ChefEvents()
        seen = []
        unsubscribe = events.on_status_change(lambda name, running: seen.append((name, running)))

        events.emit_status("a", True)
        unsubscribe()
        events.emit_status("a", False)

        assert seen == [("a", True)]

    def test_failing_listener_isolated(self, caplog):
        """Test one failing listener does not stop the others."""
        events = ChefEvents()
        seen = []

        def broken(name, loaded, total):
            raise RuntimeError("boom")

        events.on_progress(broken)
        events.on_progress(lambda name, loaded, total: seen.append(loaded))

        with caplog.at_level(logging.ERROR, logger="chef"):
            events.progress_callback("a")(10, None)

        assert seen == [10]
        assert "Progress listener failed for a" in caplog.text


class TestCancellationToken:
    """Test cooperative cancellation."""

    def test_cancel_runs_callbacks_once(self):
        token = CancellationToken()
        calls = []
        token.add_callback(lambda: calls.append(1))

        token.cancel("stop")
        token.cancel("again")

        assert token.cancelled
        assert token.reason == "stop"
        assert calls == [1]

    def test_unregistered_callback_not_called(self):
        token = CancellationToken()
        calls = []
        remove = token.add_callback(lambda: calls.append(1))
        remove()
        token.cancel()
        assert calls == []

    def test_callback_after_cancel_runs_immediately(self):
        token = CancellationToken()
        token.cancel()
        calls = []
        token.add_callback(lambda: calls.append(1))
        assert calls == [1]

    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel("user interrupt")
        with pytest.raises(Cancelled, match="user interrupt"):
            token.raise_if_cancelled()

    @pytest.mark.asyncio
    async def test_wait(self):
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.05, token.cancel)
        await asyncio.wait_for(token.wait(), timeout=5)
        assert token.cancelled

    @pytest.mark.asyncio
    async def test_wait_abandoned_by_timeout_unregisters(self):
        """Test a waiter whose task is cancelled is dropped from the token."""
        token = CancellationToken()
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(token.wait(), timeout=0.05)
        assert token._waiters == []
        token.cancel()
        assert token.cancelled
