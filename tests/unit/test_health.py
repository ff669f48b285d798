"""Unit tests for the bounded readiness poller."""

from __future__ import annotations

import pytest

from macmagik_cli.bootstrap.health import ReadinessPoller, ReadinessResult
from macmagik_cli.errors import ReadinessTimeout


class TestReadinessPoller:
    """Tests for ReadinessPoller."""

    def test_ready_first_attempt(self, poller, clock):
        """A passing probe returns immediately without sleeping."""
        result = poller.wait(lambda: (True, None), target="pods[app=echo]")

        assert result.ready is True
        assert result.attempts == 1
        assert clock.sleeps == []

    def test_ready_after_retries(self, poller, clock):
        """Polling continues with backoff until the probe passes."""
        answers = iter([(False, "0/1 ready"), (False, "0/1 ready"), (True, None)])
        result = poller.wait(lambda: next(answers))

        assert result.ready is True
        assert result.attempts == 3
        assert clock.sleeps == [1, 1.5]

    def test_timeout(self, clock):
        """The poller stops at the deadline and reports the last error."""
        poller = ReadinessPoller(
            timeout_seconds=10,
            interval_seconds=2,
            backoff=2,
            max_interval_seconds=4,
            clock=clock,
            sleep=clock.sleep,
        )
        result = poller.wait(lambda: (False, "pods pending"), target="pods[app=grafana]")

        assert result.ready is False
        assert result.timed_out is True
        assert "pods pending" in result.error
        assert clock.now == pytest.approx(10)
        assert max(clock.sleeps) <= 4

    def test_probe_exception_is_soft(self, poller):
        """An exception inside the probe counts as not ready."""
        calls = []

        def probe():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("connection reset")
            return True, None

        result = poller.wait(probe)
        assert result.ready is True
        assert result.attempts == 2

    def test_on_attempt_callback(self, poller):
        """on_attempt receives the attempt number and error."""
        seen = []
        answers = iter([(False, "waiting"), (True, None)])
        poller.wait(lambda: next(answers), on_attempt=lambda n, e: seen.append((n, e)))
        assert seen == [(1, "waiting")]

    def test_with_timeout_keeps_clock(self, poller, clock):
        """with_timeout copies interval and clock."""
        copy = poller.with_timeout(5)
        assert copy.timeout_seconds == 5
        assert copy.clock is clock


class TestReadinessResult:
    """Tests for ReadinessResult."""

    def test_raise_for_timeout(self):
        """A timed-out result can be turned into ReadinessTimeout."""
        result = ReadinessResult(ready=False, target="pods[app=echo]", error="timed out")
        with pytest.raises(ReadinessTimeout, match="pods\\[app=echo\\] not ready"):
            result.raise_for_timeout()

    def test_ready_does_not_raise(self):
        ReadinessResult(ready=True).raise_for_timeout()
