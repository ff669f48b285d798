"""Bounded readiness polling.

Waits on external convergence ("pods matching selector report Ready") by
polling a probe callable with backoff until it succeeds or the deadline
passes. Clock and sleep are injectable so tests run without real delays.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from ..errors import ReadinessTimeout

# A probe returns (ready, error-message-or-None)
Probe = Callable[[], tuple[bool, str | None]]


@dataclass
class ReadinessResult:
    """Result of a bounded wait. ``ready=False`` means TimedOut."""

    ready: bool
    target: str = ""
    attempts: int = 0
    elapsed_seconds: float = 0.0
    error: str | None = None

    @property
    def timed_out(self) -> bool:
        return not self.ready

    def raise_for_timeout(self) -> None:
        """Raise ReadinessTimeout for callers that want an exception."""
        if not self.ready:
            raise ReadinessTimeout(
                f"{self.target or 'workload'} not ready after {self.elapsed_seconds:.0f}s: "
                f"{self.error or 'unknown'}",
                step=f"wait:{self.target}",
            )


class ReadinessPoller:
    """Poll a readiness probe until it passes or the timeout elapses."""

    def __init__(
        self,
        timeout_seconds: float = 300.0,
        interval_seconds: float = 2.0,
        backoff: float = 1.5,
        max_interval_seconds: float = 15.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize readiness poller.

        Args:
            timeout_seconds: Overall deadline.
            interval_seconds: Delay before the second attempt.
            backoff: Multiplier applied to the delay after each attempt.
            max_interval_seconds: Upper bound on the delay.
            clock: Monotonic clock.
            sleep: Sleep function.
        """
        self.timeout_seconds = timeout_seconds
        self.interval_seconds = interval_seconds
        self.backoff = backoff
        self.max_interval_seconds = max_interval_seconds
        self.clock = clock
        self.sleep = sleep

    def with_timeout(self, timeout_seconds: float) -> ReadinessPoller:
        """Copy of this poller with a different deadline."""
        return ReadinessPoller(
            timeout_seconds=timeout_seconds,
            interval_seconds=self.interval_seconds,
            backoff=self.backoff,
            max_interval_seconds=self.max_interval_seconds,
            clock=self.clock,
            sleep=self.sleep,
        )

    def remaining(self, start: float) -> float:
        return max(0.0, self.timeout_seconds - (self.clock() - start))

    def wait(
        self,
        probe: Probe,
        target: str = "",
        on_attempt: Callable[[int, str | None], None] | None = None,
    ) -> ReadinessResult:
        """Poll ``probe`` until it reports ready or the deadline passes.

        Args:
            probe: Callable returning (ready, error).
            target: Name used in the result and error messages.
            on_attempt: Optional callback called with (attempt, error)
                       for progress reporting.

        Returns:
            ReadinessResult; never raises on timeout.
        """
        start = self.clock()
        delay = self.interval_seconds
        attempt = 0
        last_error: str | None = None

        while True:
            attempt += 1
            try:
                ready, last_error = probe()
            except Exception as e:
                ready, last_error = False, str(e)

            if ready:
                return ReadinessResult(
                    ready=True,
                    target=target,
                    attempts=attempt,
                    elapsed_seconds=self.clock() - start,
                )

            if on_attempt:
                on_attempt(attempt, last_error)

            remaining = self.remaining(start)
            if remaining <= 0:
                break
            self.sleep(min(delay, remaining))
            delay = min(delay * self.backoff, self.max_interval_seconds)

        return ReadinessResult(
            ready=False,
            target=target,
            attempts=attempt,
            elapsed_seconds=self.clock() - start,
            error=f"Timed out after {self.timeout_seconds:.0f}s. Last error: {last_error}",
        )
