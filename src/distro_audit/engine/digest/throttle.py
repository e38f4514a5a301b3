"""Self-imposed load throttling for expensive verification checks.

After each digest check the verifier sleeps for half of the time the check
took, never more than a configured ceiling.  Clock and sleeper are injected
so the policy can be exercised without real delays.
"""
from __future__ import annotations

import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_CAP_SECONDS: float = 5 * 60.0


class Throttle:
    """Sleeps ``min(elapsed / 2, cap)`` after each measured block."""

    def __init__(
        self,
        cap_seconds: float = DEFAULT_CAP_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleeper: Callable[[float], None] = time.sleep,
    ) -> None:
        if cap_seconds < 0:
            raise ValueError(f"cap_seconds must be non-negative, got {cap_seconds}")
        self.cap_seconds = cap_seconds
        self._clock = clock
        self._sleep = sleeper
        self.total_slept: float = 0.0

    @staticmethod
    def delay_for(elapsed: float, cap_seconds: float) -> float:
        """Induced delay for a check that took *elapsed* seconds."""
        return max(0.0, min(elapsed / 2.0, cap_seconds))

    def pause(self, elapsed: float) -> float:
        delay = self.delay_for(elapsed, self.cap_seconds)
        if delay > 0:
            self._sleep(delay)
            self.total_slept += delay
        return delay

    @contextmanager
    def measured(self) -> Iterator[None]:
        """Time the enclosed block, then pause proportionally.

        No pause follows a block that raised.
        """
        started = self._clock()
        yield
        self.pause(self._clock() - started)


class NoThrottle(Throttle):
    """Throttle that never sleeps (dry runs, tests)."""

    def __init__(self) -> None:
        super().__init__(cap_seconds=0.0)
