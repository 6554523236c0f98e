#!/usr/bin/env python3
"""
Frame admission control.

Admission is a constant-time, non-blocking accept/reject decision. At most one
admitted frame is in flight; the in-flight flag clears only through
mark_complete(). Rejected frames are dropped, never queued.
"""

import logging
import time
from typing import Callable

logger = logging.getLogger(__name__)


class AdmissionController:
    """Shared in-flight bookkeeping for the admission strategies."""

    def __init__(self):
        self._in_flight = False
        self.arrived = 0
        self.admitted = 0
        self.completed = 0
        self.dropped = 0

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def try_admit(self) -> bool:
        """Decide whether the arriving frame enters the pipeline."""
        self.arrived += 1
        if self._in_flight or not self._should_admit():
            self.dropped += 1
            logger.debug("Frame %d dropped (in flight: %s)", self.arrived, self._in_flight)
            return False

        self._in_flight = True
        self.admitted += 1
        return True

    def _should_admit(self) -> bool:
        raise NotImplementedError

    def seconds_until_open(self) -> float:
        """How long a polling caller should wait before its next attempt."""
        return 0.0

    def mark_complete(self):
        """Release the in-flight slot after success or failure."""
        if not self._in_flight:
            return
        self._in_flight = False
        self.completed += 1

    def stats(self) -> dict[str, int]:
        return {
            "arrived": self.arrived,
            "admitted": self.admitted,
            "completed": self.completed,
            "dropped": self.dropped,
        }


class IntervalAdmissionController(AdmissionController):
    """
    Poll mode: admit at most once per interval, only when nothing is in flight.

    A tick that finds a frame still in flight is skipped entirely.
    """

    def __init__(self, interval_s: float = 0.3, clock: Callable[[], float] = time.monotonic):
        super().__init__()
        if interval_s <= 0:
            raise ValueError(f"interval_s must be positive, got {interval_s}")
        self.interval_s = interval_s
        self._clock = clock
        self._last_admit: float | None = None

    def _should_admit(self) -> bool:
        now = self._clock()
        if self._last_admit is not None and now - self._last_admit < self.interval_s:
            return False
        self._last_admit = now
        return True

    def seconds_until_open(self) -> float:
        if self._last_admit is None:
            return 0.0
        return max(0.0, self._last_admit + self.interval_s - self._clock())


class StrideAdmissionController(AdmissionController):
    """
    Stream mode: admit every Nth arriving frame.

    The arrival counter increases for every frame, including frames dropped
    because another one is still in flight.
    """

    def __init__(self, stride: int = 2):
        super().__init__()
        if stride < 1:
            raise ValueError(f"stride must be >= 1, got {stride}")
        self.stride = stride

    def _should_admit(self) -> bool:
        # arrived was already incremented for this frame
        return (self.arrived - 1) % self.stride == 0


def create_admission_controller(cfg: dict) -> AdmissionController:
    """Build an admission controller from the 'admission' config section."""
    mode = cfg.get("mode", "interval")
    if mode == "interval":
        return IntervalAdmissionController(interval_s=cfg.get("interval_ms", 300) / 1000.0)
    elif mode == "stride":
        return StrideAdmissionController(stride=int(cfg.get("stride", 2)))
    else:
        raise ValueError(f"Unknown admission mode: {mode}")
