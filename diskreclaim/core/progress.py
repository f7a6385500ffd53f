#!/usr/bin/env python3
"""
Progress tracking and cooperative cancellation

One ProgressTracker is created per scan session and handed explicitly to
every stage. Producers (the traversal thread, hashing workers, the cleaner)
call advance(); a front end calls snapshot() from its own thread.
"""

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Phase(Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    HASHING = "hashing"
    CLEANING = "cleaning"


class CancelledError(Exception):
    """Raised by CancelToken.raise_if_cancelled()"""


class CancelToken:
    """Polled cancellation flag shared by every long-running loop"""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancelledError("Operation cancelled")


@dataclass(frozen=True)
class ProgressSnapshot:
    """Immutable point-in-time view of the tracker"""
    phase: Phase
    items_processed: int
    items_total: Optional[int]
    bytes_processed: int
    cancelled: bool
    elapsed: float = 0.0

    @property
    def fraction(self) -> Optional[float]:
        if not self.items_total:
            return None
        return min(1.0, self.items_processed / self.items_total)

    @property
    def rate(self) -> float:
        """Items per second within the current phase"""
        if self.elapsed <= 0:
            return 0.0
        return self.items_processed / self.elapsed


class ProgressTracker:
    """Thread-safe counters for the current phase"""

    def __init__(self, cancel_token: Optional[CancelToken] = None):
        self.cancel_token = cancel_token or CancelToken()
        self._lock = threading.Lock()
        self._phase = Phase.IDLE
        self._items = 0
        self._total: Optional[int] = None
        self._bytes = 0
        self._phase_start = time.monotonic()

    def _enter(self, phase: Phase) -> None:
        # Caller holds the lock
        if phase is not self._phase:
            self._phase = phase
            self._items = 0
            self._total = None
            self._bytes = 0
            self._phase_start = time.monotonic()

    def start_phase(self, phase: Phase, total: Optional[int] = None) -> None:
        """Switch phase, resetting counters even if the phase is unchanged"""
        with self._lock:
            self._phase = phase
            self._items = 0
            self._total = total
            self._bytes = 0
            self._phase_start = time.monotonic()

    def advance(self, phase: Phase, items_delta: int = 1, bytes_delta: int = 0) -> None:
        if items_delta < 0 or bytes_delta < 0:
            raise ValueError("Progress deltas must be non-negative")
        with self._lock:
            self._enter(phase)
            self._items += items_delta
            self._bytes += bytes_delta

    def set_total(self, phase: Phase, total: Optional[int]) -> None:
        if total is not None and total < 0:
            raise ValueError("Total cannot be negative")
        with self._lock:
            self._enter(phase)
            self._total = total

    def finish(self) -> None:
        """Return to IDLE once the pipeline is done"""
        with self._lock:
            self._enter(Phase.IDLE)

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            return ProgressSnapshot(
                phase=self._phase,
                items_processed=self._items,
                items_total=self._total,
                bytes_processed=self._bytes,
                cancelled=self.cancel_token.is_cancelled(),
                elapsed=time.monotonic() - self._phase_start,
            )

    def cancel(self) -> None:
        """Idempotent; running loops notice at their next check"""
        self.cancel_token.cancel()

    def is_cancelled(self) -> bool:
        return self.cancel_token.is_cancelled()
