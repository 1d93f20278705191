# MIT License
# Copyright (c) 2025 Hashborn

"""
Clock sources for the reward engine.

The engine only ever reads the clock; it never sleeps or waits on it.
"""
import time
import threading


class SystemClock:
    """Wall clock in whole unix seconds."""

    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """
    Clock advanced explicitly by the host.

    Used by tests and by hosts that drive the engine from an external
    timeline (block timestamps, replayed logs).
    """

    def __init__(self, start: int = 0):
        self._now = start
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            return self._now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError(f"Cannot move clock backwards by {seconds}s")
        with self._lock:
            self._now += seconds
            return self._now

    def set(self, timestamp: int) -> int:
        with self._lock:
            if timestamp < self._now:
                raise ValueError(f"Cannot move clock backwards: {timestamp} < {self._now}")
            self._now = timestamp
            return self._now
