"""Delivery counters."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field


# Aggregation semantics per counter across a reporting window
METRICS = {
    "total_requests": "sum",
    "errors": "sum",
}


@dataclass
class Counter:
    """
    Monotonic counter. Only ``increment`` mutates it; there is no reset.

    Thread-safe so an external reporter may read it from another thread.
    """
    name: str

    _value: int = field(default=0, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def increment(self, n: int = 1) -> None:
        if n < 1:
            raise ValueError(f"Counter {self.name} can only be incremented by n >= 1, got {n}")
        with self._lock:
            self._value += n

    @property
    def value(self) -> int:
        """Current value (for reporting only)."""
        with self._lock:
            return self._value


@dataclass
class ForwarderMetrics:
    """
    Counters observing delivery activity.

    ``errors`` is always a subset of ``total_requests``: every failed attempt
    was first counted as a request.
    """
    total_requests: Counter = field(default_factory=lambda: Counter("total_requests"))
    errors: Counter = field(default_factory=lambda: Counter("errors"))
    # Accepted events whose record has no item id
    malformed: Counter = field(default_factory=lambda: Counter("malformed"))

    def as_dict(self) -> dict[str, int]:
        return {
            "total_requests": self.total_requests.value,
            "errors": self.errors.value,
            "malformed": self.malformed.value,
        }
