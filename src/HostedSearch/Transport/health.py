"""Short-term host reachability tracking.

A host that just failed is skipped for a cool-down window so that subsequent
requests go straight to a healthier fallback. After the window elapses the
host becomes eligible again. Status is kept per client instance.

Times are monotonic (``time.monotonic()``) to avoid wall clock drift.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

__all__ = ["HostStatus", "HostHealthTracker"]


@dataclass(frozen=True)
class HostStatus:
    """Last observed state of one host."""

    is_up: bool
    last_update: float


class HostHealthTracker:
    """Thread-safe map of host -> last observed status.

    Typical usage (dispatcher):
        tracker = HostHealthTracker()
        if tracker.is_eligible(host, cool_down_ms=5000):
            try:
                ...  # send request
                tracker.record_success(host)
            except TransportError:
                tracker.record_failure(host)
    """

    def __init__(self, *, now_monotonic: Callable[[], float] = time.monotonic) -> None:
        self._now = now_monotonic
        self._statuses: Dict[str, HostStatus] = {}
        self._lock = threading.Lock()

    def record_success(self, host: str) -> None:
        with self._lock:
            self._statuses[host] = HostStatus(is_up=True, last_update=self._now())

    def record_failure(self, host: str) -> None:
        with self._lock:
            self._statuses[host] = HostStatus(is_up=False, last_update=self._now())

    def is_eligible(self, host: str, cool_down_ms: float) -> bool:
        """Return True if ``host`` may be tried now.

        A host is eligible when it was never observed, was last seen up, or
        was marked down at least ``cool_down_ms`` ago.
        """
        with self._lock:
            status = self._statuses.get(host)
            if status is None or status.is_up:
                return True
            return (self._now() - status.last_update) * 1000.0 >= cool_down_ms

    def status(self, host: str) -> Optional[HostStatus]:
        with self._lock:
            return self._statuses.get(host)

    def snapshot(self) -> Dict[str, HostStatus]:
        with self._lock:
            return dict(self._statuses)

    def reset(self) -> None:
        """Forget all observations (tests, or after reconfiguring hosts)."""
        with self._lock:
            self._statuses.clear()
