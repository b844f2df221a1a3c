"""
Work queue of object keys with per-key exclusion.

Semantics:
  - a key is queued at most once at a time
  - a key handed to a worker is not handed out again until ``done``;
    if it was re-added meanwhile it is queued again on ``done``
  - ``add_after`` delays a key; a key has at most one pending deadline,
    the earliest requested
  - ``add_rate_limited`` delays a key with per-key exponential backoff,
    reset by ``forget``
"""

from __future__ import annotations

import heapq
import itertools
import threading
import time
from collections import deque
from typing import Callable

__all__ = ["WorkQueue"]


class WorkQueue:

    def __init__(
        self,
        base_delay: float = 0.005,
        max_delay: float = 1000.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._clock = clock
        self._cond = threading.Condition()
        self._queue: deque[str] = deque()
        self._dirty: set[str] = set()        # queued or waiting to be re-queued
        self._processing: set[str] = set()
        self._waiting: list[tuple[float, int, str]] = []  # (ready_at, seq, key)
        self._ready_at: dict[str, float] = {}  # one waiting entry per key
        self._seq = itertools.count()
        self._failures: dict[str, int] = {}
        self._shutting_down = False

    # ------------------------------------------------------------------
    # Producers
    # ------------------------------------------------------------------

    def add(self, key: str) -> None:
        with self._cond:
            self._add_locked(key)

    def _add_locked(self, key: str) -> None:
        if self._shutting_down or key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            return
        self._queue.append(key)
        self._cond.notify()

    def add_after(self, key: str, delay: float) -> None:
        if delay <= 0:
            self.add(key)
            return
        with self._cond:
            if self._shutting_down:
                return
            ready_at = self._clock() + delay
            current = self._ready_at.get(key)
            if current is not None:
                if current <= ready_at:
                    return
                self._waiting = [entry for entry in self._waiting if entry[2] != key]
                heapq.heapify(self._waiting)
            self._ready_at[key] = ready_at
            heapq.heappush(self._waiting, (ready_at, next(self._seq), key))
            self._cond.notify()

    def add_rate_limited(self, key: str) -> float:
        """Re-queue *key* after its backoff delay; return the delay used."""
        with self._cond:
            failures = self._failures.get(key, 0)
            self._failures[key] = failures + 1
        delay = min(self.base_delay * (2 ** failures), self.max_delay)
        self.add_after(key, delay)
        return delay

    def forget(self, key: str) -> None:
        with self._cond:
            self._failures.pop(key, None)

    def num_requeues(self, key: str) -> int:
        with self._cond:
            return self._failures.get(key, 0)

    # ------------------------------------------------------------------
    # Consumers
    # ------------------------------------------------------------------

    def _promote_ready_locked(self) -> float | None:
        """Move due delayed keys to the queue; return seconds to the next one."""
        now = self._clock()
        while self._waiting and self._waiting[0][0] <= now:
            _, _, key = heapq.heappop(self._waiting)
            self._ready_at.pop(key, None)
            self._add_locked(key)
        if self._waiting:
            return max(self._waiting[0][0] - now, 0.0)
        return None

    def get(self, timeout: float | None = None) -> str | None:
        """Block until a key is available. Returns None on shutdown or timeout."""
        deadline = None if timeout is None else self._clock() + timeout
        with self._cond:
            while True:
                wait = self._promote_ready_locked()
                if self._shutting_down:
                    return None
                if self._queue:
                    key = self._queue.popleft()
                    self._dirty.discard(key)
                    self._processing.add(key)
                    return key
                if deadline is not None:
                    remaining = deadline - self._clock()
                    if remaining <= 0:
                        return None
                    wait = remaining if wait is None else min(wait, remaining)
                self._cond.wait(wait)

    def done(self, key: str) -> None:
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty:
                self._queue.append(key)
                self._cond.notify()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def shut_down(self) -> None:
        with self._cond:
            self._shutting_down = True
            self._cond.notify_all()

    @property
    def shutting_down(self) -> bool:
        with self._cond:
            return self._shutting_down

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)
