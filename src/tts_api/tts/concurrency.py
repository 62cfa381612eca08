"""
Synthesis Slot Limiter.

Bounds how many open_jtalk processes run at once. Route handlers run on
FastAPI's worker threads, so the limiter is a lock-protected counter with a
condition variable.

Backpressure Strategy:
    1. If a slot is free: take it immediately
    2. If the wait queue has room: wait up to ``timeout`` for a slot
    3. If the wait queue is full: reject immediately

Both rejections raise BusyError (HTTP 503). Quota already charged for the
request is not refunded.

Usage:
    controller = ConcurrencyController(max_concurrent=4, max_queue=16)

    with controller.acquire_sync(timeout=30.0):
        wav = engine.generate(text)
"""
from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from tts_api.core.errors import BusyError
from tts_api.core.logging import debug, get_logger, warn
from tts_api.core.metrics import metrics

_LOG = get_logger("tts-api.concurrency")


@dataclass
class ConcurrencyStats:
    max_concurrent: int
    current_active: int
    current_waiting: int
    total_processed: int
    total_rejected: int


class ConcurrencyController:
    """Counting limiter with a bounded wait queue."""

    def __init__(self, max_concurrent: int = 4, max_queue: int = 16):
        self.max_concurrent = max_concurrent
        self.max_queue = max_queue

        self._lock = threading.Lock()
        self._condition = threading.Condition(self._lock)

        self._active = 0
        self._waiting = 0
        self._total_processed = 0
        self._total_rejected = 0

    @property
    def active_count(self) -> int:
        with self._lock:
            return self._active

    @property
    def queue_depth(self) -> int:
        with self._lock:
            return self._waiting

    def stats(self) -> ConcurrencyStats:
        with self._lock:
            return ConcurrencyStats(
                max_concurrent=self.max_concurrent,
                current_active=self._active,
                current_waiting=self._waiting,
                total_processed=self._total_processed,
                total_rejected=self._total_rejected,
            )

    def release(self) -> None:
        """Release a slot and wake one waiter."""
        with self._condition:
            self._active = max(0, self._active - 1)
            self._total_processed += 1
            active = self._active
            self._condition.notify()
        metrics.set_slots_active(active)

    @contextmanager
    def acquire_sync(self, timeout: float = 30.0) -> Iterator[None]:
        """
        Hold a slot for the duration of the block.

        Raises:
            BusyError: The wait queue is full, or no slot freed up within
                ``timeout`` seconds.
        """
        deadline = time.monotonic() + timeout
        with self._condition:
            if self._active >= self.max_concurrent:
                if self._waiting >= self.max_queue:
                    self._total_rejected += 1
                    warn(_LOG, "queue_full", waiting=self._waiting, max_queue=self.max_queue)
                    raise BusyError(
                        "Server busy, try again later",
                        {"reason": "queue_full", "waiting": self._waiting},
                    )

                self._waiting += 1
                try:
                    while self._active >= self.max_concurrent:
                        remaining = deadline - time.monotonic()
                        if remaining <= 0:
                            self._total_rejected += 1
                            warn(_LOG, "slot_timeout", timeout_s=timeout)
                            raise BusyError(
                                "Server busy, try again later",
                                {"reason": "timeout", "timeout_s": timeout},
                            )
                        self._condition.wait(timeout=remaining)
                finally:
                    self._waiting -= 1

            self._active += 1
            active = self._active

        metrics.set_slots_active(active)
        debug(_LOG, "slot_acquired", active=active)
        try:
            yield
        finally:
            self.release()
