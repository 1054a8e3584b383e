"""Deduplicating work queue for pod reconciliation.

Keys move through three sets:

* ``_queue``      -- ready to be handed to a worker, FIFO.
* ``_processing`` -- currently held by a worker (between dequeue and done).
* ``_dirty``      -- needs a (re)run.  A key is in ``_dirty`` while it is
                     queued, and also when an enqueue arrives while it is
                     in flight; ``done()`` then puts it back in ``_queue``.

A key is never in ``_queue`` twice and never handed to two workers at the
same time.  All methods except ``dequeue`` are synchronous and must be
called from the event loop thread.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections import deque

import structlog

from kubenotify.models.pods import PodIdentity
from kubenotify.observability.metrics import queue_depth

_log = structlog.get_logger(component="controller.queue")

# 2**62 already exceeds any sane max_delay
_MAX_BACKOFF_EXPONENT = 62


class WorkQueue:
    """Async work queue with in-flight tracking, delayed adds and per-key backoff.

    Args:
        base_delay: First retry delay in seconds for ``enqueue_rate_limited``.
        max_delay:  Upper bound for the exponential retry delay.
    """

    def __init__(self, base_delay: float = 1.0, max_delay: float = 300.0) -> None:
        if base_delay <= 0 or max_delay < base_delay:
            raise ValueError("need 0 < base_delay <= max_delay")
        self._base_delay = base_delay
        self._max_delay = max_delay

        self._queue: deque[PodIdentity] = deque()
        self._dirty: set[PodIdentity] = set()
        self._processing: set[PodIdentity] = set()
        self._waiters: deque[asyncio.Future[None]] = deque()
        self._timers: dict[PodIdentity, asyncio.TimerHandle] = {}
        self._failures: dict[PodIdentity, int] = {}
        self._shutting_down = False

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def in_flight(self) -> int:
        return len(self._processing)

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def enqueue(self, key: PodIdentity) -> None:
        """Mark *key* as needing reconciliation.

        No-op if the key is already queued.  If the key is in flight it is
        flagged dirty and re-queued by ``done()``.  Ignored after shutdown.
        """
        if self._shutting_down:
            return
        if key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            return
        self._queue.append(key)
        queue_depth.set(len(self._queue))
        self._wakeup_next()

    async def dequeue(self) -> PodIdentity | None:
        """Wait for the next key.  Returns ``None`` once the queue is shut down."""
        while not self._queue:
            if self._shutting_down:
                return None
            waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            try:
                await waiter
            except BaseException:
                waiter.cancel()
                with contextlib.suppress(ValueError):
                    self._waiters.remove(waiter)
                # We were woken and then cancelled: hand the wakeup on.
                if self._queue and not waiter.cancelled():
                    self._wakeup_next()
                raise

        if self._shutting_down:
            return None

        key = self._queue.popleft()
        self._processing.add(key)
        self._dirty.discard(key)
        queue_depth.set(len(self._queue))
        return key

    def done(self, key: PodIdentity) -> None:
        """Release *key*; re-queue it if it went dirty while in flight."""
        self._processing.discard(key)
        if key in self._dirty and not self._shutting_down:
            self._queue.append(key)
            queue_depth.set(len(self._queue))
            self._wakeup_next()

    def shutdown(self) -> None:
        """Stop accepting keys and release every blocked ``dequeue()`` with ``None``."""
        if self._shutting_down:
            return
        self._shutting_down = True
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
        _log.debug(
            "work_queue_shutdown",
            abandoned=len(self._queue),
            in_flight=len(self._processing),
        )

    # ------------------------------------------------------------------
    # Delayed and rate-limited adds
    # ------------------------------------------------------------------

    def enqueue_after(self, key: PodIdentity, delay: float) -> None:
        """Enqueue *key* after *delay* seconds.

        If a delayed add for the same key is already pending, the earlier
        of the two deadlines wins.
        """
        if self._shutting_down:
            return
        if delay <= 0:
            self.enqueue(key)
            return
        loop = asyncio.get_running_loop()
        when = loop.time() + delay
        pending = self._timers.get(key)
        if pending is not None:
            if pending.when() <= when:
                return
            pending.cancel()
        self._timers[key] = loop.call_at(when, self._fire_timer, key)

    def enqueue_rate_limited(self, key: PodIdentity) -> float:
        """Enqueue *key* after an exponential per-key backoff.  Returns the delay used."""
        failures = self._failures.get(key, 0)
        self._failures[key] = failures + 1
        delay = min(self._base_delay * 2 ** min(failures, _MAX_BACKOFF_EXPONENT), self._max_delay)
        self.enqueue_after(key, delay)
        return delay

    def forget(self, key: PodIdentity) -> None:
        """Reset the backoff counter for *key*."""
        self._failures.pop(key, None)

    def num_requeues(self, key: PodIdentity) -> int:
        return self._failures.get(key, 0)

    def _fire_timer(self, key: PodIdentity) -> None:
        self._timers.pop(key, None)
        self.enqueue(key)

    def _wakeup_next(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                break
