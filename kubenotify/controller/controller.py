"""Crash controller: pod events in, reconciliation workers out.

The controller is the pod watcher's event handler.  Every add, update,
delete and resync enqueues the pod's identity; ``worker_count`` worker
tasks pull keys from the WorkQueue and run the Reconciler.  Errors are
contained per key: a failed pass is re-queued with exponential backoff up
to ``max_retries`` times (0 = forever), then dropped until the next watch
event or resync brings the pod back.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

import structlog

from kubenotify.controller.queue import WorkQueue
from kubenotify.controller.reconciler import PodFetchError, Reconciler
from kubenotify.models.pods import PodIdentity
from kubenotify.observability.metrics import (
    reconcile_duration_seconds,
    reconcile_errors_total,
    reconciliations_total,
)

_log = structlog.get_logger(component="controller")


class CrashController:
    """Owns the work queue and the reconciliation worker tasks."""

    def __init__(
        self,
        reconciler: Reconciler,
        queue: WorkQueue,
        worker_count: int = 1,
        max_retries: int = 5,
    ) -> None:
        if worker_count < 1:
            raise ValueError("worker_count must be >= 1")
        self._reconciler = reconciler
        self._queue = queue
        self._worker_count = worker_count
        self._max_retries = max_retries
        self._workers: list[asyncio.Task[None]] = []

    @property
    def queue(self) -> WorkQueue:
        return self._queue

    @property
    def worker_count(self) -> int:
        return self._worker_count

    @property
    def running(self) -> bool:
        return any(not w.done() for w in self._workers)

    # ------------------------------------------------------------------
    # Pod event handlers
    # ------------------------------------------------------------------

    def on_add(self, pod: dict[str, Any]) -> None:
        self._enqueue_object(pod)

    def on_update(self, old: dict[str, Any], new: dict[str, Any]) -> None:
        self._enqueue_object(new)

    def on_delete(self, pod: dict[str, Any]) -> None:
        self._enqueue_object(pod)

    def _enqueue_object(self, pod: dict[str, Any]) -> None:
        try:
            key = PodIdentity.from_object(pod)
        except (ValueError, AttributeError) as exc:
            _log.warning("pod_event_without_identity", error=str(exc))
            return
        self._queue.enqueue(key)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Spawn the worker tasks."""
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"reconcile-worker-{i}") for i in range(self._worker_count)
        ]
        _log.info("controller_started", workers=self._worker_count)

    async def stop(self) -> None:
        """Shut the queue down and wait for in-flight reconciliations to finish."""
        self._queue.shutdown()
        if self._workers:
            await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        _log.info("controller_stopped")

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    async def _worker(self, worker_id: int) -> None:
        while True:
            key = await self._queue.dequeue()
            if key is None:
                return
            try:
                await self.process(key, worker_id)
            finally:
                self._queue.done(key)

    async def process(self, key: PodIdentity, worker_id: int = 0) -> None:
        """Reconcile one key and apply the retry policy to its result."""
        started = time.monotonic()
        try:
            outcome = await self._reconciler.reconcile(key)
        except PodFetchError as exc:
            self._handle_error(key, exc, worker_id)
            return
        except Exception as exc:  # noqa: BLE001
            _log.error("reconcile_unexpected_error", namespace=key.namespace, pod=key.name, exc_info=True)
            self._handle_error(key, exc, worker_id)
            return
        finally:
            reconcile_duration_seconds.observe(time.monotonic() - started)

        self._queue.forget(key)
        reconciliations_total.labels(outcome=outcome.value).inc()
        _log.debug("pod_reconciled", namespace=key.namespace, pod=key.name, outcome=outcome.value, worker=worker_id)

    def _handle_error(self, key: PodIdentity, exc: Exception, worker_id: int) -> None:
        reconcile_errors_total.inc()
        retries = self._queue.num_requeues(key)
        if self._max_retries == 0 or retries < self._max_retries:
            delay = self._queue.enqueue_rate_limited(key)
            _log.warning(
                "reconcile_failed_retrying",
                namespace=key.namespace,
                pod=key.name,
                error=str(exc),
                retry=retries + 1,
                retry_in=delay,
                worker=worker_id,
            )
            return

        self._queue.forget(key)
        _log.error(
            "reconcile_failed_dropping_key",
            namespace=key.namespace,
            pod=key.name,
            error=str(exc),
            retries=retries,
        )
