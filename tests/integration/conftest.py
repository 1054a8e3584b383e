"""Shared fixtures for kubenotify integration tests.

Wires the real WorkQueue, CrashController, Reconciler and MuteCache
together with an in-memory pod source, a recording notification channel
and a controllable clock, so the full event -> reconcile -> notify path
runs without a Kubernetes cluster or a chat backend.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from kubenotify.controller import CrashClassifier, CrashController, MuteCache, PodFetchError, Reconciler, WorkQueue
from kubenotify.models.alerts import AlertMessage, ReconcileOutcome
from kubenotify.models.pods import PodIdentity
from kubenotify.notifications import AlertMessageBuilder

T0 = datetime(2026, 10, 18, 12, 0, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Pod factory
# ---------------------------------------------------------------------------


def make_pod(
    name: str = "api",
    namespace: str = "default",
    crashing: bool = True,
    containers: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Raw pod object as the watcher stores it (camelCase API JSON)."""
    if containers is None:
        state = {"waiting": {"reason": "CrashLoopBackOff"}} if crashing else {"running": {}}
        containers = [{"name": "app", "restartCount": 4 if crashing else 0, "state": state}]
    return {
        "metadata": {"namespace": namespace, "name": name},
        "status": {"phase": "Running", "containerStatuses": containers},
    }


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FakeClock:
    """Wall clock that only moves when told to."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakePodSource:
    """In-memory pod store.  ``failures`` makes the next N reads raise PodFetchError."""

    def __init__(self) -> None:
        self.pods: dict[PodIdentity, dict[str, Any]] = {}
        self.failures = 0
        self.reads = 0
        self.delay = 0.0

    def put(self, pod: dict[str, Any]) -> PodIdentity:
        key = PodIdentity.from_object(pod)
        self.pods[key] = pod
        return key

    def remove(self, key: PodIdentity) -> None:
        self.pods.pop(key, None)

    async def get_pod(self, namespace: str, name: str) -> dict[str, Any] | None:
        self.reads += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures > 0:
            self.failures -= 1
            raise PodFetchError("api server unavailable")
        return self.pods.get(PodIdentity(namespace, name))


class RecordingChannel:
    """Notification channel that records messages.  ``fail_next`` rejects the next N sends."""

    channel_name = "recording"

    def __init__(self) -> None:
        self.sent: list[AlertMessage] = []
        self.attempts = 0
        self.fail_next = 0

    async def send(self, message: AlertMessage) -> bool:
        self.attempts += 1
        if self.fail_next > 0:
            self.fail_next -= 1
            return False
        self.sent.append(message)
        return True


class RecordingReconciler(Reconciler):
    """Reconciler that records each outcome and tracks per-key concurrency."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.outcomes: list[tuple[PodIdentity, ReconcileOutcome]] = []
        self.active: set[PodIdentity] = set()
        self.overlaps = 0
        self.max_active = 0

    async def reconcile(self, key: PodIdentity) -> ReconcileOutcome:
        if key in self.active:
            self.overlaps += 1
        self.active.add(key)
        self.max_active = max(self.max_active, len(self.active))
        try:
            outcome = await super().reconcile(key)
        finally:
            self.active.discard(key)
        self.outcomes.append((key, outcome))
        return outcome

    def outcomes_for(self, key: PodIdentity) -> list[ReconcileOutcome]:
        return [outcome for k, outcome in self.outcomes if k == key]


class Pipeline:
    """A wired controller plus handles on all its collaborators."""

    def __init__(
        self,
        worker_count: int = 1,
        max_retries: int = 5,
        mute_seconds: float = 600,
    ) -> None:
        self.clock = FakeClock()
        self.source = FakePodSource()
        self.channel = RecordingChannel()
        self.mute = MuteCache(window=timedelta(seconds=mute_seconds), clock=self.clock)
        self.reconciler = RecordingReconciler(
            source=self.source,
            classifier=CrashClassifier(),
            mute_cache=self.mute,
            channel=self.channel,
            build_message=AlertMessageBuilder(cluster_name="it-cluster", clock=self.clock),
            clock=self.clock,
        )
        self.queue = WorkQueue(base_delay=0.01, max_delay=0.05)
        self.controller = CrashController(
            reconciler=self.reconciler,
            queue=self.queue,
            worker_count=worker_count,
            max_retries=max_retries,
        )

    async def settle(self, timeout: float = 2.0) -> None:
        """Wait until the queue is empty, nothing is in flight and no delayed add is pending."""
        await wait_for_condition(
            lambda: len(self.queue) == 0 and self.queue.in_flight == 0 and not self.queue._timers,
            timeout=timeout,
        )


async def wait_for_condition(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def pipeline() -> AsyncIterator[Pipeline]:
    """Single-worker pipeline, started and stopped around the test."""
    p = Pipeline()
    await p.controller.start()
    yield p
    await p.controller.stop()

