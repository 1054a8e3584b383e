"""Integration tests for the pod event -> work queue -> reconcile -> notify loop.

Real WorkQueue, CrashController, Reconciler, CrashClassifier and MuteCache;
only the pod source, the channel and the clock are fakes.
"""

from __future__ import annotations

import asyncio

import pytest

from kubenotify.models.alerts import ReconcileOutcome
from kubenotify.models.pods import PodIdentity

from .conftest import Pipeline, make_pod, wait_for_condition

# ---------------------------------------------------------------------------
# Mute window end to end
# ---------------------------------------------------------------------------


class TestMuteWindow:
    async def test_crash_loop_notifies_then_mutes_then_notifies(self, pipeline: Pipeline) -> None:
        pod = make_pod("api")
        key = pipeline.source.put(pod)

        pipeline.controller.on_add(pod)
        await pipeline.settle()
        assert len(pipeline.channel.sent) == 1

        pipeline.clock.advance(300)
        pipeline.controller.on_update(pod, pod)
        await pipeline.settle()
        assert len(pipeline.channel.sent) == 1

        pipeline.clock.advance(350)
        pipeline.controller.on_update(pod, pod)
        await pipeline.settle()
        assert len(pipeline.channel.sent) == 2
        assert pipeline.reconciler.outcomes_for(key) == [
            ReconcileOutcome.SENT,
            ReconcileOutcome.SUPPRESSED,
            ReconcileOutcome.SENT,
        ]

    async def test_healthy_pod_never_notifies(self, pipeline: Pipeline) -> None:
        pod = make_pod("web", crashing=False)
        key = pipeline.source.put(pod)
        pipeline.controller.on_add(pod)
        await pipeline.settle()
        assert pipeline.reconciler.outcomes_for(key) == [ReconcileOutcome.HEALTHY]
        assert pipeline.channel.sent == []

    async def test_two_containers_one_crashing_sends_one_notification(self, pipeline: Pipeline) -> None:
        pod = make_pod(
            "worker",
            containers=[
                {"name": "app", "state": {"waiting": {"reason": "CrashLoopBackOff"}}},
                {"name": "proxy", "state": {"running": {}}},
            ],
        )
        pipeline.source.put(pod)
        pipeline.controller.on_add(pod)
        await pipeline.settle()

        [message] = pipeline.channel.sent
        assert "container app" in message.text
        assert "proxy" not in message.text

    async def test_failed_dispatch_is_retried_on_next_event(self, pipeline: Pipeline) -> None:
        pod = make_pod("api")
        key = pipeline.source.put(pod)
        pipeline.channel.fail_next = 1

        pipeline.controller.on_add(pod)
        await pipeline.settle()
        assert pipeline.mute.get(key) is None

        pipeline.controller.on_update(pod, pod)
        await pipeline.settle()
        assert pipeline.reconciler.outcomes_for(key) == [ReconcileOutcome.SEND_FAILED, ReconcileOutcome.SENT]
        assert pipeline.channel.attempts == 2
        assert pipeline.mute.get(key).last_sent_at == pipeline.clock.now


# ---------------------------------------------------------------------------
# Queue semantics end to end
# ---------------------------------------------------------------------------


class TestCoalescing:
    async def test_burst_of_events_before_workers_start_runs_once(self) -> None:
        p = Pipeline()
        pod = make_pod("api")
        key = p.source.put(pod)
        for _ in range(10):
            p.controller.on_update(pod, pod)

        await p.controller.start()
        try:
            await p.settle()
        finally:
            await p.controller.stop()
        assert p.reconciler.outcomes_for(key) == [ReconcileOutcome.SENT]

    async def test_events_during_reconcile_cause_exactly_one_rerun(self, pipeline: Pipeline) -> None:
        pod = make_pod("api", crashing=False)
        key = pipeline.source.put(pod)
        pipeline.source.delay = 0.05

        pipeline.controller.on_add(pod)
        await wait_for_condition(lambda: pipeline.queue.in_flight == 1)
        for _ in range(5):
            pipeline.controller.on_update(pod, pod)
        await pipeline.settle()

        assert len(pipeline.reconciler.outcomes_for(key)) == 2

    async def test_pod_deleted_before_reconcile_is_a_no_op(self) -> None:
        p = Pipeline()
        pod = make_pod("api")
        key = p.source.put(pod)
        p.controller.on_add(pod)
        p.source.remove(key)
        p.controller.on_delete(pod)

        await p.controller.start()
        try:
            await p.settle()
        finally:
            await p.controller.stop()
        assert p.reconciler.outcomes_for(key) == [ReconcileOutcome.NOT_FOUND]
        assert p.channel.attempts == 0

    async def test_event_without_identity_is_dropped(self, pipeline: Pipeline) -> None:
        pipeline.controller.on_add({"metadata": {"namespace": "default"}})
        assert len(pipeline.queue) == 0


# ---------------------------------------------------------------------------
# Retry policy
# ---------------------------------------------------------------------------


class TestRetries:
    async def test_fetch_errors_are_retried_with_backoff(self, pipeline: Pipeline) -> None:
        pod = make_pod("api")
        key = pipeline.source.put(pod)
        pipeline.source.failures = 2

        pipeline.controller.on_add(pod)
        await pipeline.settle()

        assert pipeline.source.reads == 3
        assert pipeline.reconciler.outcomes_for(key) == [ReconcileOutcome.SENT]
        assert pipeline.queue.num_requeues(key) == 0

    async def test_key_is_dropped_after_max_retries(self) -> None:
        p = Pipeline(max_retries=2)
        pod = make_pod("api")
        key = p.source.put(pod)
        p.source.failures = 100

        await p.controller.start()
        try:
            p.controller.on_add(pod)
            await p.settle()
        finally:
            await p.controller.stop()

        assert p.source.reads == 3
        assert p.channel.attempts == 0
        assert p.queue.num_requeues(key) == 0

    async def test_errors_on_one_pod_do_not_block_others(self, pipeline: Pipeline) -> None:
        bad = make_pod("bad")
        good = make_pod("good")
        pipeline.source.put(bad)
        good_key = pipeline.source.put(good)
        pipeline.source.failures = 1

        pipeline.controller.on_add(bad)
        pipeline.controller.on_add(good)
        await pipeline.settle()

        assert pipeline.reconciler.outcomes_for(good_key) == [ReconcileOutcome.SENT]
        assert len(pipeline.channel.sent) == 2


# ---------------------------------------------------------------------------
# Workers and shutdown
# ---------------------------------------------------------------------------


class TestWorkers:
    async def test_parallel_workers_never_share_a_key(self) -> None:
        p = Pipeline(worker_count=4)
        p.source.delay = 0.01
        pods = [make_pod(f"pod-{i}") for i in range(8)]
        for pod in pods:
            p.source.put(pod)

        await p.controller.start()
        try:
            for _ in range(5):
                for pod in pods:
                    p.controller.on_update(pod, pod)
                await asyncio.sleep(0.005)
            await p.settle()
        finally:
            await p.controller.stop()

        assert p.reconciler.overlaps == 0
        assert p.reconciler.max_active > 1
        assert len(p.channel.sent) == len(pods)

    async def test_stop_waits_for_in_flight_and_abandons_queued(self) -> None:
        p = Pipeline()
        p.source.delay = 0.05
        first = make_pod("first")
        second = make_pod("second")
        first_key = p.source.put(first)
        second_key = p.source.put(second)

        await p.controller.start()
        p.controller.on_add(first)
        await wait_for_condition(lambda: p.queue.in_flight == 1)
        p.controller.on_add(second)

        await p.controller.stop()

        assert p.reconciler.outcomes_for(first_key) == [ReconcileOutcome.SENT]
        assert p.reconciler.outcomes_for(second_key) == []
        assert p.controller.running is False

    async def test_events_after_stop_are_ignored(self) -> None:
        p = Pipeline()
        await p.controller.start()
        await p.controller.stop()
        p.controller.on_add(make_pod("late"))
        assert len(p.queue) == 0

    def test_worker_count_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            Pipeline(worker_count=0)


def test_pipeline_keys_are_namespaced() -> None:
    assert PodIdentity.from_object(make_pod("api", namespace="payments")) == PodIdentity("payments", "api")
