"""Tests for the kubenotify REST API (health, readiness, status, metrics)."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from kubenotify import __version__
from kubenotify.api.app import create_app
from kubenotify.controller.mute import MuteCache
from kubenotify.controller.queue import WorkQueue
from kubenotify.models.pods import PodIdentity


def _make_controller(queue: WorkQueue | None = None) -> MagicMock:
    controller = MagicMock()
    controller.queue = queue or WorkQueue()
    controller.worker_count = 3
    controller.running = True
    return controller


def _make_watcher(synced: bool = True, pods: int = 12) -> MagicMock:
    watcher = MagicMock()
    watcher.synced = synced
    watcher.__len__.return_value = pods
    return watcher


def _client(watcher: MagicMock | None = None, controller: MagicMock | None = None) -> TestClient:
    mute = MuteCache(window=timedelta(seconds=600))
    app = create_app(
        controller=controller or _make_controller(),
        mute_cache=mute,
        watcher=watcher,
        channel_name="feishu",
        cluster_name="prod-eu",
    )
    return TestClient(app, raise_server_exceptions=False)


class TestProbes:
    def test_health(self) -> None:
        response = _client().get("/api/v1/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_ready_once_synced(self) -> None:
        response = _client(watcher=_make_watcher(synced=True)).get("/api/v1/ready")
        assert response.status_code == 200
        assert response.json() == {"status": "ready"}

    def test_not_ready_before_initial_list(self) -> None:
        response = _client(watcher=_make_watcher(synced=False)).get("/api/v1/ready")
        assert response.status_code == 503
        assert response.json()["error"] == "NOT_SYNCED"

    def test_not_ready_without_watcher(self) -> None:
        assert _client(watcher=None).get("/api/v1/ready").status_code == 503


class TestStatus:
    def test_status_snapshot(self) -> None:
        queue = WorkQueue()
        queue.enqueue(PodIdentity("default", "a"))
        queue.enqueue(PodIdentity("default", "b"))

        response = _client(watcher=_make_watcher(), controller=_make_controller(queue)).get("/api/v1/status")
        assert response.status_code == 200
        body = response.json()
        assert body == {
            "version": __version__,
            "cluster_name": "prod-eu",
            "channel": "feishu",
            "watcher_synced": True,
            "pods_tracked": 12,
            "queue_depth": 2,
            "in_flight": 0,
            "workers": 3,
            "workers_running": True,
            "mute_entries": 0,
            "mute_window_seconds": 600.0,
        }

    def test_status_without_watcher(self) -> None:
        body = _client(watcher=None).get("/api/v1/status").json()
        assert body["watcher_synced"] is False
        assert body["pods_tracked"] == 0

    def test_unexpected_error_returns_json_500(self) -> None:
        controller = _make_controller()
        type(controller).worker_count = property(lambda self: 1 / 0)
        response = _client(controller=controller).get("/api/v1/status")
        assert response.status_code == 500
        assert response.json() == {"error": "INTERNAL_ERROR", "detail": "An unexpected error occurred."}


def test_metrics_endpoint_exposes_prometheus_text() -> None:
    response = _client().get("/metrics/")
    assert response.status_code == 200
    assert "kubenotify_reconciliations_total" in response.text
