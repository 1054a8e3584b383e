"""Tests for the application bootstrap that do not need a cluster."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from kubenotify.app import KubeNotifyApp
from kubenotify.controller.reconciler import PodFetchError
from kubenotify.models.config import KubeNotifyConfig


async def test_stop_before_start_is_a_no_op() -> None:
    app = KubeNotifyApp(KubeNotifyConfig())
    await app.stop()
    assert app.running is False


async def test_get_pod_without_watcher_raises_fetch_error() -> None:
    app = KubeNotifyApp(KubeNotifyConfig())
    with pytest.raises(PodFetchError):
        await app.get_pod("default", "api")


async def test_get_pod_forwards_to_watcher() -> None:
    app = KubeNotifyApp(KubeNotifyConfig())
    watcher = MagicMock()
    watcher.get_pod = AsyncMock(return_value={"metadata": {"name": "api"}})
    app._watcher = watcher

    assert await app.get_pod("default", "api") == {"metadata": {"name": "api"}}
    watcher.get_pod.assert_awaited_once_with("default", "api")


async def test_stop_component_contains_errors() -> None:
    app = KubeNotifyApp(KubeNotifyConfig())
    broken = MagicMock()
    broken.stop = AsyncMock(side_effect=RuntimeError("boom"))
    await app._stop_component("broken", broken)
    broken.stop.assert_awaited_once()
