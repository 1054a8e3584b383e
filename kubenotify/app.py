"""Application bootstrap for kubenotify.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config -> logging -> K8s client -> mute cache -> notifications
              -> controller -> pod watcher -> REST

Shutdown is graceful: the watcher stops producing events first, then the
controller drains its in-flight reconciliations, then the rest is torn
down.  Each component's stop error is caught and logged independently.
"""

from __future__ import annotations

import asyncio
import signal
from datetime import timedelta
from typing import TYPE_CHECKING

from kubenotify.config import load_config
from kubenotify.models.config import KubeNotifyConfig
from kubenotify.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class KubeNotifyApp:
    """Application root.  Owns every component and coordinates their lifecycle.

    Calling ``stop()`` on an app that was never started (or already
    stopped) is safe.
    """

    def __init__(self, config: KubeNotifyConfig | None = None) -> None:
        self.config = config

        self._api_client: object | None = None
        self._v1: object | None = None
        self._mute_cache: object | None = None
        self._channel: object | None = None
        self._controller: object | None = None
        self._watcher: object | None = None
        self._rest_server: object | None = None

        self._background_tasks: list[asyncio.Task[None]] = []

        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        """
        if self.config is None:
            self.config = load_config()

        setup_logging(self.config.log.level, self.config.log.format)
        self._log = get_logger("app")
        self._log.info("kubenotify starting", version=_kubenotify_version(), cluster=self.config.cluster_name)

        await self._start_k8s_client()
        await self._start_mute_cache()
        await self._start_notifications()
        await self._start_controller()
        await self._start_watcher()
        await self._start_rest()

        self._running = True
        self._log.info("kubenotify started", port=self.config.api.port)

    async def _start_k8s_client(self) -> None:
        """Initialise the kubernetes-asyncio client from in-cluster config or kubeconfig."""
        assert self._log is not None
        self._log.debug("starting k8s client")
        try:
            from kubernetes_asyncio import client as k8s_client
            from kubernetes_asyncio import config as k8s_config

            try:
                k8s_config.load_incluster_config()
                self._log.info("k8s client configured from in-cluster service account")
            except k8s_config.ConfigException:
                await k8s_config.load_kube_config()
                self._log.info("k8s client configured from kubeconfig")

            self._api_client = k8s_client.ApiClient()
            self._v1 = k8s_client.CoreV1Api(self._api_client)
        except Exception as exc:
            raise _ComponentError("k8s_client", exc) from exc

    async def _start_mute_cache(self) -> None:
        assert self._log is not None
        assert self.config is not None
        mute = self.config.mute
        try:
            from kubenotify.controller.mute import MuteCache

            cache = MuteCache(
                window=timedelta(seconds=mute.window_seconds),
                eviction_multiple=mute.eviction_multiple,
                sweep_interval=mute.sweep_seconds,
            )
            await cache.start()
        except Exception as exc:
            raise _ComponentError("mute_cache", exc) from exc
        self._mute_cache = cache
        self._log.info("mute cache started", window_seconds=mute.window_seconds)

    async def _start_notifications(self) -> None:
        """Build the configured notification channel.  A misconfigured channel is fatal."""
        assert self._log is not None
        assert self.config is not None
        try:
            from kubenotify.notifications import build_notification_channel

            self._channel = build_notification_channel(self.config.notifications)
        except Exception as exc:
            raise _ComponentError("notifications", exc) from exc

    async def _start_controller(self) -> None:
        """Wire classifier, reconciler and work queue, then start the workers."""
        assert self._log is not None
        assert self.config is not None
        assert self._mute_cache is not None
        assert self._channel is not None
        try:
            from kubenotify.controller import CrashClassifier, CrashController, Reconciler, WorkQueue
            from kubenotify.notifications import AlertMessageBuilder

            rc = self.config.reconcile
            # The watcher does not exist yet; the reconciler reads pods through
            # this app so the two can be started in either order.
            reconciler = Reconciler(
                source=self,
                classifier=CrashClassifier(
                    crash_loop_reasons=rc.crash_loop_reasons,
                    recency_window=timedelta(seconds=rc.crash_recency_seconds),
                ),
                mute_cache=self._mute_cache,  # type: ignore[arg-type]
                channel=self._channel,  # type: ignore[arg-type]
                build_message=AlertMessageBuilder(
                    cluster_name=self.config.cluster_name,
                    cluster_id=self.config.cluster_id,
                    dashboard_url=self.config.notifications.dashboard_url,
                ),
            )
            controller = CrashController(
                reconciler=reconciler,
                queue=WorkQueue(base_delay=rc.retry_base_seconds, max_delay=rc.retry_max_seconds),
                worker_count=rc.worker_count,
                max_retries=rc.max_retries,
            )
            await controller.start()
            self._controller = controller
        except Exception as exc:
            raise _ComponentError("controller", exc) from exc

    async def get_pod(self, namespace: str, name: str) -> dict[str, object] | None:
        """PodSource adapter that forwards to the watcher's store."""
        from kubenotify.controller.reconciler import PodFetchError

        if self._watcher is None:
            raise PodFetchError("pod watcher is not running")
        return await self._watcher.get_pod(namespace, name)  # type: ignore[attr-defined]

    async def _start_watcher(self) -> None:
        assert self._log is not None
        assert self.config is not None
        assert self._controller is not None
        try:
            from kubenotify.collector import PodWatcher

            watcher = PodWatcher(
                self._v1,
                handler=self._controller,  # type: ignore[arg-type]
                namespace=self.config.watch.namespace,
                resync_seconds=self.config.watch.resync_seconds,
            )
            await watcher.start()
            self._watcher = watcher
        except Exception as exc:
            raise _ComponentError("watcher", exc) from exc

    async def _start_rest(self) -> None:
        """Start the uvicorn REST server."""
        assert self._log is not None
        assert self.config is not None
        try:
            import uvicorn

            from kubenotify.api import create_app

            fastapi_app = create_app(
                controller=self._controller,
                mute_cache=self._mute_cache,
                watcher=self._watcher,
                channel_name=getattr(self._channel, "channel_name", ""),
                cluster_name=self.config.cluster_name,
            )
            uv_config = uvicorn.Config(
                app=fastapi_app,
                host="0.0.0.0",
                port=self.config.api.port,
                log_config=None,  # structlog handles all logging
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            task = asyncio.create_task(server.serve(), name="rest-server")
            self._background_tasks.append(task)
            self._rest_server = server
            self._log.info("rest api started", port=self.config.api.port)
        except Exception as exc:
            raise _ComponentError("rest", exc) from exc

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        log.info("kubenotify shutting down")
        self._running = False

        if self._rest_server is not None:
            self._rest_server.should_exit = True  # type: ignore[attr-defined]

        await self._stop_component("watcher", self._watcher)
        await self._stop_component("controller", self._controller)
        await self._stop_component("mute_cache", self._mute_cache)

        for task in reversed(self._background_tasks):
            if not task.done():
                task.cancel()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()

        await self._stop_k8s_client()
        log.info("kubenotify stopped")

    async def _stop_component(self, name: str, component: object | None) -> None:
        """Call stop() on a component if it has that method, catching all errors."""
        if component is None:
            return
        log = self._log or get_logger("app")
        stop_fn = getattr(component, "stop", None)
        if stop_fn is None:
            return
        try:
            result = stop_fn()
            if asyncio.iscoroutine(result):
                await asyncio.wait_for(result, timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component stop timed out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component stop raised an error", component=name, error=str(exc))

    async def _stop_k8s_client(self) -> None:
        """Close the kubernetes-asyncio ApiClient connection pool."""
        client, self._api_client = self._api_client, None
        if client is None:
            return
        try:
            await client.close()  # type: ignore[attr-defined]
        except Exception as exc:
            (self._log or get_logger("app")).debug("k8s client close raised (non-fatal)", error=str(exc))


def _kubenotify_version() -> str:
    from kubenotify import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = KubeNotifyApp()
    loop = asyncio.get_running_loop()
    stop_requested = asyncio.Event()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop_requested.set)

    try:
        await app.start()
        await stop_requested.wait()
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical(
            "fatal startup error",
            component=exc.component,
            error=str(exc.cause),
        )
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        if app.running:
            await app.stop()


def run() -> None:
    """Console-script entry point."""
    asyncio.run(main())
