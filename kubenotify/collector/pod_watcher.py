"""Pod list/watch collector backed by kubernetes-asyncio.

PodWatcher keeps a local store of the latest raw pod objects and feeds
add/update/delete notifications to a handler:

* An initial list fills the store and reports every pod as added.
* The watch stream resumes from the list's resourceVersion.  A normal
  stream timeout reconnects from the last seen resourceVersion; a 410 Gone
  (or an ERROR event) triggers a full relist that reconciles the store,
  reporting vanished pods as deleted.
* Any other failure is retried with exponential backoff.
* Every ``resync_seconds`` each stored pod is re-reported as updated, so
  a missed event is recovered on the next resync.

``get_pod`` answers from the store and raises PodFetchError until the
first list has completed.
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

import structlog
from kubernetes_asyncio import watch
from kubernetes_asyncio.client.exceptions import ApiException

from kubenotify.controller.reconciler import PodFetchError
from kubenotify.models.pods import PodIdentity
from kubenotify.observability.metrics import watch_events_total

_log = structlog.get_logger(component="collector.pod_watcher")

_INITIAL_BACKOFF = 1.0
_MAX_BACKOFF = 60.0
_WATCH_TIMEOUT_SECONDS = 300
_HTTP_GONE = 410


class PodEventHandler(Protocol):
    """Receiver of pod notifications.  Called on the event loop; must not block."""

    def on_add(self, pod: dict[str, Any]) -> None: ...

    def on_update(self, old: dict[str, Any], new: dict[str, Any]) -> None: ...

    def on_delete(self, pod: dict[str, Any]) -> None: ...


class RelistRequired(Exception):
    """The watch can no longer resume from its resourceVersion."""


class PodWatcher:
    """Cluster-wide (or single-namespace) pod informer.

    Args:
        v1:             kubernetes_asyncio ``CoreV1Api`` instance.
        handler:        Receives add/update/delete notifications.
        namespace:      Restrict to one namespace; empty watches all.
        resync_seconds: Period of the full re-report of stored pods.
    """

    def __init__(
        self,
        v1: Any,
        handler: PodEventHandler,
        namespace: str = "",
        resync_seconds: float = 300.0,
    ) -> None:
        self._v1 = v1
        self._handler = handler
        self._namespace = namespace
        self._resync_seconds = resync_seconds

        self._store: dict[PodIdentity, dict[str, Any]] = {}
        self._synced = False
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def synced(self) -> bool:
        return self._synced

    def __len__(self) -> int:
        return len(self._store)

    async def get_pod(self, namespace: str, name: str) -> dict[str, Any] | None:
        if not self._synced:
            raise PodFetchError("pod store has not completed its initial list")
        return self._store.get(PodIdentity(namespace=namespace, name=name))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._run(), name="pod-watch"),
            asyncio.create_task(self._resync_loop(), name="pod-resync"),
        ]
        _log.info("pod_watcher_started", namespace=self._namespace or "*")

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        _log.info("pod_watcher_stopped")

    # ------------------------------------------------------------------
    # List / watch
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        backoff = _INITIAL_BACKOFF
        while True:
            try:
                resource_version = await self.relist()
                backoff = _INITIAL_BACKOFF
                await self._watch(resource_version)
            except RelistRequired:
                _log.info("pod_watch_relist_required")
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                _log.warning("pod_watch_failed", error=str(exc), retry_in=backoff)
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, _MAX_BACKOFF)

    def _list_fn(self) -> Any:
        if self._namespace:
            return self._v1.list_namespaced_pod
        return self._v1.list_pod_for_all_namespaces

    def _list_kwargs(self) -> dict[str, Any]:
        if self._namespace:
            return {"namespace": self._namespace}
        return {}

    async def relist(self) -> str:
        """List all pods, replace the store, and return the list resourceVersion."""
        pod_list = await self._list_fn()(**self._list_kwargs())
        serialize = self._v1.api_client.sanitize_for_serialization
        fresh: dict[PodIdentity, dict[str, Any]] = {}
        for item in pod_list.items or []:
            raw = serialize(item)
            try:
                fresh[PodIdentity.from_object(raw)] = raw
            except ValueError:
                continue

        previous, self._store = self._store, fresh
        for key, raw in fresh.items():
            old = previous.get(key)
            if old is None:
                self._notify("on_add", raw)
            else:
                self._notify("on_update", old, raw)
        for key, old in previous.items():
            if key not in fresh:
                self._notify("on_delete", old)

        self._synced = True
        resource_version = str(pod_list.metadata.resource_version or "")
        _log.info("pod_list_synced", pods=len(fresh), resource_version=resource_version)
        return resource_version

    async def _watch(self, resource_version: str) -> None:
        while True:
            async with watch.Watch() as w:
                stream = w.stream(
                    self._list_fn(),
                    resource_version=resource_version,
                    timeout_seconds=_WATCH_TIMEOUT_SECONDS,
                    **self._list_kwargs(),
                )
                try:
                    async for event in stream:
                        resource_version = self.handle_event(event) or resource_version
                except ApiException as exc:
                    if exc.status == _HTTP_GONE:
                        raise RelistRequired from exc
                    raise

    def handle_event(self, event: dict[str, Any]) -> str | None:
        """Apply one watch event to the store.  Returns the event's resourceVersion."""
        event_type = str(event.get("type", ""))
        raw = event.get("raw_object")
        watch_events_total.labels(type=event_type or "UNKNOWN").inc()

        if event_type == "ERROR":
            status = raw if isinstance(raw, dict) else {}
            _log.info("pod_watch_error_event", code=status.get("code"), message=status.get("message"))
            raise RelistRequired
        if not isinstance(raw, dict):
            return None

        try:
            key = PodIdentity.from_object(raw)
        except ValueError:
            return None
        resource_version = (raw.get("metadata") or {}).get("resourceVersion")

        if event_type == "DELETED":
            old = self._store.pop(key, None)
            self._notify("on_delete", old if old is not None else raw)
        elif event_type in ("ADDED", "MODIFIED"):
            old = self._store.get(key)
            self._store[key] = raw
            if old is None:
                self._notify("on_add", raw)
            else:
                self._notify("on_update", old, raw)
        return str(resource_version) if resource_version else None

    # ------------------------------------------------------------------
    # Resync
    # ------------------------------------------------------------------

    async def _resync_loop(self) -> None:
        while True:
            await asyncio.sleep(self._resync_seconds)
            if self._synced:
                self.resync()

    def resync(self) -> None:
        """Re-report every stored pod as updated."""
        for raw in list(self._store.values()):
            self._notify("on_update", raw, raw)
        _log.debug("pod_store_resynced", pods=len(self._store))

    def _notify(self, method: str, *args: dict[str, Any]) -> None:
        try:
            getattr(self._handler, method)(*args)
        except Exception:  # noqa: BLE001
            _log.error("pod_event_handler_failed", handler=method, exc_info=True)
