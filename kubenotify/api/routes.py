"""REST API routes.

Dependencies are read from ``request.app.state``, populated by
``kubenotify.api.app.create_app``.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from kubenotify.api.schemas import ErrorResponse, HealthResponse, StatusResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Liveness probe: the event loop is serving requests."""
    return HealthResponse(status="ok")


@router.get("/ready", response_model=HealthResponse, responses={503: {"model": ErrorResponse}})
async def ready(request: Request) -> HealthResponse | JSONResponse:
    """Readiness probe: the pod store has completed its initial list."""
    watcher = request.app.state.watcher
    if watcher is None or not watcher.synced:
        return JSONResponse(
            status_code=503,
            content=ErrorResponse(error="NOT_SYNCED", detail="Pod store has not completed its initial list.").model_dump(),
        )
    return HealthResponse(status="ready")


@router.get("/status", response_model=StatusResponse)
async def status(request: Request) -> StatusResponse:
    from kubenotify import __version__

    state = request.app.state
    controller = state.controller
    watcher = state.watcher
    mute_cache = state.mute_cache
    return StatusResponse(
        version=__version__,
        cluster_name=state.cluster_name,
        channel=state.channel_name,
        watcher_synced=bool(watcher is not None and watcher.synced),
        pods_tracked=len(watcher) if watcher is not None else 0,
        queue_depth=len(controller.queue),
        in_flight=controller.queue.in_flight,
        workers=controller.worker_count,
        workers_running=controller.running,
        mute_entries=len(mute_cache),
        mute_window_seconds=mute_cache.window.total_seconds(),
    )
