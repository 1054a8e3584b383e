"""FastAPI application factory for kubenotify.

Usage::

    from kubenotify.api.app import create_app

    app = create_app(
        controller=controller,
        mute_cache=mute_cache,
        watcher=watcher,
        channel_name="feishu",
        cluster_name="prod",
    )

The factory is used by both the production bootstrap (``kubenotify.app``)
and unit tests.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from kubenotify.api.routes import router
from kubenotify.api.schemas import ErrorResponse

_log = structlog.get_logger(component="api.app")

_API_PREFIX = "/api/v1"


def create_app(
    controller: Any,
    mute_cache: Any,
    watcher: Any = None,
    channel_name: str = "",
    cluster_name: str = "",
) -> FastAPI:
    """Create and configure the kubenotify FastAPI application.

    Args:
        controller:   CrashController instance (queue and worker state).
        mute_cache:   MuteCache instance.
        watcher:      Optional PodWatcher; readiness reports not-synced without it.
        channel_name: Name of the configured notification channel.
        cluster_name: Cluster display name.

    Returns:
        Configured FastAPI application, ready to be served by uvicorn.
    """
    from kubenotify import __version__

    app = FastAPI(
        title="kubenotify",
        summary="Kubernetes pod crash notifier",
        version=__version__,
        docs_url="/api/v1/docs",
        redoc_url=None,
        openapi_url="/api/v1/openapi.json",
    )

    app.state.controller = controller
    app.state.mute_cache = mute_cache
    app.state.watcher = watcher
    app.state.channel_name = channel_name
    app.state.cluster_name = cluster_name

    app.include_router(router, prefix=_API_PREFIX)
    app.mount("/metrics", make_asgi_app())

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Catch-all for unhandled exceptions; never expose stack traces."""
        _log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="INTERNAL_ERROR",
                detail="An unexpected error occurred.",
            ).model_dump(),
        )

    return app
