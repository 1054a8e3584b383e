"""Response models for the kubenotify REST API."""

from __future__ import annotations

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    error: str
    detail: str


class HealthResponse(BaseModel):
    status: str


class StatusResponse(BaseModel):
    """Snapshot of the reconciliation loop."""

    version: str
    cluster_name: str
    channel: str
    watcher_synced: bool
    pods_tracked: int
    queue_depth: int
    in_flight: int
    workers: int
    workers_running: bool
    mute_entries: int
    mute_window_seconds: float
