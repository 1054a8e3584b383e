"""Core data structures for kubenotify."""

from kubenotify.models.alerts import (
    AlertMessage,
    CrashDecision,
    MuteEntry,
    ReconcileOutcome,
    Severity,
)
from kubenotify.models.config import KubeNotifyConfig
from kubenotify.models.pods import ContainerCrashSignal, PodIdentity

__all__ = [
    "AlertMessage",
    "ContainerCrashSignal",
    "CrashDecision",
    "KubeNotifyConfig",
    "MuteEntry",
    "PodIdentity",
    "ReconcileOutcome",
    "Severity",
]
