"""Crash decision, mute entry and alert message data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from kubenotify.models.pods import ContainerCrashSignal, PodIdentity


class Severity(StrEnum):
    """Alert severity level."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.INFO: 0,
    Severity.WARNING: 1,
    Severity.ERROR: 2,
    Severity.CRITICAL: 3,
}


class ReconcileOutcome(StrEnum):
    """Terminal result of one reconciliation pass."""

    NOT_FOUND = "not_found"
    HEALTHY = "healthy"
    SUPPRESSED = "suppressed"
    SENT = "sent"
    SEND_FAILED = "send_failed"


@dataclass(frozen=True)
class CrashDecision:
    """Output of classifying all of a pod's container signals.

    One decision per pod per reconciliation, regardless of how many
    containers are crashing.
    """

    should_notify: bool
    reason: str = ""
    severity: Severity = Severity.INFO
    signals: tuple[ContainerCrashSignal, ...] = field(default_factory=tuple)


@dataclass
class MuteEntry:
    """Last successful notification time for a pod."""

    key: PodIdentity
    last_sent_at: datetime


@dataclass(frozen=True)
class AlertMessage:
    """Channel-agnostic alert handed to a NotificationChannel."""

    title: str
    text: str
    address: str = ""
