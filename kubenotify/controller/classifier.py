"""Container crash-signal extraction and crash classification.

Signals are read from the raw pod object (camelCase API JSON, as produced
by the watch stream).  Container statuses that do not have the expected
shape are skipped individually so that one odd entry never hides a
crashing sibling container.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog

from kubenotify.models.alerts import CrashDecision, Severity
from kubenotify.models.pods import ContainerCrashSignal

_log = structlog.get_logger(component="controller.classifier")

DEFAULT_CRASH_LOOP_REASONS = frozenset({"CrashLoopBackOff"})
DEFAULT_RECENCY_WINDOW = timedelta(minutes=5)

_OOM_REASON = "OOMKilled"

CrashPredicate = Callable[[ContainerCrashSignal, datetime], bool]


def extract_signals(pod: dict[str, Any]) -> list[ContainerCrashSignal]:
    """Derive one ContainerCrashSignal per init and regular container status."""
    status = pod.get("status")
    if not isinstance(status, dict):
        return []

    signals: list[ContainerCrashSignal] = []
    for field_name, init in (("initContainerStatuses", True), ("containerStatuses", False)):
        entries = status.get(field_name) or []
        if not isinstance(entries, list):
            _log.debug("malformed_container_status_list", field=field_name)
            continue
        for entry in entries:
            try:
                signals.append(_signal_from_status(entry, init=init))
            except (TypeError, ValueError, AttributeError) as exc:
                _log.debug("malformed_container_status", field=field_name, error=str(exc))
    return signals


def _signal_from_status(entry: Any, init: bool) -> ContainerCrashSignal:
    if not isinstance(entry, dict):
        raise TypeError(f"container status is {type(entry).__name__}, not an object")
    name = entry.get("name")
    if not name:
        raise ValueError("container status has no name")

    state = entry.get("state") or {}
    last_state = entry.get("lastState") or {}
    waiting = state.get("waiting") or {}

    # A container that is terminated right now reports it in state, otherwise
    # the previous run's termination is in lastState.
    terminated = state.get("terminated") or last_state.get("terminated") or {}

    exit_code = terminated.get("exitCode")
    return ContainerCrashSignal(
        container_name=str(name),
        restart_count=int(entry.get("restartCount") or 0),
        waiting_reason=str(waiting.get("reason") or ""),
        exit_code=int(exit_code) if exit_code is not None else None,
        termination_reason=str(terminated.get("reason") or ""),
        last_termination_time=_parse_time(terminated.get("finishedAt")),
        init_container=init,
    )


def _parse_time(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def describe_signal(signal: ContainerCrashSignal) -> str:
    """One-line human summary of a crash signal, used in alert text."""
    kind = "init container" if signal.init_container else "container"
    parts = []
    if signal.waiting_reason:
        parts.append(signal.waiting_reason)
    if signal.exit_code is not None:
        exit_part = f"exit code {signal.exit_code}"
        if signal.termination_reason:
            exit_part += f" ({signal.termination_reason})"
        parts.append(exit_part)
    parts.append(f"{signal.restart_count} restarts")
    return f"{kind} {signal.container_name}: " + ", ".join(parts)


class CrashClassifier:
    """Decides whether a pod's container signals warrant a crash alert.

    A signal is crash-worthy when its waiting reason is one of
    ``crash_loop_reasons``, or when it terminated with a non-zero exit code
    no longer than ``recency_window`` ago.  ``predicate`` replaces that rule
    entirely when given; severity is still derived from the signal.
    """

    def __init__(
        self,
        crash_loop_reasons: Iterable[str] = DEFAULT_CRASH_LOOP_REASONS,
        recency_window: timedelta = DEFAULT_RECENCY_WINDOW,
        predicate: CrashPredicate | None = None,
    ) -> None:
        self._reasons = frozenset(crash_loop_reasons)
        self._recency_window = recency_window
        self._predicate = predicate or self.is_crash_worthy

    @property
    def crash_loop_reasons(self) -> frozenset[str]:
        return self._reasons

    def is_crash_worthy(self, signal: ContainerCrashSignal, now: datetime) -> bool:
        if signal.waiting_reason in self._reasons:
            return True
        if not signal.exit_code or signal.last_termination_time is None:
            return False
        return now - signal.last_termination_time <= self._recency_window

    def severity(self, signal: ContainerCrashSignal) -> Severity:
        if signal.termination_reason == _OOM_REASON:
            return Severity.CRITICAL
        if signal.waiting_reason in self._reasons:
            return Severity.ERROR
        return Severity.WARNING

    def classify(self, signals: Iterable[ContainerCrashSignal], now: datetime) -> CrashDecision:
        """Collapse every container's signal into a single per-pod decision."""
        crashing = tuple(s for s in signals if self._predicate(s, now))
        if not crashing:
            return CrashDecision(should_notify=False)

        severity = max((self.severity(s) for s in crashing), key=lambda sev: sev.rank)
        reason = "; ".join(describe_signal(s) for s in crashing)
        return CrashDecision(
            should_notify=True,
            reason=reason,
            severity=severity,
            signals=crashing,
        )
