"""Builds the channel-agnostic AlertMessage for a crash decision."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

from kubenotify.controller.classifier import describe_signal
from kubenotify.models.alerts import AlertMessage, CrashDecision
from kubenotify.models.pods import PodIdentity

_ADDRESS_FIELDS = ("cluster_id", "namespace", "pod")


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class AlertMessageBuilder:
    """Turns ``(PodIdentity, CrashDecision)`` into an AlertMessage.

    ``dashboard_url`` is a ``str.format`` template; ``{cluster_id}``,
    ``{namespace}`` and ``{pod}`` are substituted.  An empty template
    yields an empty address.
    """

    def __init__(
        self,
        cluster_name: str,
        cluster_id: str = "",
        dashboard_url: str = "",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if dashboard_url:
            try:
                dashboard_url.format(**{f: "x" for f in _ADDRESS_FIELDS})
            except (KeyError, IndexError, ValueError) as exc:
                raise ValueError(f"Invalid dashboard URL template {dashboard_url!r}: {exc}") from exc
        self._cluster_name = cluster_name
        self._cluster_id = cluster_id
        self._dashboard_url = dashboard_url
        self._clock = clock

    def __call__(self, key: PodIdentity, decision: CrashDecision) -> AlertMessage:
        severity = decision.severity.value.upper()
        title = f"[{severity}] {self._cluster_name}: pod {key} is crashing"

        lines = [
            f"**Cluster**: {self._cluster_name}",
            f"**Namespace**: {key.namespace}",
            f"**Pod**: {key.name}",
            f"**Severity**: {decision.severity.value}",
            f"**Detected**: {self._clock().strftime('%Y-%m-%d %H:%M:%S UTC')}",
            "**Containers**:",
        ]
        lines.extend(f"- {describe_signal(s)}" for s in decision.signals)
        if not decision.signals and decision.reason:
            lines.append(f"- {decision.reason}")

        return AlertMessage(title=title, text="\n".join(lines), address=self.address_for(key))

    def address_for(self, key: PodIdentity) -> str:
        if not self._dashboard_url:
            return ""
        return self._dashboard_url.format(
            cluster_id=self._cluster_id,
            namespace=key.namespace,
            pod=key.name,
        )
