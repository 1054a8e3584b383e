"""Per-pod crash reconciliation.

For one PodIdentity: fetch the current pod, classify its container
statuses, and, when a crash alert is warranted, dispatch it through the
notification channel unless the mute cache suppresses it.  A mute entry
is recorded only after the channel confirms delivery, so a failed send
leaves the pod eligible on the next pass.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, Protocol

import structlog

from kubenotify.controller.classifier import CrashClassifier, extract_signals
from kubenotify.controller.mute import MuteCache
from kubenotify.models.alerts import AlertMessage, CrashDecision, ReconcileOutcome
from kubenotify.models.pods import PodIdentity
from kubenotify.observability.metrics import notifications_total

_log = structlog.get_logger(component="controller.reconciler")


class PodFetchError(Exception):
    """The pod source could not answer for a pod right now.  Retry later."""


class PodSource(Protocol):
    """Current pod state, keyed by namespace and name."""

    async def get_pod(self, namespace: str, name: str) -> dict[str, Any] | None:
        """Return the pod object, ``None`` if it does not exist, or raise PodFetchError."""
        ...


class AlertSender(Protocol):
    """Minimal notification channel interface required by Reconciler."""

    @property
    def channel_name(self) -> str: ...

    async def send(self, message: AlertMessage) -> bool: ...


MessageBuilder = Callable[[PodIdentity, CrashDecision], AlertMessage]


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class Reconciler:
    """Decides, and acts on, whether a pod needs a crash alert right now."""

    def __init__(
        self,
        source: PodSource,
        classifier: CrashClassifier,
        mute_cache: MuteCache,
        channel: AlertSender,
        build_message: MessageBuilder,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._source = source
        self._classifier = classifier
        self._mute = mute_cache
        self._channel = channel
        self._build_message = build_message
        self._clock = clock

    async def reconcile(self, key: PodIdentity) -> ReconcileOutcome:
        """Run one reconciliation pass for *key*.

        Raises:
            PodFetchError: the pod source is unavailable; the caller retries.
        """
        pod = await self._source.get_pod(key.namespace, key.name)
        if pod is None:
            _log.debug("pod_not_found", namespace=key.namespace, pod=key.name)
            return ReconcileOutcome.NOT_FOUND

        decision = self._classifier.classify(extract_signals(pod), self._clock())
        if not decision.should_notify:
            return ReconcileOutcome.HEALTHY

        async with self._mute.claim(key):
            now = self._clock()
            if self._mute.should_suppress(key, now):
                _log.debug(
                    "crash_alert_suppressed",
                    namespace=key.namespace,
                    pod=key.name,
                    reason=decision.reason,
                )
                return ReconcileOutcome.SUPPRESSED

            message = self._build_message(key, decision)
            if not await self._deliver(key, message):
                return ReconcileOutcome.SEND_FAILED

            self._mute.record_sent(key, now)
            _log.info(
                "crash_alert_sent",
                namespace=key.namespace,
                pod=key.name,
                severity=decision.severity.value,
                reason=decision.reason,
                channel=self._channel.channel_name,
            )
            return ReconcileOutcome.SENT

    async def _deliver(self, key: PodIdentity, message: AlertMessage) -> bool:
        channel_name = self._channel.channel_name
        try:
            delivered = await self._channel.send(message)
        except Exception as exc:  # noqa: BLE001
            _log.error(
                "notification_channel_unexpected_error",
                channel=channel_name,
                namespace=key.namespace,
                pod=key.name,
                error=str(exc),
            )
            delivered = False

        notifications_total.labels(channel=channel_name, success="true" if delivered else "false").inc()
        if not delivered:
            _log.warning("crash_alert_not_delivered", channel=channel_name, namespace=key.namespace, pod=key.name)
        return bool(delivered)
