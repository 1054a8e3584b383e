"""Prometheus metrics for kubenotify.

All collectors live on the default registry so the ``/metrics`` endpoint
exposes them together with the process collectors.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

reconciliations_total = Counter(
    "kubenotify_reconciliations_total",
    "Completed reconciliations by outcome.",
    ["outcome"],
)

reconcile_errors_total = Counter(
    "kubenotify_reconcile_errors_total",
    "Reconciliations aborted by an error and handed to the retry policy.",
)

reconcile_duration_seconds = Histogram(
    "kubenotify_reconcile_duration_seconds",
    "Wall-clock time of one reconciliation.",
    buckets=(0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0),
)

notifications_total = Counter(
    "kubenotify_notifications_total",
    "Notification delivery attempts by channel and result.",
    ["channel", "success"],
)

mute_entries = Gauge(
    "kubenotify_mute_entries",
    "Pods currently tracked by the mute cache.",
)

queue_depth = Gauge(
    "kubenotify_queue_depth",
    "Pod keys waiting for a reconciliation worker.",
)

watch_events_total = Counter(
    "kubenotify_watch_events_total",
    "Pod watch events received by type.",
    ["type"],
)
