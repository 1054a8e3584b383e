"""Crash-detection reconciliation loop.

Submodules
----------
queue      -- WorkQueue: deduplicating queue with in-flight/dirty tracking and backoff.
classifier -- Container crash-signal extraction and the crash-worthy predicate.
mute       -- MuteCache: one notification per pod per mute window.
reconciler -- Reconciler: fetch, classify, mute check, dispatch, record.
controller -- CrashController: pod event handlers and worker tasks.
"""

from kubenotify.controller.classifier import CrashClassifier, extract_signals
from kubenotify.controller.controller import CrashController
from kubenotify.controller.mute import MuteCache
from kubenotify.controller.queue import WorkQueue
from kubenotify.controller.reconciler import PodFetchError, PodSource, Reconciler

__all__ = [
    "CrashClassifier",
    "CrashController",
    "MuteCache",
    "PodFetchError",
    "PodSource",
    "Reconciler",
    "WorkQueue",
    "extract_signals",
]
