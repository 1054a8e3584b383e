"""Collector package for kubenotify.

Provides the Kubernetes pod list/watch stream that feeds pod identities
into the crash controller.

Submodules
----------
pod_watcher -- PodWatcher: pod store, watch reconnect with back-off,
               410 relist recovery, periodic resync.
"""

from kubenotify.collector.pod_watcher import PodEventHandler, PodWatcher, RelistRequired

__all__ = ["PodEventHandler", "PodWatcher", "RelistRequired"]
