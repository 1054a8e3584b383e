"""kubenotify: Kubernetes pod crash notifier."""

__version__ = "0.1.0"
