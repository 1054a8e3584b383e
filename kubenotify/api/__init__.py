"""REST API layer for kubenotify.

Exposes:
    create_app -- FastAPI application factory.
"""

from kubenotify.api.app import create_app

__all__ = ["create_app"]
