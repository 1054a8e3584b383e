"""Pod identity and container crash-signal data structures."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True, order=True)
class PodIdentity:
    """Stable ``(namespace, name)`` key for a pod.

    Used as the work-queue key and the mute-cache key.  Hashable and
    immutable so it can be shared freely between tasks.
    """

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def from_key(cls, key: str) -> PodIdentity:
        """Parse ``namespace/name``.  A key without a slash is cluster-scoped (empty namespace)."""
        namespace, sep, name = key.partition("/")
        if not sep:
            return cls(namespace="", name=namespace)
        if not name or "/" in name:
            raise ValueError(f"Invalid pod key: {key!r}")
        return cls(namespace=namespace, name=name)

    @classmethod
    def from_object(cls, obj: dict[str, Any]) -> PodIdentity:
        """Build an identity from a raw pod object (camelCase API JSON)."""
        metadata = obj.get("metadata") or {}
        name = str(metadata.get("name") or "")
        if not name:
            raise ValueError("Pod object has no metadata.name")
        return cls(namespace=str(metadata.get("namespace") or ""), name=name)


@dataclass(frozen=True)
class ContainerCrashSignal:
    """Crash-relevant facts derived from one container status.

    Recomputed from the live pod object on every reconciliation; never
    persisted.  ``exit_code`` and ``last_termination_time`` describe the
    most recent termination (current state if terminated, otherwise the
    last state) and are ``None`` when the container never terminated.
    """

    container_name: str
    restart_count: int = 0
    waiting_reason: str = ""
    exit_code: int | None = None
    termination_reason: str = ""
    last_termination_time: datetime | None = None
    init_container: bool = False
