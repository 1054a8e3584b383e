"""Per-pod notification mute cache.

Enforces at most one notification per pod per mute window.  The cache is
shared by every reconciliation worker; ``claim(key)`` serialises the
"suppress? -> send -> record" sequence per key so two workers can never
both pass the suppression check for the same pod.

State is held in-process; restarting the service clears every entry.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime, timedelta

import structlog

from kubenotify.models.alerts import MuteEntry
from kubenotify.models.pods import PodIdentity
from kubenotify.observability.metrics import mute_entries

_log = structlog.get_logger(component="controller.mute")


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class MuteCache:
    """Tracks the last successful notification time per PodIdentity.

    Args:
        window:            Repeat alerts for a key are suppressed while
                           ``now - last_sent_at < window``.
        eviction_multiple: The sweep drops entries older than
                           ``window * eviction_multiple``.
        sweep_interval:    Seconds between background sweeps.
        clock:             Time source for the background sweep.
    """

    def __init__(
        self,
        window: timedelta,
        eviction_multiple: int = 2,
        sweep_interval: float = 60.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if window < timedelta(0):
            raise ValueError("mute window must not be negative")
        if eviction_multiple < 1:
            raise ValueError("eviction_multiple must be >= 1")
        self._window = window
        self._max_age = window * eviction_multiple
        self._sweep_interval = sweep_interval
        self._clock = clock

        self._entries: dict[PodIdentity, MuteEntry] = {}
        self._locks: dict[PodIdentity, asyncio.Lock] = {}
        self._lock_users: dict[PodIdentity, int] = {}
        self._sweep_task: asyncio.Task[None] | None = None

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def window(self) -> timedelta:
        return self._window

    def get(self, key: PodIdentity) -> MuteEntry | None:
        return self._entries.get(key)

    def should_suppress(self, key: PodIdentity, now: datetime) -> bool:
        """True iff *key* was notified less than one mute window before *now*."""
        entry = self._entries.get(key)
        if entry is None:
            return False
        return now - entry.last_sent_at < self._window

    def record_sent(self, key: PodIdentity, now: datetime) -> None:
        """Create or refresh the entry for *key*.  Call only after a successful send."""
        entry = self._entries.get(key)
        if entry is None:
            self._entries[key] = MuteEntry(key=key, last_sent_at=now)
            mute_entries.set(len(self._entries))
        else:
            entry.last_sent_at = now

    def forget(self, key: PodIdentity) -> None:
        if self._entries.pop(key, None) is not None:
            mute_entries.set(len(self._entries))

    @contextlib.asynccontextmanager
    async def claim(self, key: PodIdentity) -> AsyncIterator[None]:
        """Hold the per-key lock for the duration of the block.

        Lock objects only exist while some task holds or waits on them.
        """
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._lock_users[key] - 1
            if remaining:
                self._lock_users[key] = remaining
            else:
                del self._lock_users[key]
                del self._locks[key]

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    def sweep(self, now: datetime) -> int:
        """Drop entries older than ``window * eviction_multiple``.  Returns the count removed."""
        stale = [key for key, entry in self._entries.items() if now - entry.last_sent_at > self._max_age]
        for key in stale:
            del self._entries[key]
        if stale:
            mute_entries.set(len(self._entries))
            _log.debug("mute_cache_swept", removed=len(stale), remaining=len(self._entries))
        return len(stale)

    async def start(self) -> None:
        """Launch the periodic sweep as a background task."""
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop(), name="mute-cache-sweep")

    async def stop(self) -> None:
        task, self._sweep_task = self._sweep_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                self.sweep(self._clock())
            except Exception as exc:  # noqa: BLE001
                _log.error("mute_cache_sweep_failed", error=str(exc))
