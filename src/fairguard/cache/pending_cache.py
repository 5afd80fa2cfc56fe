"""
TTL-keyed in-memory store for in-flight human-confirmation state.

Each entry carries its own expiry.  When an event loop is running an expiry
timer is scheduled with ``loop.call_later``; independently, every access
checks the deadline lazily, so an entry is never returned after it expired
even if its timer has not fired yet.

All mutations happen under one lock, and ``pop`` is an atomic
check-and-delete: of several concurrent consumers of the same key exactly one
receives the value, the rest observe ``None``.  Expiry goes through the same
lock, so a timer firing during a confirm cannot hand the entry to both.
"""

from __future__ import annotations

import asyncio
import inspect
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Optional, Set, Tuple, TypeVar

from fairguard.util.logger import get_logger

logger = get_logger("pending_cache")

T = TypeVar("T")

ExpiryCallback = Callable[[str, Any], Any]


@dataclass(slots=True, eq=False)
class _Entry(Generic[T]):
    value: T
    expires_at: float
    handle: Optional[asyncio.TimerHandle] = None


class TTLCache(Generic[T]):
    """
    Lock-guarded TTL map with per-entry expiry timers.

    Args:
        default_ttl: Lifetime in seconds used when ``set`` gets no ``ttl``.
        on_expire: Optional hook ``(key, value)`` called once for every entry
            removed by expiry (never for ``delete``/``pop``/``clear``). May be a
            coroutine function; failures are logged and otherwise ignored.
        clock: Monotonic clock in seconds.
        name: Label used in log lines.
    """

    def __init__(
        self,
        default_ttl: float,
        on_expire: Optional[ExpiryCallback] = None,
        clock: Callable[[], float] = time.monotonic,
        name: str = "pending",
    ) -> None:
        self.default_ttl = default_ttl
        self.on_expire = on_expire
        self.name = name
        self._clock = clock
        self._entries: Dict[str, _Entry[T]] = {}
        self._lock = threading.Lock()
        self._callback_tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set(self, key: str, value: T, ttl: float | None = None) -> float:
        """Store ``value`` under ``key`` (replacing any previous entry) and return its deadline."""
        ttl = self.default_ttl if ttl is None else ttl
        entry = _Entry(value=value, expires_at=self._clock() + ttl)

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        with self._lock:
            previous = self._entries.get(key)
            if previous is not None and previous.handle is not None:
                previous.handle.cancel()
            if loop is not None:
                entry.handle = loop.call_later(max(ttl, 0), self._expire_entry, key, entry)
            self._entries[key] = entry

        logger.debug("[%s CACHE] Set key %s (ttl=%ss)", self.name.upper(), key, ttl)
        return entry.expires_at

    def delete(self, key: str) -> bool:
        """Remove ``key``. Returns True if a live entry was removed."""
        return self.pop(key) is not None

    def pop(self, key: str) -> Optional[T]:
        """Atomically remove and return the live value for ``key``, or None."""
        expired: Optional[_Entry[T]] = None
        with self._lock:
            entry = self._entries.pop(key, None)
            if entry is None:
                return None
            if entry.handle is not None:
                entry.handle.cancel()
            if self._is_expired(entry):
                expired = entry
        if expired is not None:
            self._fire_expired([(key, expired.value)])
            return None
        return entry.value

    def clear(self) -> None:
        with self._lock:
            for entry in self._entries.values():
                if entry.handle is not None:
                    entry.handle.cancel()
            self._entries.clear()

    def cleanup(self) -> int:
        """Remove every expired entry, firing the expiry hook for each. Returns the number removed."""
        removed: List[Tuple[str, T]] = []
        with self._lock:
            for key, entry in list(self._entries.items()):
                if self._is_expired(entry):
                    del self._entries[key]
                    if entry.handle is not None:
                        entry.handle.cancel()
                    removed.append((key, entry.value))
        if removed:
            logger.debug("[%s CACHE] Cleanup removed %d expired entries", self.name.upper(), len(removed))
            self._fire_expired(removed)
        return len(removed)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[T]:
        expired: Optional[_Entry[T]] = None
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._is_expired(entry):
                del self._entries[key]
                if entry.handle is not None:
                    entry.handle.cancel()
                expired = entry
        if expired is not None:
            self._fire_expired([(key, expired.value)])
            return None
        return entry.value

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        with self._lock:
            return sum(1 for entry in self._entries.values() if not self._is_expired(entry))

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    def _is_expired(self, entry: _Entry[T]) -> bool:
        return self._clock() >= entry.expires_at

    def _expire_entry(self, key: str, entry: _Entry[T]) -> None:
        """Timer callback; only removes the exact entry it was scheduled for."""
        with self._lock:
            if self._entries.get(key) is not entry:
                return
            del self._entries[key]
        logger.debug("[%s CACHE] Key %s expired", self.name.upper(), key)
        self._fire_expired([(key, entry.value)])

    def _fire_expired(self, items: List[Tuple[str, T]]) -> None:
        if self.on_expire is None:
            return
        for key, value in items:
            try:
                result = self.on_expire(key, value)
            except Exception:
                logger.exception("[%s CACHE] Expiry hook failed for key %s", self.name.upper(), key)
                continue
            if inspect.isawaitable(result):
                self._schedule_callback(key, result)

    def _schedule_callback(self, key: str, awaitable: Any) -> None:
        try:
            task = asyncio.ensure_future(awaitable)
        except RuntimeError:
            logger.warning("[%s CACHE] No running loop for expiry hook of key %s", self.name.upper(), key)
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return
        self._callback_tasks.add(task)
        task.add_done_callback(lambda t: self._on_callback_done(key, t))

    def _on_callback_done(self, key: str, task: asyncio.Task) -> None:
        self._callback_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("[%s CACHE] Expiry hook failed for key %s: %s", self.name.upper(), key, exc)

    async def drain_callbacks(self) -> None:
        """Wait for any in-flight asynchronous expiry hooks."""
        while self._callback_tasks:
            await asyncio.gather(*list(self._callback_tasks), return_exceptions=True)
