"""In-memory fixed-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: every read-modify-write of the key map happens under a lock,
  and entries are immutable so a key is only ever replaced as a whole.
- Windows start on the first request of a key (not on wall-clock boundaries),
  so a client can be admitted up to 2x the limit around a window edge.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass, replace
from typing import Any, Callable

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitPolicy, RateLimitResult
from app.core.client_ip import default_key_generator

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_INTERVAL_SECONDS = 5 * 60


@dataclass(frozen=True)
class RateLimitEntry:
    count: int
    reset_at: float


class InMemoryFixedWindowRateLimiter(AbstractRateLimiter):
    """Fixed-window limiter keeping one counter per key in a dict.

    A background daemon thread periodically removes entries whose window
    has ended, so one-off clients do not accumulate forever. Call
    ``close()`` (or use the limiter as a context manager) to stop it.
    """

    def __init__(
        self,
        policy: RateLimitPolicy,
        *,
        clock: Callable[[], float] = time.time,
        sweep_interval_seconds: float | None = DEFAULT_SWEEP_INTERVAL_SECONDS,
    ) -> None:
        """Initialize the limiter and start its sweeper.

        Args:
            policy: Window, ceiling and key derivation of this limiter.
            clock: Time source function returning UNIX time in seconds.
            sweep_interval_seconds: Seconds between background sweeps, or
                None to run without a sweeper thread.

        Raises:
            ValueError: If sweep_interval_seconds is not positive.
        """
        if sweep_interval_seconds is not None and sweep_interval_seconds <= 0:
            raise ValueError("sweep_interval_seconds must be > 0")

        self._policy = policy
        self._key_generator = policy.key_generator or default_key_generator
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: dict[str, RateLimitEntry] = {}

        self._stop_event = threading.Event()
        self._sweeper: threading.Thread | None = None
        if sweep_interval_seconds is not None:
            self._sweeper = threading.Thread(
                target=self._run_sweeper,
                args=(sweep_interval_seconds,),
                name=f"rate-limit-sweeper-{policy.name}",
                daemon=True,
            )
            self._sweeper.start()

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"InMemoryFixedWindowRateLimiter(policy={self._policy.name!r}, "
            f"max_requests={self._policy.max_requests}, window_ms={self._policy.window_ms}, "
            f"keys={len(self._entries)})"
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __enter__(self) -> "InMemoryFixedWindowRateLimiter":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def policy(self) -> RateLimitPolicy:
        return self._policy

    def derive_key(self, request_context: Any) -> str:
        return self._key_generator(request_context)

    def get_entry(self, key: str) -> RateLimitEntry | None:
        """Return the stored entry for a key, expired or not."""
        with self._lock:
            return self._entries.get(key)

    def _current_entry_locked(self, key: str, now: float) -> RateLimitEntry:
        entry = self._entries.get(key)
        if entry is None or entry.reset_at < now:
            entry = RateLimitEntry(count=0, reset_at=now + self._policy.window_seconds)
            self._entries[key] = entry
        return entry

    def check_limit(self, request_context: Any) -> RateLimitResult:
        """Report whether the key derived from the context is under quota.

        Creates or renews the key's window when needed but never counts the
        request; repeated checks inside one window return the same answer.
        """
        key = self.derive_key(request_context)
        now = self._clock()
        limit = self._policy.max_requests

        with self._lock:
            entry = self._current_entry_locked(key, now)

        allowed = entry.count < limit
        remaining = max(0, limit - entry.count - 1)
        retry_after = None if allowed else max(0, math.floor(entry.reset_at - now))

        return RateLimitResult(
            allowed=allowed,
            limit=limit,
            remaining=remaining,
            reset_at=entry.reset_at,
            retry_after_seconds=retry_after,
        )

    def record_request(self, request_context: Any, outcome: bool | None = None) -> None:
        """Increment the key's counter unless the outcome is configured to be skipped.

        Keys without a stored entry (never checked, or already swept) are
        left untouched.
        """
        if self._policy.skip_successful_requests and outcome is True:
            return
        if self._policy.skip_failed_requests and outcome is False:
            return

        key = self.derive_key(request_context)
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                self._entries[key] = replace(entry, count=entry.count + 1)

    def sweep_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.reset_at < now]
            for key in expired:
                del self._entries[key]
            remaining_keys = len(self._entries)

        if expired:
            logger.debug(
                "rate_limit.sweep",
                extra={
                    "policy": self._policy.name,
                    "removed": len(expired),
                    "keys": remaining_keys,
                },
            )
        return len(expired)

    def reset(self) -> None:
        """Forget every tracked key."""
        with self._lock:
            self._entries.clear()

    def close(self) -> None:
        """Stop the background sweeper. Safe to call more than once."""
        self._stop_event.set()
        sweeper = self._sweeper
        if sweeper is not None and sweeper.is_alive() and sweeper is not threading.current_thread():
            sweeper.join(timeout=1.0)

    @property
    def closed(self) -> bool:
        return self._stop_event.is_set()

    def _run_sweeper(self, interval: float) -> None:
        while not self._stop_event.wait(interval):
            try:
                self.sweep_expired()
            except Exception:
                # A failing clock must not kill the sweeper thread.
                logger.exception("rate_limit.sweep_failed", extra={"policy": self._policy.name})
