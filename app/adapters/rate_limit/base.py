"""Rate limiter interfaces.

The HTTP layer depends on this abstraction (not the concrete implementation)
so the in-process store can later be replaced by a shared one (e.g. Redis)
when the API runs on more than one instance.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable

from app.core.errors import ValidationAppError

KeyGenerator = Callable[[Any], str]

DEFAULT_MESSAGE = "Too many requests, please try again later."


@dataclass(frozen=True)
class RateLimitPolicy:
    """Static configuration of one named limiter.

    Attributes:
        name: Policy name used in logs (e.g. "auth", "upload").
        window_ms: Length of the fixed counting window in milliseconds.
        max_requests: Admission ceiling per key and window.
        message: Message returned to throttled clients.
        skip_successful_requests: Do not count requests that succeeded.
        skip_failed_requests: Do not count requests that failed.
        key_generator: Maps a request context to the key the quota is
            tracked against. None selects the client-IP based default.
    """

    name: str
    window_ms: int
    max_requests: int
    message: str = DEFAULT_MESSAGE
    skip_successful_requests: bool = False
    skip_failed_requests: bool = False
    key_generator: KeyGenerator | None = None

    def __post_init__(self) -> None:
        if self.max_requests < 1:
            raise ValidationAppError(
                code="invalid_rate_limit_policy",
                message="max_requests must be >= 1",
                details={"policy": self.name, "field": "max_requests", "actual_value": self.max_requests},
            )
        if self.window_ms < 1:
            raise ValidationAppError(
                code="invalid_rate_limit_policy",
                message="window_ms must be >= 1",
                details={"policy": self.name, "field": "window_ms", "actual_value": self.window_ms},
            )

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000


@dataclass(frozen=True)
class RateLimitResult:
    """Admission decision for a single request.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max requests per window.
        remaining: Requests left in the window once this one is recorded
            (0 when blocked, never negative).
        reset_at: UNIX epoch seconds when the current window ends.
        retry_after_seconds: Whole seconds to wait when blocked, else None.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after_seconds: int | None


class AbstractRateLimiter(ABC):
    """Interface for rate limiters.

    Checking and counting are separate steps: callers decide whether a
    request is billed against the quota by calling ``record_request`` after
    the guarded operation finished.
    """

    @property
    @abstractmethod
    def policy(self) -> RateLimitPolicy:
        raise NotImplementedError

    @abstractmethod
    def derive_key(self, request_context: Any) -> str:
        """Return the key the request is tracked under."""
        raise NotImplementedError

    @abstractmethod
    def check_limit(self, request_context: Any) -> RateLimitResult:
        """Decide whether the request may proceed without consuming quota.

        Args:
            request_context: Object the policy's key generator understands
                (typically a Starlette ``Request``).

        Returns:
            RateLimitResult describing whether it was allowed.
        """
        raise NotImplementedError

    @abstractmethod
    def record_request(self, request_context: Any, outcome: bool | None = None) -> None:
        """Count a request against the key's current window.

        Args:
            request_context: Same context passed to ``check_limit``.
            outcome: True when the operation succeeded, False when it failed,
                None when unknown. Only consulted by the skip options.
        """
        raise NotImplementedError

    @abstractmethod
    def sweep_expired(self) -> int:
        """Drop state whose window has ended. Returns the number removed."""
        raise NotImplementedError

    def close(self) -> None:
        """Release background resources. No-op by default."""
