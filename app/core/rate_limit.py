"""Rate limiting for FastAPI routes.

This module wires the rate limiting adapter into the HTTP layer.

- ``build_rate_limiters`` constructs the named limiters (general, auth,
  upload, admin, search, download) once at startup from settings.
- ``with_rate_limit`` composes one limiter with an endpoint: throttled
  requests get a 429 without running the endpoint, admitted requests are
  counted after the endpoint returns and carry X-RateLimit-* headers.

Usage:
    limiters = build_rate_limiters(settings.rate_limit)
    router.get("/admin/audit-logs")(with_rate_limit(limiters.admin, list_audit_logs))
"""

from __future__ import annotations

import functools
import inspect
import logging
import math
import time
from dataclasses import dataclass, fields
from typing import Any, Awaitable, Callable, Iterator

from fastapi import Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitPolicy, RateLimitResult
from app.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from app.core.client_ip import namespaced_key_generator
from app.core.config import RateLimitSettings, settings
from app.core.logging import hash_identifier

logger = logging.getLogger(__name__)

Handler = Callable[..., Awaitable[Any]]


@dataclass(frozen=True)
class RateLimiters:
    """The named limiters of the portal, one per endpoint family."""

    general: AbstractRateLimiter
    auth: AbstractRateLimiter
    upload: AbstractRateLimiter
    admin: AbstractRateLimiter
    search: AbstractRateLimiter
    download: AbstractRateLimiter

    def __iter__(self) -> Iterator[AbstractRateLimiter]:
        return (getattr(self, f.name) for f in fields(self))

    def close(self) -> None:
        """Stop the background sweepers of every limiter."""
        for limiter in self:
            limiter.close()


def build_policies(cfg: RateLimitSettings) -> dict[str, RateLimitPolicy]:
    """Build the named policies from settings.

    Args:
        cfg: Rate limit settings (ceilings and windows per policy).

    Returns:
        Mapping of policy name to policy.
    """

    return {
        "general": RateLimitPolicy(
            name="general",
            window_ms=cfg.general_window_ms,
            max_requests=cfg.general_max_requests,
            message="Too many requests. Please try again in a minute.",
        ),
        "auth": RateLimitPolicy(
            name="auth",
            window_ms=cfg.auth_window_ms,
            max_requests=cfg.auth_max_requests,
            message="Too many authentication attempts. Please try again in 15 minutes.",
            key_generator=namespaced_key_generator("auth_limit", include_connecting_ip=False),
        ),
        "upload": RateLimitPolicy(
            name="upload",
            window_ms=cfg.upload_window_ms,
            max_requests=cfg.upload_max_requests,
            message="Upload limit exceeded. Please try again in an hour.",
        ),
        "admin": RateLimitPolicy(
            name="admin",
            window_ms=cfg.admin_window_ms,
            max_requests=cfg.admin_max_requests,
            message="Admin API rate limit exceeded. Please try again later.",
        ),
        "search": RateLimitPolicy(
            name="search",
            window_ms=cfg.search_window_ms,
            max_requests=cfg.search_max_requests,
            message="Too many search requests. Please try again in 10 minutes.",
        ),
        "download": RateLimitPolicy(
            name="download",
            window_ms=cfg.download_window_ms,
            max_requests=cfg.download_max_requests,
            message="Download limit exceeded. Please try again in an hour.",
        ),
    }


def build_rate_limiters(
    cfg: RateLimitSettings | None = None,
    *,
    clock: Callable[[], float] = time.time,
) -> RateLimiters:
    """Construct one in-memory limiter per named policy.

    Each limiter starts its own sweeper thread unless
    ``cfg.sweep_interval_seconds`` is None. Call ``RateLimiters.close()``
    on shutdown.
    """

    if cfg is None:
        cfg = settings.rate_limit
    limiters = {
        name: InMemoryFixedWindowRateLimiter(
            policy,
            clock=clock,
            sweep_interval_seconds=cfg.sweep_interval_seconds,
        )
        for name, policy in build_policies(cfg).items()
    }
    logger.info(
        "rate_limit.configured",
        extra={
            "policies": {
                name: {"max_requests": lim.policy.max_requests, "window_ms": lim.policy.window_ms}
                for name, lim in limiters.items()
            },
            "sweep_interval_s": cfg.sweep_interval_seconds,
        },
    )
    return RateLimiters(**limiters)


def get_rate_limiters(request: Request) -> RateLimiters:
    """FastAPI dependency returning the limiters built by the app factory."""

    return request.app.state.rate_limiters


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """X-RateLimit-* headers describing the key's current window."""

    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(math.ceil(result.reset_at)),
    }


def build_rejection_response(policy: RateLimitPolicy, result: RateLimitResult) -> JSONResponse:
    """Build the 429 response for a throttled request."""

    retry_after = result.retry_after_seconds or 0
    headers = {"Retry-After": str(retry_after)}
    if settings.rate_limit.include_headers:
        headers.update(rate_limit_headers(result))
        headers["X-RateLimit-Remaining"] = "0"

    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={
            "success": False,
            "error": policy.message,
            "retryAfter": retry_after,
        },
        headers=headers,
    )


def _find_request(args: tuple[Any, ...], kwargs: dict[str, Any]) -> Request:
    for value in (*args, *kwargs.values()):
        if isinstance(value, Request):
            return value
    raise TypeError("rate limited endpoints must declare a Request parameter")


def _as_response(result: Any) -> Response:
    if isinstance(result, Response):
        return result
    return JSONResponse(content=jsonable_encoder(result))


def with_rate_limit(limiter: AbstractRateLimiter, handler: Handler) -> Handler:
    """Wrap an async endpoint with admission control.

    The wrapped endpoint keeps the handler's signature, so FastAPI injects
    parameters as usual. The handler must declare a ``Request`` parameter.

    Args:
        limiter: Limiter whose policy applies to this endpoint.
        handler: Async endpoint returning a Response or JSON-serializable data.

    Returns:
        Async endpoint enforcing the limiter's policy.
    """

    policy = limiter.policy

    @functools.wraps(handler)
    async def rate_limited_handler(*args: Any, **kwargs: Any) -> Response:
        if not settings.rate_limit.enabled:
            return _as_response(await handler(*args, **kwargs))

        request = _find_request(args, kwargs)
        result = limiter.check_limit(request)

        if not result.allowed:
            logger.warning(
                "rate_limit.exceeded",
                extra={
                    "policy": policy.name,
                    "key_hash": hash_identifier(limiter.derive_key(request)),
                    "limit": result.limit,
                    "remaining": result.remaining,
                    "window_ms": policy.window_ms,
                    "retry_after_s": result.retry_after_seconds,
                    "path": request.url.path,
                },
            )
            return build_rejection_response(policy, result)

        response = _as_response(await handler(*args, **kwargs))
        limiter.record_request(request, 200 <= response.status_code < 300)

        logger.debug(
            "rate_limit.allowed",
            extra={
                "policy": policy.name,
                "limit": result.limit,
                "remaining": result.remaining,
                "status_code": response.status_code,
            },
        )

        if settings.rate_limit.include_headers:
            response.headers.update(rate_limit_headers(result))
        return response

    # Resolve string annotations against the handler module, not this one.
    rate_limited_handler.__signature__ = inspect.signature(handler, eval_str=True)  # type: ignore[attr-defined]
    return rate_limited_handler

