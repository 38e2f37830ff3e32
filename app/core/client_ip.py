"""Client identity helpers used to derive rate limit keys.

The portal runs behind proxies/CDNs, so the peer address of the socket is
the proxy's. The originating address is read from forwarding headers in
this order:

1. ``X-Forwarded-For`` (first comma-separated entry)
2. ``X-Real-IP``
3. ``CF-Connecting-IP``

Requests carrying none of them share the ``"unknown"`` bucket.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping

UNKNOWN_CLIENT = "unknown"

FORWARDED_FOR_HEADER = "x-forwarded-for"
REAL_IP_HEADER = "x-real-ip"
CONNECTING_IP_HEADER = "cf-connecting-ip"


def get_client_ip(headers: Mapping[str, str], *, include_connecting_ip: bool = True) -> str:
    """Resolve the originating client address from request headers.

    Args:
        headers: Request headers. Starlette ``Headers`` are case-insensitive;
            plain dicts must use lower-case names.
        include_connecting_ip: Also consult ``CF-Connecting-IP``.

    Returns:
        The client address, or ``"unknown"`` when no header identifies it.

    Examples:
        >>> get_client_ip({"x-forwarded-for": "203.0.113.7, 10.0.0.1"})
        '203.0.113.7'
        >>> get_client_ip({})
        'unknown'
    """

    forwarded_for = headers.get(FORWARDED_FOR_HEADER)
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    real_ip = (headers.get(REAL_IP_HEADER) or "").strip()
    if real_ip:
        return real_ip

    if include_connecting_ip:
        connecting_ip = (headers.get(CONNECTING_IP_HEADER) or "").strip()
        if connecting_ip:
            return connecting_ip

    return UNKNOWN_CLIENT


def default_key_generator(request: Any) -> str:
    """Key a request by client address (``rate_limit:<ip>``)."""

    return f"rate_limit:{get_client_ip(request.headers)}"


def namespaced_key_generator(
    namespace: str,
    *,
    include_connecting_ip: bool = True,
) -> Callable[[Any], str]:
    """Build a key generator that prefixes the client address with a namespace.

    Lets two policies track the same client independently, e.g. login
    attempts (``auth_limit:<ip>``) versus general traffic.
    """

    def _key(request: Any) -> str:
        ip = get_client_ip(request.headers, include_connecting_ip=include_connecting_ip)
        return f"{namespace}:{ip}"

    return _key
