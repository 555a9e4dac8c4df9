"""
Per-client request limits for the workspace API.

SlowAPIMiddleware applies the default limit to every route. Creating
projects and sources and sending messages carry tighter decorators.
Counters live in Redis when REDIS_URL is set so that all workers share them.
"""

import ipaddress
import logging

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from infrastructure.config.settings import settings

logger = logging.getLogger(__name__)

# "<count>/<second|minute|hour|day>"
RATE_LIMITS = {
    "default": "100/minute",
    "create_project": "20/minute",
    "create_source": "30/minute",
    "send_message": "60/minute",
}

_FORWARDING_HEADERS = ("x-forwarded-for", "x-real-ip")


def _public_address(value: str) -> str | None:
    """The address in ``value`` if it parses and is publicly routable."""
    try:
        address = ipaddress.ip_address(value.strip())
    except ValueError:
        return None
    if address.is_private or address.is_loopback or address.is_link_local:
        return None
    return str(address)


def client_ip(request: Request) -> str:
    """
    Limiter key for a request.

    Proxy headers are honoured only for public addresses, since private
    ones are trivially spoofed from inside the network. Everything else
    falls back to the socket peer.
    """
    for header in _FORWARDING_HEADERS:
        forwarded = request.headers.get(header)
        if forwarded:
            address = _public_address(forwarded.split(",")[0])
            if address:
                return address
    return get_remote_address(request)


def _storage_uri() -> str:
    if settings.redis_url:
        return settings.redis_url
    if settings.is_production:
        logger.warning("REDIS_URL is not set; rate limits are counted per process")
    return "memory://"


limiter = Limiter(
    key_func=client_ip,
    storage_uri=_storage_uri(),
    default_limits=[RATE_LIMITS["default"]],
)


def get_rate_limit(endpoint: str) -> str:
    """
    >>> get_rate_limit("create_project")
    '20/minute'
    >>> get_rate_limit("list_projects")
    '100/minute'
    """
    return RATE_LIMITS.get(endpoint, RATE_LIMITS["default"])
