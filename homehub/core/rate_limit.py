"""Rate limiting configuration using slowapi."""

from slowapi import Limiter
from starlette.requests import Request

# Outbound dispatch routes fan out to third-party providers
DISPATCH_RATE_LIMIT = "20/minute"


def _get_real_client_ip(request: Request) -> str:
    """Extract the real client IP behind a reverse proxy."""
    return (
        request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
        or request.headers.get("X-Real-IP", "")
        or (request.client.host if request.client else "127.0.0.1")
    )


limiter = Limiter(key_func=_get_real_client_ip)
