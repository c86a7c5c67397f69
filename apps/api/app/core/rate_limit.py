"""Rate limiting for admin endpoints (slowapi)."""

from slowapi import Limiter
from starlette.requests import Request

from app.core.config import settings


def client_address(request: Request) -> str:
    """Caller address as forwarded by the panel's reverse proxy.

    ``X-Real-IP`` wins over the first ``X-Forwarded-For`` hop; direct
    connections fall back to the socket peer.
    """
    forwarded = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
    return (
        request.headers.get("X-Real-IP", "").strip()
        or forwarded
        or (request.client.host if request.client else "127.0.0.1")
    )


limiter = Limiter(key_func=client_address, enabled=settings.rate_limit_enabled)
