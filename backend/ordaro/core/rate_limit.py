"""Shared rate limiter instance for use across route files."""

from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request

from ordaro.core.config import settings


def get_tenant_or_ip(request: Request) -> str:
    """Rate limit by tenant if authenticated, else by IP."""
    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer "):
        from ordaro.core.security import decode_access_token
        token = auth.split(" ", 1)[1]
        payload = decode_access_token(token)
        if payload and payload.get("org_id"):
            return f"org:{payload['org_id']}"
    return get_remote_address(request)


limiter = Limiter(
    key_func=get_tenant_or_ip,
    enabled=settings.rate_limit_enabled,
    default_limits=[f"{settings.rate_limit_requests}/{settings.rate_limit_window} seconds"],
)
