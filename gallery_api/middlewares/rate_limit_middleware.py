"""
Rate limiting middleware using slowapi.
Requests are keyed by authenticated user when a valid bearer token is sent,
otherwise by client IP.
"""
import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from gallery_api.config import get_settings
from gallery_api.utils.client_ip import get_client_ip
from gallery_api.utils.prometheus_metrics import rate_limit_hits_total
from gallery_api.utils.security import decode_access_token

logger = logging.getLogger("gallery_api.rate_limit")
settings = get_settings()

RATE_LIMIT_PAYLOAD = {
    "status": status.HTTP_429_TOO_MANY_REQUESTS,
    "message": "Too many requests, please you need to slow down, try again later.",
}


def get_rate_limit_key(request: Request) -> str:
    """
    Rate limiting key: ``user:<id>`` for a verifiable bearer token, else the
    client IP.
    """
    authorization = request.headers.get("Authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        payload = decode_access_token(token.strip())
        if payload is not None:
            return f"user:{payload.sub}"
    return get_client_ip(request)


limiter = Limiter(
    key_func=get_rate_limit_key,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"],
    enabled=settings.rate_limit_enabled,
    storage_uri="memory://",  # per worker process
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """
    429 with the fixed payload; counted and logged.
    Kept synchronous: the slowapi middleware calls it without awaiting.
    """
    endpoint = request.url.path
    rate_limit_hits_total.labels(endpoint=endpoint).inc()
    logger.warning(
        "Rate limit exceeded",
        extra={
            "event": "rate_limit",
            "client_id": get_rate_limit_key(request),
            "endpoint": endpoint,
            "limit": getattr(exc, "detail", "unknown"),
        },
    )
    return JSONResponse(status_code=status.HTTP_429_TOO_MANY_REQUESTS, content=RATE_LIMIT_PAYLOAD)


def setup_rate_limit(app) -> None:
    """Attach the limiter, its 429 handler and the default-limit middleware."""
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)
