"""Middleware package for the server."""

from flami.app.middleware.rate_limit import (
    AdmitResult,
    ClientWindow,
    RateLimitMiddleware,
    SlidingWindowRateLimiter,
    get_client_id,
)
from flami.app.middleware.request_id import RequestIdMiddleware, get_request_id

__all__ = [
    "AdmitResult",
    "ClientWindow",
    "RateLimitMiddleware",
    "SlidingWindowRateLimiter",
    "get_client_id",
    "RequestIdMiddleware",
    "get_request_id",
]
