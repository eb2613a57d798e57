"""Services package for the server.

This package provides:
- Request context building
- Route classification
- Isolated page handler processes
- Rendering and response assembly
"""

from flami.app.services.handler_runner import (
    HandlerOutput,
    IsolatedHandler,
    parse_handler_output,
)
from flami.app.services.request_context import RequestContext, build_request_context
from flami.app.services.route_classifier import Route, RouteKind, classify

__all__ = [
    "HandlerOutput",
    "IsolatedHandler",
    "parse_handler_output",
    "RequestContext",
    "build_request_context",
    "Route",
    "RouteKind",
    "classify",
]
