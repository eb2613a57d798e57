"""Per-request dispatch: context, classification, rendering, response.

Rate limiting has already happened in RateLimitMiddleware by the time a
request gets here.
"""

import time

from fastapi import Request, Response

from flami.app.core.logging import get_log_context, get_logger
from flami.app.exceptions import FlamiException, HandlerFailureError
from flami.app.middleware.request_id import get_request_id
from flami.app.services.renderer import Renderer
from flami.app.services.request_context import build_request_context, get_client_id
from flami.app.services.response_assembler import assemble, error_response
from flami.app.services.route_classifier import NOT_FOUND, classify

logger = get_logger(__name__)


class Dispatcher:
    """Serves one request end to end.

    Every failure is turned into a response here. Known failures keep the
    status their exception declares; anything unexpected is logged with its
    traceback and answered like a missing route, so clients never learn
    about file layout or handler internals.
    """

    def __init__(self, renderer: Renderer, debug: bool = False):
        self.renderer = renderer
        self.debug = debug

    async def handle(self, request: Request) -> Response:
        started = time.perf_counter()
        log_context = get_log_context(
            request_id=get_request_id(request),
            client_id=get_client_id(request),
            path=request.url.path,
            method=request.method,
        )
        route = NOT_FOUND

        try:
            context = await build_request_context(request)
            route = classify(context.path)
            result = await self.renderer.render(route, context)
            response = assemble(result)
        except HandlerFailureError as e:
            logger.warning(
                f"Handler failure for {request.url.path}: {e.message}",
                extra={**log_context, "handler_stderr": e.stderr, "returncode": e.returncode},
            )
            response = error_response(e)
        except FlamiException as e:
            logger.info(
                f"Not served {request.url.path}: {e.message}",
                extra=log_context,
                exc_info=self.debug,
            )
            response = error_response(e)
        except Exception as e:
            logger.exception(
                f"Unhandled exception for {request.url.path}",
                extra={**log_context, "exception_type": type(e).__name__},
            )
            response = error_response(e)

        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        logger.info(
            f"{request.method} {request.url.path} {response.status_code}",
            extra={
                **log_context,
                "route_kind": route.kind.value,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        return response
