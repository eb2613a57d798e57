"""Response assembly.

Turns render results, failures and throttle verdicts into Starlette
responses. Error responses never carry a body: the status is all a client
learns about a failure.
"""

from typing import TYPE_CHECKING

from fastapi import Response

from flami.app.core.mime_types import content_type_header
from flami.app.exceptions import (
    FlamiException,
    RouteNotFoundError,
    ThrottledClientError,
)

if TYPE_CHECKING:
    from flami.app.services.renderer import RenderResult

# Status for failures that are not FlamiExceptions
DEFAULT_ERROR_STATUS = RouteNotFoundError.status_code


def status_for(exc: BaseException) -> int:
    """HTTP status an exception maps to."""
    if isinstance(exc, FlamiException):
        return exc.status_code
    return DEFAULT_ERROR_STATUS


def assemble(result: "RenderResult") -> Response:
    """Build the response for a RenderResult.

    A redirect yields 302 with only a Location header. Anything else yields
    200 with the content type, the handler's extra headers and one
    Set-Cookie header per cookie directive.
    """
    if result.redirect_location is not None:
        return Response(status_code=302, headers={"Location": result.redirect_location})

    response = Response(
        content=result.body,
        status_code=200,
        media_type=content_type_header(result.media_type),
    )
    for name, value in result.headers.items():
        response.headers[name] = value
    for cookie in result.cookies:
        response.headers.append("set-cookie", cookie.header_value())
    return response


def error_response(exc: BaseException) -> Response:
    """Empty response with the status the exception maps to."""
    if isinstance(exc, ThrottledClientError):
        return throttled_response(exc.retry_after)
    return Response(status_code=status_for(exc))


def throttled_response(retry_after: int) -> Response:
    """Empty 429 response telling the client how long its ban lasts."""
    return Response(status_code=429, headers={"Retry-After": str(retry_after)})
