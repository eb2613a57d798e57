"""Custom exceptions for the flami server.

Every failure the request pipeline knows about is one of these classes, and
each class declares the HTTP status it maps to. Only a throttled client is
told what happened; every other kind is reported to the client as a bare 404
and the cause is logged server-side.
"""


class FlamiException(Exception):
    """Base class for server exceptions with HTTP status code.

    All custom exceptions should inherit from this class and define
    their specific status_code for consistent HTTP response handling.
    """
    status_code: int = 404

    def __init__(self, message: str = "Request failed"):
        self.message = message
        super().__init__(message)


class ThrottledClientError(FlamiException):
    """Raised when a client is banned by the rate limiter.

    Maps to HTTP 429 Too Many Requests.
    """
    status_code = 429

    def __init__(self, client_id: str, retry_after: int):
        self.client_id = client_id
        self.retry_after = retry_after
        super().__init__(f"Client {client_id} is throttled for {retry_after}s")


class RouteNotFoundError(FlamiException):
    """Raised when a path has no page definition or file behind it.

    Maps to HTTP 404 Not Found.
    """
    status_code = 404

    def __init__(self, path: str, reason: str | None = None):
        self.path = path
        message = f"No route for {path}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class HandlerNotFoundError(RouteNotFoundError):
    """Raised when a page exists but no handler executable matches it."""


class HandlerFailureError(FlamiException):
    """Raised when a page handler writes to stderr, exits non-zero or
    produces output that cannot be turned into a response.

    Maps to HTTP 404 Not Found.
    """
    status_code = 404

    def __init__(
        self,
        handler: str,
        detail: str = "Handler failed",
        stderr: str | None = None,
        returncode: int | None = None,
    ):
        self.handler = handler
        self.detail = detail
        self.stderr = stderr
        self.returncode = returncode
        super().__init__(f"{handler}: {detail}")


class HandlerTimeoutError(HandlerFailureError):
    """Raised when a page handler does not finish within its timeout."""

    def __init__(self, handler: str, timeout: float):
        self.timeout = timeout
        super().__init__(handler, f"timed out after {timeout:g}s")


class FileReadFailureError(FlamiException):
    """Raised when a file the renderer depends on cannot be read.

    Maps to HTTP 404 Not Found.
    """
    status_code = 404

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Cannot read {path}")
