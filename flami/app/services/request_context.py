"""Per-request context handed to the renderer and to page handlers."""

from typing import Any
from urllib.parse import parse_qsl

from fastapi import Request
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from flami.app.core.cookies import parse_cookie_header


class RequestContext(BaseModel):
    """Everything a page handler may know about the request.

    Built once per request and frozen. Serialized for handlers with
    camelCase keys (clientId, queryParams, bodyParams, ...).
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    client_id: str
    method: str = "GET"
    path: str = "/"
    query_params: dict[str, str] = Field(default_factory=dict)
    body_params: dict[str, str | list[str]] = Field(default_factory=dict)
    cookies: dict[str, str] = Field(default_factory=dict)

    def to_handler_payload(self) -> bytes:
        """JSON document written to a handler's standard input."""
        return self.model_dump_json(by_alias=True).encode("utf-8")


def get_client_id(request: Request) -> str:
    """Client identity: the transport peer address."""
    return request.client.host if request.client else "unknown"


def flatten_query(pairs: list[tuple[str, str]]) -> dict[str, str]:
    """Collapse repeated query names to their first value.

    >>> flatten_query([("tag", "1"), ("tag", "2")])
    {'tag': '1'}
    """
    params: dict[str, str] = {}
    for name, value in pairs:
        params.setdefault(name, value)
    return params


def parse_form_body(body: bytes) -> dict[str, str | list[str]]:
    """Parse a URL-encoded form body.

    A name that appears once maps to its value; a repeated name maps to the
    list of its values in order.
    """
    if not body:
        return {}
    text = body.decode("utf-8", errors="replace")
    params: dict[str, Any] = {}
    for name, value in parse_qsl(text, keep_blank_values=True):
        if name not in params:
            params[name] = value
        elif isinstance(params[name], list):
            params[name].append(value)
        else:
            params[name] = [params[name], value]
    return params


async def build_request_context(request: Request) -> RequestContext:
    """Build the context for ``request``.

    The body is always drained, even for routes that never look at it, so
    the connection can be reused.
    """
    body = await request.body()
    return RequestContext(
        client_id=get_client_id(request),
        method=request.method,
        path=request.url.path,
        query_params=flatten_query(
            parse_qsl(request.url.query, keep_blank_values=True)
        ),
        body_params=parse_form_body(body),
        cookies=parse_cookie_header(request.headers.get("cookie")),
    )
