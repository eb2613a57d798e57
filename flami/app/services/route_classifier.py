"""URL path classification.

Every request path maps to exactly one route kind. Classification looks at
the path string only; whether the file or page behind it exists is decided
later by the renderer.
"""

from dataclasses import dataclass
from enum import Enum

STATIC_PREFIX = "static"
SCRIPT_PREFIXES = ("pages", "components")
SCRIPT_EXTENSION = ".js"
API_SEGMENT = "api"
INDEX_PAGE = "/index"


class RouteKind(str, Enum):
    """How a path is served."""
    STATIC_ASSET = "static_asset"
    COMPONENT_SCRIPT = "component_script"
    PAGE = "page"
    API_PAGE = "api_page"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class Route:
    """A classified path.

    Attributes:
        kind: Route kind
        target: Site-relative file for static and component routes, page
            name (leading slash, no extension) for page and API routes
        path: The normalized request path
    """
    kind: RouteKind
    target: str = ""
    path: str = ""

    @property
    def is_dynamic(self) -> bool:
        return self.kind in (RouteKind.PAGE, RouteKind.API_PAGE)


NOT_FOUND = Route(RouteKind.NOT_FOUND)


def normalize_path(path: str) -> str | None:
    """Normalize a URL path, or return None if it is unsafe.

    ``/`` becomes ``/index`` and a trailing slash is dropped. Empty, ``.``
    and ``..`` segments, backslashes and NUL bytes are rejected.
    """
    if "\\" in path or "\x00" in path:
        return None
    if not path.startswith("/"):
        path = "/" + path
    if path != "/" and path.endswith("/"):
        path = path[:-1]
    if path == "/":
        return INDEX_PAGE
    segments = path[1:].split("/")
    if any(segment in ("", ".", "..") for segment in segments):
        return None
    return path


def classify(path: str) -> Route:
    """Classify a URL path.

    >>> classify("/").kind
    <RouteKind.PAGE: 'page'>
    >>> classify("/api/time").kind
    <RouteKind.API_PAGE: 'api_page'>
    """
    normalized = normalize_path(path)
    if normalized is None:
        return NOT_FOUND

    segments = normalized[1:].split("/")
    head = segments[0]
    relative = normalized[1:]

    if head == STATIC_PREFIX:
        if len(segments) < 2:
            return NOT_FOUND
        return Route(RouteKind.STATIC_ASSET, relative, normalized)

    if head in SCRIPT_PREFIXES and len(segments) > 1:
        if not relative.endswith(SCRIPT_EXTENSION):
            return NOT_FOUND
        return Route(RouteKind.COMPONENT_SCRIPT, relative, normalized)

    if "." in segments[-1]:
        return Route(RouteKind.STATIC_ASSET, f"{STATIC_PREFIX}/{relative}", normalized)

    kind = RouteKind.API_PAGE if API_SEGMENT in segments else RouteKind.PAGE
    return Route(kind, normalized, normalized)
