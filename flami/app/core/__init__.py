"""Core utilities for the flami server."""

from flami.app.core.config import Settings, settings
from flami.app.core.cookies import CookieDirective, parse_cookie_header
from flami.app.core.file_cache import FileCache
from flami.app.core.logging import get_logger, setup_logging
from flami.app.core.mime_types import content_type_header, get_mime_type

__all__ = [
    "Settings",
    "settings",
    "CookieDirective",
    "parse_cookie_header",
    "FileCache",
    "get_logger",
    "setup_logging",
    "content_type_header",
    "get_mime_type",
]
