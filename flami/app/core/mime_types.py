"""Extension to MIME type lookup used for Content-Type headers."""

from pathlib import PurePosixPath

DEFAULT_MIME_TYPE = "text/plain"

MIME_TYPES = {
    ".html": "text/html",
    ".css": "text/css",
    ".js": "text/javascript",
    ".mjs": "text/javascript",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".webp": "image/webp",
    ".json": "application/json",
    ".pdf": "application/pdf",
    ".txt": "text/plain",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".eot": "application/vnd.ms-fontobject",
    ".otf": "font/opentype",
    ".ttf": "font/truetype",
    ".zip": "application/zip",
    ".rar": "application/x-rar-compressed",
    ".7z": "application/x-7z-compressed",
    ".tar": "application/x-tar",
    ".gz": "application/x-gzip",
    ".bz2": "application/x-bzip2",
    ".xz": "application/x-xz",
}

# Non text/* types that still carry character data
_TEXTUAL_TYPES = frozenset((
    "application/json",
    "application/javascript",
    "image/svg+xml",
))


def get_mime_type(path: str) -> str:
    """Return the MIME type for a file path, based on its extension."""
    suffix = PurePosixPath(path).suffix.lower()
    return MIME_TYPES.get(suffix, DEFAULT_MIME_TYPE)


def content_type_header(mime_type: str, charset: str = "utf-8") -> str:
    """Build a Content-Type value, adding a charset to textual types."""
    if "charset=" in mime_type.lower():
        return mime_type
    if mime_type.startswith("text/") or mime_type in _TEXTUAL_TYPES:
        return f"{mime_type}; charset={charset}"
    return mime_type
