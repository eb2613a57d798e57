"""Cookie header parsing and Set-Cookie formatting."""

from dataclasses import dataclass
from email.utils import formatdate
from typing import Any, Optional


_CONTROL_CHARS = frozenset("\r\n\x00")


def has_control_chars(value: str) -> bool:
    """True if ``value`` would break out of a single header line."""
    return any(ch in _CONTROL_CHARS for ch in value)


def parse_cookie_header(header: Optional[str]) -> dict[str, str]:
    """Parse a ``Cookie`` request header into a name to value mapping.

    Each ``;``-separated chunk is trimmed and split on its first ``=``;
    everything after it is the value, so values may contain ``=``.
    Chunks without ``=`` are ignored and the first occurrence of a name wins.

    >>> parse_cookie_header("a=1; b=x=y")
    {'a': '1', 'b': 'x=y'}
    """
    cookies: dict[str, str] = {}
    if not header:
        return cookies
    for chunk in header.split(";"):
        chunk = chunk.strip()
        if "=" not in chunk:
            continue
        name, *rest = chunk.split("=")
        name = name.strip()
        if not name or name in cookies:
            continue
        cookies[name] = "=".join(rest)
    return cookies


@dataclass(frozen=True)
class CookieDirective:
    """A cookie a page handler asked the server to set."""

    name: str
    value: str = ""
    expires: Optional[str] = None
    max_age: Optional[int] = None
    domain: Optional[str] = None
    path: Optional[str] = None
    secure: bool = False
    http_only: bool = False
    same_site: Optional[str] = None
    raw: Optional[str] = None

    def __post_init__(self) -> None:
        for attr in ("name", "value", "expires", "domain", "path", "same_site", "raw"):
            value = getattr(self, attr)
            if value is not None and has_control_chars(value):
                raise ValueError(f"cookie {attr} contains CR, LF or NUL")

    @classmethod
    def from_handler(cls, data: Any) -> "CookieDirective":
        """Build a directive from a handler's ``cookies`` entry.

        A string is used verbatim as the Set-Cookie value. An object uses the
        keys name, value, expires, maxAge, domain, path, secure, httpOnly and
        sameSite; ``expires`` may be Unix seconds or a preformatted date.

        Raises:
            ValueError: If the entry is neither a string nor a valid object.
        """
        if isinstance(data, str):
            if not data.strip():
                raise ValueError("empty cookie string")
            name = data.split("=", 1)[0].strip()
            return cls(name=name, raw=data.strip())
        if not isinstance(data, dict):
            raise ValueError(f"cookie must be a string or object, got {type(data).__name__}")

        name = data.get("name")
        if not isinstance(name, str) or not name:
            raise ValueError("cookie object requires a non-empty 'name'")

        expires = data.get("expires")
        if isinstance(expires, bool):
            raise ValueError("cookie 'expires' must be a number or string")
        if isinstance(expires, (int, float)):
            expires = formatdate(expires, usegmt=True)
        elif expires is not None:
            expires = str(expires)

        max_age = data.get("maxAge")
        if max_age is not None:
            if isinstance(max_age, bool):
                raise ValueError("cookie 'maxAge' must be an integer")
            try:
                max_age = int(max_age)
            except (TypeError, ValueError):
                raise ValueError("cookie 'maxAge' must be an integer") from None

        value = data.get("value")
        return cls(
            name=name,
            value="" if value is None else str(value),
            expires=expires,
            max_age=max_age,
            domain=_optional_str(data.get("domain")),
            path=_optional_str(data.get("path")),
            secure=bool(data.get("secure", False)),
            http_only=bool(data.get("httpOnly", False)),
            same_site=_optional_str(data.get("sameSite")),
        )

    def header_value(self) -> str:
        """Format the directive as a Set-Cookie header value."""
        if self.raw is not None:
            return self.raw
        parts = [f"{self.name}={self.value}"]
        if self.expires is not None:
            parts.append(f"Expires={self.expires}")
        if self.max_age is not None:
            parts.append(f"Max-Age={self.max_age}")
        if self.domain is not None:
            parts.append(f"Domain={self.domain}")
        if self.path is not None:
            parts.append(f"Path={self.path}")
        if self.secure:
            parts.append("Secure")
        if self.http_only:
            parts.append("HttpOnly")
        if self.same_site is not None:
            parts.append(f"SameSite={self.same_site}")
        return "; ".join(parts)


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)
