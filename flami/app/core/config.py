import json
from pathlib import Path
from typing import Annotated, Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


DEFAULT_HANDLER_INTERPRETERS = {
    ".js": "node",
    ".mjs": "node",
    ".sh": "sh",
}


def _parse_interpreters(raw: Any) -> dict[str, str]:
    if raw is None:
        return dict(DEFAULT_HANDLER_INTERPRETERS)
    if isinstance(raw, dict):
        items = raw.items()
    else:
        raw = str(raw).strip()
        if not raw:
            return dict(DEFAULT_HANDLER_INTERPRETERS)
        # JSON object or comma separated ".js=node,.sh=sh" pairs
        if raw.startswith("{"):
            parsed = json.loads(raw)
            if not isinstance(parsed, dict):
                raise ValueError("handler_interpreters must be a JSON object")
            items = parsed.items()
        else:
            pairs = [p.strip() for p in raw.split(",") if p.strip()]
            items = []
            for pair in pairs:
                if "=" not in pair:
                    raise ValueError(f"Invalid interpreter mapping: {pair!r}")
                ext, _, command = pair.partition("=")
                items.append((ext, command))

    result: dict[str, str] = {}
    for ext, command in items:
        ext = str(ext).strip().lower()
        command = str(command).strip()
        if not ext or not command:
            continue
        if not ext.startswith("."):
            ext = f".{ext}"
        result[ext] = command
    return result


class Settings(BaseSettings):
    """Server settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Debug mode - more verbose logging of handler failures
    debug: bool = False

    # Network binding
    host: str = "0.0.0.0"
    port: int = 8000

    # Site layout, relative names resolve against site_root
    site_root: Path = Path(".")
    template_file: str = "page.html"
    static_dir: str = "static"
    pages_dir: str = "pages"
    components_dir: str = "components"
    handler_dir: str = "handlers"

    # External page handlers
    handler_timeout_seconds: float = 10.0
    # Use NoDecode so ".js=node" style values don't go through JSON decoding
    handler_interpreters: Annotated[dict[str, str], NoDecode] = dict(
        DEFAULT_HANDLER_INTERPRETERS
    )

    @field_validator("handler_interpreters", mode="before")
    @classmethod
    def decode_handler_interpreters(cls, v: Any) -> dict[str, str]:
        return _parse_interpreters(v)

    # Rate limiting settings
    rate_limit_max_requests: int = 100  # Requests allowed per window
    rate_limit_window_seconds: float = 1.0
    rate_limit_ban_seconds: int = 300  # 5 minutes
    rate_limit_sweep_interval_seconds: float = 60.0

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    @property
    def resolved_root(self) -> Path:
        """Absolute site root directory."""
        return self.site_root.expanduser().resolve()

    def site_path(self, name: str) -> Path:
        """Resolve a site-relative directory or file name against the root."""
        return self.resolved_root / name

    @field_validator("rate_limit_max_requests", "rate_limit_ban_seconds")
    @classmethod
    def validate_rate_limit_positive(cls, v: int) -> int:
        """Validate rate limit values are positive."""
        if v < 1:
            raise ValueError("Rate limit values must be at least 1")
        return v

    @field_validator(
        "rate_limit_window_seconds",
        "rate_limit_sweep_interval_seconds",
        "handler_timeout_seconds",
    )
    @classmethod
    def validate_interval_positive(cls, v: float) -> float:
        """Validate intervals and timeouts are positive."""
        if v <= 0:
            raise ValueError("Interval and timeout values must be positive")
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not 0 < v < 65536:
            raise ValueError("port must be between 1 and 65535")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("text", "structured", "json"):
            raise ValueError("log_format must be one of: text, structured, json")
        return v

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
