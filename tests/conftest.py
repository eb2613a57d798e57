"""Shared fixtures: a throwaway site directory and an app serving it."""

import textwrap
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from flami.app.core.config import Settings
from flami.app.main import create_app

TEMPLATE = (
    "<html><head><title>/*=-title-=*/</title></head>"
    "<body data-page=\"/*=-path-=*/\"><script>const vars = /*=-vars-=*/</script></body></html>"
)

# Smallest valid PNG: signature plus IHDR/IDAT/IEND for a 1x1 pixel
PNG_BYTES = bytes.fromhex(
    "89504e470d0a1a0a0000000d49484452000000010000000108060000001f15c489"
    "0000000d4944415478da63f8ffff3f0005fe02fea7d6a4b40000000049454e44ae426082"
)


def write_handler(site: Path, page_name: str, source: str) -> Path:
    """Write a Python handler script for ``page_name`` (e.g. "api/time")."""
    path = site / "handlers" / f"{page_name}.py"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(source).lstrip())
    return path


def write_page(site: Path, page_name: str, handler_source: str | None = None) -> None:
    """Create a page definition and, optionally, its handler."""
    page = site / "pages" / f"{page_name}.js"
    page.parent.mkdir(parents=True, exist_ok=True)
    page.write_text("export const page = vars => vars\n")
    if handler_source is not None:
        write_handler(site, page_name, handler_source)


@pytest.fixture
def site(tmp_path: Path) -> Path:
    """A site root with a home page, an API page, a component and assets."""
    root = tmp_path / "site"
    for name in ("static", "pages", "components", "handlers"):
        (root / name).mkdir(parents=True)

    (root / "page.html").write_text(TEMPLATE)
    (root / "static" / "logo.png").write_bytes(PNG_BYTES)
    (root / "static" / "style.css").write_text("body { margin: 0; }\n")
    (root / "components" / "timer.js").write_text("export const timer = () => 0\n")

    write_page(root, "index", """
        import json, sys
        request = json.load(sys.stdin)
        print(json.dumps({"greeting": "hello", "query": request["queryParams"]}))
    """)
    write_page(root, "api/echo", """
        import json, sys
        print(json.dumps(json.load(sys.stdin)))
    """)
    return root


@pytest.fixture
def app_settings(site: Path) -> Settings:
    return Settings(
        _env_file=None,
        site_root=site,
        handler_timeout_seconds=10.0,
        rate_limit_max_requests=100,
        rate_limit_ban_seconds=300,
    )


@pytest.fixture
def app(app_settings: Settings):
    return create_app(app_settings)


@pytest.fixture
def client(app):
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
