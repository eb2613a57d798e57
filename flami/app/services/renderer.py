"""Route rendering.

Turns a classified route into a RenderResult:

* static assets and component scripts are file bytes served through the
  FileCache;
* pages run their handler and are wrapped in the HTML page template;
* API pages run their handler and return its content as JSON, never
  wrapped in the template.
"""

import html
import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from flami.app.core.config import Settings
from flami.app.core.cookies import CookieDirective
from flami.app.core.file_cache import FileCache
from flami.app.core.logging import get_logger
from flami.app.core.mime_types import get_mime_type
from flami.app.exceptions import FileReadFailureError, RouteNotFoundError
from flami.app.services.handler_runner import HandlerOutput, IsolatedHandler
from flami.app.services.request_context import RequestContext
from flami.app.services.route_classifier import Route, RouteKind

logger = get_logger(__name__)

TITLE_PLACEHOLDER = "/*=-title-=*/"
PATH_PLACEHOLDER = "/*=-path-=*/"
VARS_PLACEHOLDER = "/*=-vars-=*/"
HOME_TITLE = "Home"

_PLACEHOLDER_PATTERN = re.compile(
    "|".join(re.escape(p) for p in (TITLE_PLACEHOLDER, PATH_PLACEHOLDER, VARS_PLACEHOLDER))
)


@dataclass
class RenderResult:
    """Rendered content plus what the handler asked to add to the response.

    When ``redirect_location`` is set the content is ignored.
    """
    content: bytes | str = b""
    media_type: str = "text/html"
    headers: dict[str, str] = field(default_factory=dict)
    cookies: list[CookieDirective] = field(default_factory=list)
    redirect_location: Optional[str] = None

    @property
    def is_redirect(self) -> bool:
        return self.redirect_location is not None

    @property
    def body(self) -> bytes:
        if isinstance(self.content, str):
            return self.content.encode("utf-8")
        return self.content


def _script_safe_json(value: Any) -> str:
    """Serialize for embedding inside an inline <script> block."""
    return json.dumps(value, ensure_ascii=False).replace("</", "<\\/")


def fill_template(template: str, title: str, page_id: str, variables: Any) -> str:
    """Substitute the three page placeholders, each exactly once.

    All placeholders are replaced in a single scan of the template, so text
    inserted for one placeholder is never searched for another.
    """
    values = {
        TITLE_PLACEHOLDER: html.escape(title),
        VARS_PLACEHOLDER: _script_safe_json(variables),
        PATH_PLACEHOLDER: html.escape(page_id),
    }

    def substitute(match: re.Match) -> str:
        marker = match.group(0)
        # Later occurrences of an already filled placeholder stay as they are
        return values.pop(marker, marker)

    return _PLACEHOLDER_PATTERN.sub(substitute, template)


class Renderer:
    """Resolves routes to content for one site root.

    Usage:
        renderer = Renderer(settings, FileCache())
        result = await renderer.render(classify(path), context)
    """

    def __init__(
        self,
        app_settings: Settings,
        file_cache: FileCache,
        handler: Optional[IsolatedHandler] = None,
    ):
        self.settings = app_settings
        self.root = app_settings.resolved_root
        self.file_cache = file_cache
        self.pages_dir = app_settings.site_path(app_settings.pages_dir)
        self.template_path = app_settings.site_path(app_settings.template_file)
        self.handler = handler or IsolatedHandler(
            app_settings.site_path(app_settings.handler_dir),
            timeout=app_settings.handler_timeout_seconds,
            interpreters=app_settings.handler_interpreters,
            cwd=self.root,
        )
        # Site-relative top directories the URL prefixes map to
        self._dir_names = {
            "static": app_settings.static_dir,
            "pages": app_settings.pages_dir,
            "components": app_settings.components_dir,
        }

    async def render(self, route: Route, context: RequestContext) -> RenderResult:
        """Render a classified route.

        Raises:
            RouteNotFoundError: Unknown route, missing file, page or handler
            HandlerFailureError: The page handler failed
            FileReadFailureError: The page template could not be read
        """
        match route.kind:
            case RouteKind.STATIC_ASSET | RouteKind.COMPONENT_SCRIPT:
                return await self.serve_file(route)
            case RouteKind.PAGE:
                return await self.render_page(route, context)
            case RouteKind.API_PAGE:
                return await self.render_api(route, context)
            case _:
                raise RouteNotFoundError(context.path, "unclassifiable path")

    async def serve_file(self, route: Route) -> RenderResult:
        """Serve a static asset or component script from the FileCache."""
        path = self._site_file(route.target)
        if path is None:
            raise RouteNotFoundError(route.path, "outside site root")
        content = await self.file_cache.get(path)
        if content is None:
            raise RouteNotFoundError(route.path, "no such file")
        return RenderResult(content=content, media_type=get_mime_type(path.name))

    async def render_page(self, route: Route, context: RequestContext) -> RenderResult:
        """Run a page's handler and wrap its content in the page template."""
        output = await self._run_handler(route, context)
        if output.redirect_location is not None:
            return self._redirect(output)

        template = await self.file_cache.get(self.template_path)
        if template is None:
            raise FileReadFailureError(str(self.template_path))

        page_id = route.target.lstrip("/")
        # Only the bare root is "Home"; an explicit /index keeps its own name
        title = HOME_TITLE if context.path == "/" else page_id.rsplit("/", 1)[-1]
        variables = output.content if output.content is not None else {}
        text = fill_template(
            template.decode("utf-8", errors="replace"), title, page_id, variables
        )
        return RenderResult(
            content=text,
            media_type="text/html",
            headers=output.headers,
            cookies=output.cookies,
        )

    async def render_api(self, route: Route, context: RequestContext) -> RenderResult:
        """Run an API page's handler and return its content as JSON."""
        output = await self._run_handler(route, context)
        if output.redirect_location is not None:
            return self._redirect(output)

        data = output.content if output.content is not None else {}
        return RenderResult(
            content=json.dumps(data, ensure_ascii=False),
            media_type="application/json",
            headers=output.headers,
            cookies=output.cookies,
        )

    async def _run_handler(self, route: Route, context: RequestContext) -> HandlerOutput:
        page_file = self.pages_dir / f"{route.target.lstrip('/')}.js"
        if not page_file.is_file():
            raise RouteNotFoundError(route.path, "no page definition")

        executable = self.handler.locate(route.target)
        return await self.handler.invoke(executable, context.to_handler_payload())

    def _site_file(self, relative: str) -> Optional[Path]:
        """Resolve a site-relative file, refusing anything outside the root."""
        head, _, rest = relative.partition("/")
        directory = self._dir_names.get(head, head)
        path = (self.root / directory / rest).resolve()
        if not path.is_relative_to(self.root):
            return None
        return path

    @staticmethod
    def _redirect(output: HandlerOutput) -> RenderResult:
        return RenderResult(redirect_location=output.redirect_location)
