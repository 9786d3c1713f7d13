"""HTML pages shown in the browser at the end of an authorization attempt.

The callback listener only decides *which* page to show; turning a page into
HTML is delegated to a renderer, ``render_result_page`` by default.
Templates live in ``auth/templates`` and use ``string.Template`` ``$name``
placeholders. If a template cannot be read, a minimal inline page is used
instead so the user always sees an outcome.
"""

import html
import logging
import math
from collections.abc import Callable
from importlib import resources
from string import Template
from typing import Literal

from pydantic import BaseModel

from google_mcp.config import DEFAULT_AUTO_CLOSE_DELAY_MS

logger = logging.getLogger(__name__)


class SuccessPage(BaseModel):
    """Shown after the authorization code was exchanged and stored."""

    kind: Literal["success"] = "success"
    auto_close_delay_ms: int = DEFAULT_AUTO_CLOSE_DELAY_MS


class ErrorPage(BaseModel):
    """Shown when the attempt failed or the request was not acceptable."""

    kind: Literal["error"] = "error"
    title: str
    message: str


ResultPage = SuccessPage | ErrorPage
PageRenderer = Callable[[ResultPage], str]

FALLBACK_SUCCESS_HTML = """<!DOCTYPE html>
<html>
<head><title>Authentication Successful</title></head>
<body>
    <h1>Authentication Successful!</h1>
    <p>You can close this window and return to the terminal.</p>
</body>
</html>
"""

FALLBACK_ERROR_HTML = Template(
    """<!DOCTYPE html>
<html>
<head><title>Authentication Error</title></head>
<body>
    <h1>$title</h1>
    <p>$message</p>
    <p><small>Please close this window and try again.</small></p>
</body>
</html>
"""
)


class TemplateLoader:
    """Load and fill the result page templates.

    Template text is cached after the first successful read.

    Example:
        ```python
        loader = TemplateLoader()
        html_text = loader.render(ErrorPage(title="Denied", message="access_denied"))
        ```
    """

    def __init__(self, package: str = "google_mcp.auth.templates") -> None:
        self.package = package
        self._cache: dict[str, str] = {}

    def load(self, name: str) -> str:
        """Read ``<name>.html`` from the templates package.

        Raises:
            OSError: If the template cannot be read.
        """
        if name not in self._cache:
            resource = resources.files(self.package).joinpath(f"{name}.html")
            self._cache[name] = resource.read_text(encoding="utf-8")
        return self._cache[name]

    def clear_cache(self) -> None:
        self._cache.clear()

    def render_success(self, page: SuccessPage) -> str:
        delay = max(0, page.auto_close_delay_ms)
        variables = {
            "auto_close_delay": str(delay),
            "auto_close_seconds": str(math.ceil(delay / 1000)),
        }
        try:
            return Template(self.load("success")).safe_substitute(variables)
        except (OSError, ModuleNotFoundError) as e:
            logger.warning(f"Success page template unavailable, using fallback: {e}")
            return FALLBACK_SUCCESS_HTML

    def render_error(self, page: ErrorPage) -> str:
        variables = {
            "title": html.escape(page.title),
            "message": html.escape(page.message),
        }
        try:
            return Template(self.load("error")).safe_substitute(variables)
        except (OSError, ModuleNotFoundError) as e:
            logger.warning(f"Error page template unavailable, using fallback: {e}")
            return FALLBACK_ERROR_HTML.substitute(variables)

    def render(self, page: ResultPage) -> str:
        """Render any result page to HTML."""
        if isinstance(page, SuccessPage):
            return self.render_success(page)
        return self.render_error(page)


_default_loader = TemplateLoader()


def render_result_page(page: ResultPage) -> str:
    """Default page renderer backed by the packaged templates."""
    return _default_loader.render(page)
