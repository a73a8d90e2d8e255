"""Template rendering engine for zest.

This module uses Jinja2 to render ``.jinja`` pages and layouts. Templates
are loaded from the service directory and the project root, so layouts can
extend or include one another.

Key class:
- TemplateEngine: Renders template text with a file's resolved variables.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from jinja2 import Environment, FileSystemLoader, pass_context, select_autoescape
from jinja2.runtime import Context

from .config import Config
from .macros import Evaluator, no_plugins

TEMPLATE_EXT = ".jinja"


class TemplateEngine:
    """Template rendering engine using Jinja2.

    Attributes:
        config: Build configuration.
        evaluate: Evaluator backing the ``plugin()`` template global.
        env: Jinja2 environment.
    """

    def __init__(self, config: Config, evaluate: Evaluator = no_plugins):
        """Initialize the template engine.

        Args:
            config: Build configuration.
            evaluate: Evaluator used by the ``plugin()`` global.
        """
        self.config = config
        self.evaluate = evaluate
        self.env = Environment(
            loader=FileSystemLoader([str(config.service_dir), str(config.root)]),
            autoescape=select_autoescape(["html", "xml"], default_for_string=True),
            enable_async=False,
        )
        self._install_globals()

    def _install_globals(self) -> None:
        """Install global functions in the Jinja environment."""
        self.env.globals["plugin"] = self._plugin

    @pass_context
    def _plugin(self, ctx: Context, name: str, *args: Any, **vars: Any) -> str:
        """Run a plugin from inside a template.

        Usage: ``{{ plugin("date", "+%Y") }}``. The plugin sees every string
        variable of the template context; keyword arguments are added on
        top. Returns an empty string on failure.
        """
        tokens = [str(name), *(str(a) for a in args)]
        plugin_vars = {
            k: str(v) for k, v in ctx.get_all().items() if isinstance(v, str)
        }
        plugin_vars.update({k: str(v) for k, v in vars.items()})
        return self.evaluate(tokens, plugin_vars).text()

    def render_string(self, template: str, context: Mapping[str, Any]) -> str:
        """Render a template string.

        Args:
            template: Template source.
            context: Variables to make available in the template.

        Returns:
            Rendered string.
        """
        tmpl = self.env.from_string(template)
        return tmpl.render(**dict(context))
