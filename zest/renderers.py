"""File renderers for zest.

Each renderer builds one kind of source file into the publish root. The
registry picks a renderer from the file extension; the raw copier accepts
everything the others decline.

Key classes:
- MarkdownRenderer: Markdown body wrapped in a layout, macros expanded.
- TemplateRenderer: Jinja page rendered with the file's variables.
- StylesheetRenderer: Sass/SCSS compiled to CSS with libsass.
- RawRenderer: Byte-for-byte copy; directories are recreated.
- RendererRegistry: Maps a path to its renderer.
"""

from __future__ import annotations

import shutil
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any, BinaryIO

import mistune
import sass
from jinja2 import TemplateError, TemplateSyntaxError
from markupsafe import Markup

from .config import Config
from .errors import BuildError, FileAccessError
from .macros import Evaluator, expand, no_plugins
from .protocols import Renderer
from .templates import TEMPLATE_EXT, TemplateEngine
from .variables import rename_ext, resolve, source_name

MARKDOWN_EXTS = (".md", ".mkd")
STYLESHEET_EXTS = (".scss", ".sass")


class _HighlightRenderer(mistune.HTMLRenderer):
    """Markdown HTML renderer with Pygments syntax highlighting."""

    def __init__(self):
        super().__init__(escape=False)

    def block_code(self, code: str, info: str | None = None) -> str:
        """Render a code block with Pygments syntax highlighting.

        Args:
            code: The code content.
            info: Language identifier (e.g., 'python', 'javascript').

        Returns:
            HTML string with highlighted code.
        """
        if info:
            from pygments import highlight
            from pygments.formatters import HtmlFormatter
            from pygments.lexers import get_lexer_by_name
            from pygments.util import ClassNotFound

            try:
                lexer = get_lexer_by_name(info.split()[0], stripall=True)
            except ClassNotFound:
                lexer = None
            if lexer is not None:
                formatter = HtmlFormatter(nowrap=False, cssclass="highlight")
                return highlight(code, lexer, formatter)
        escaped = code.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
        lang_class = f' class="language-{info}"' if info else ""
        return f"<pre><code{lang_class}>{escaped}</code></pre>\n"


def markdown_to_html(text: str) -> str:
    """Convert markdown text to HTML."""
    markdown = mistune.create_markdown(
        renderer=_HighlightRenderer(),
        plugins=["strikethrough", "footnotes", "table", "url"],
    )
    return markdown(text)


class BaseRenderer(ABC):
    """Base class for renderers.

    Subclasses set ``output_ext`` (None keeps the source name) and
    implement ``can_render`` and ``render``. Shared helpers resolve the
    target path and open the output sink.
    """

    output_ext: str | None = None

    def __init__(self, config: Config):
        self.config = config

    @property
    @abstractmethod
    def kind(self) -> str: ...

    @abstractmethod
    def can_render(self, path: Path) -> bool: ...

    @abstractmethod
    def render(self, path: Path, out: BinaryIO | None = None) -> None: ...

    def output_path(self, name: str) -> Path:
        """Return the publish-root path for a source path."""
        if self.output_ext is not None:
            name = rename_ext(name, "", self.output_ext)
        return self.config.publish_dir / name

    @contextmanager
    def sink(self, name: str, out: BinaryIO | None) -> Iterator[BinaryIO]:
        """Yield ``out``, or the truncated output file when ``out`` is None."""
        if out is not None:
            yield out
            return
        target = self.output_path(name)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            f = open(target, "wb")
        except OSError as exc:
            raise FileAccessError(
                self.config.root / name, f"Cannot write {target}: {exc}", exc
            ) from exc
        with f:
            yield f

    def write(self, name: str, text: str, out: BinaryIO | None) -> None:
        with self.sink(name, out) as f:
            f.write(text.encode("utf-8"))


class _TemplateMixin:
    """Renders Jinja text, reporting template errors against the source."""

    engine: TemplateEngine

    def render_template(
        self, source: Path, text: str, context: Mapping[str, Any]
    ) -> str:
        try:
            return self.engine.render_string(text, context)
        except TemplateSyntaxError as exc:
            raise BuildError(
                source,
                f"Template syntax error on line {exc.lineno}: {exc.message}",
                exc,
            ) from exc
        except TemplateError as exc:
            raise BuildError(source, f"{type(exc).__name__}: {exc}", exc) from exc


class MarkdownRenderer(_TemplateMixin, BaseRenderer):
    """Renders markdown into its layout.

    The body is macro-expanded and converted to HTML, then stored as the
    ``content`` variable. The layout named by ``layout`` is read from the
    service directory with the page's variables as its globals. Plain
    layouts are macro-expanded. Jinja layouts are rendered by Jinja only,
    so text already substituted into ``content`` is not expanded twice.
    """

    output_ext = ".html"

    def __init__(self, config: Config, engine: TemplateEngine, evaluate: Evaluator):
        super().__init__(config)
        self.engine = engine
        self.evaluate = evaluate

    @property
    def kind(self) -> str:
        return "markdown"

    def can_render(self, path: Path) -> bool:
        return path.suffix in MARKDOWN_EXTS

    def render(self, path: Path, out: BinaryIO | None = None) -> None:
        name = source_name(path, self.config)
        v, body = resolve(name, self.config)
        v["content"] = markdown_to_html(expand(body, v, self.evaluate))

        layout = self.config.service_dir / v["layout"]
        lv, layout_body = resolve(layout, self.config, v)
        if layout.suffix == TEMPLATE_EXT:
            context = dict(lv)
            context["content"] = Markup(lv["content"])
            html = self.render_template(layout, layout_body, context)
        else:
            html = expand(layout_body, lv, self.evaluate)
        self.write(name, html, out)


class TemplateRenderer(_TemplateMixin, BaseRenderer):
    """Renders a Jinja page with its resolved variables."""

    output_ext = ".html"

    def __init__(self, config: Config, engine: TemplateEngine):
        super().__init__(config)
        self.engine = engine

    @property
    def kind(self) -> str:
        return "template"

    def can_render(self, path: Path) -> bool:
        return path.suffix == TEMPLATE_EXT

    def render(self, path: Path, out: BinaryIO | None = None) -> None:
        name = source_name(path, self.config)
        v, body = resolve(name, self.config)
        html = self.render_template(self.config.root / name, body, v)
        self.write(name, html, out)


class StylesheetRenderer(BaseRenderer):
    """Compiles Sass (indented) and SCSS stylesheets to CSS."""

    output_ext = ".css"

    @property
    def kind(self) -> str:
        return "stylesheet"

    def can_render(self, path: Path) -> bool:
        return path.suffix in STYLESHEET_EXTS

    def render(self, path: Path, out: BinaryIO | None = None) -> None:
        name = source_name(path, self.config)
        source = self.config.root / name
        if not source.is_file():
            raise FileAccessError(source, "Cannot read file: not a regular file")
        try:
            css = sass.compile(filename=str(source), output_style="expanded")
        except sass.CompileError as exc:
            raise BuildError(source, f"Stylesheet error: {exc}", exc) from exc
        self.write(name, css, out)


class RawRenderer(BaseRenderer):
    """Copies files as-is and recreates directories under the publish root."""

    @property
    def kind(self) -> str:
        return "raw"

    def can_render(self, path: Path) -> bool:
        return True

    def render(self, path: Path, out: BinaryIO | None = None) -> None:
        name = source_name(path, self.config)
        source = self.config.root / name
        if source.is_dir():
            if out is None:
                self.output_path(name).mkdir(parents=True, exist_ok=True)
            return
        try:
            src = open(source, "rb")
        except OSError as exc:
            raise FileAccessError(source, f"Cannot read file: {exc}", exc) from exc
        with src, self.sink(name, out) as dest:
            shutil.copyfileobj(src, dest)


class RendererRegistry:
    """Registry for renderers.

    Renderers are asked in registration order; the first one whose
    ``can_render`` accepts the path wins.
    """

    def __init__(self, renderers: list[Renderer] | None = None):
        self._renderers: list[Renderer] = list(renderers or [])

    @classmethod
    def default(
        cls, config: Config, evaluate: Evaluator = no_plugins
    ) -> RendererRegistry:
        """Create the standard registry for a configuration.

        Args:
            config: Build configuration.
            evaluate: Evaluator for plugin macros.

        Returns:
            Registry with markdown, template, stylesheet and raw renderers.
        """
        engine = TemplateEngine(config, evaluate)
        return cls(
            [
                MarkdownRenderer(config, engine, evaluate),
                TemplateRenderer(config, engine),
                StylesheetRenderer(config),
                RawRenderer(config),
            ]
        )

    def register(self, renderer: Renderer) -> None:
        """Register a renderer ahead of the raw copier.

        Args:
            renderer: A Renderer implementation.
        """
        index = len(self._renderers)
        if self._renderers and isinstance(self._renderers[-1], RawRenderer):
            index -= 1
        self._renderers.insert(index, renderer)

    def get_renderer(self, path: Path) -> Renderer | None:
        """Get the renderer for a file.

        Args:
            path: Path to the source file.

        Returns:
            The first renderer that can handle the file, or None.
        """
        for renderer in self._renderers:
            if renderer.can_render(Path(path)):
                return renderer
        return None
