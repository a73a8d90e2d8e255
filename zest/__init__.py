"""zest static site generator.

zest turns a directory of markdown, Jinja templates, Sass stylesheets and
assets into a published tree under ``.pub/``, rebuilding only the files
that changed. Pages can call out to plugin executables through
``{{name args...}}`` macros.

The main entry point is the CLI module, which provides the build, watch
and var commands and runs any other command name as a plugin.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
