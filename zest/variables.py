"""Variable resolution for zest.

Every rendered file gets its own Vars mapping, built by layering three
sources on top of each other (lowest precedence first):

1. defaults computed from the file path (file, url, output, title, ...);
2. globals taken from prefixed environment variables;
3. variables declared in the file's own YAML header.

Key functions:
- resolve: Read a file and return its merged Vars and body.
- split_header: Separate the header text from the body.
- default_vars: Compute the path-derived defaults.
- rename_ext: Swap a path's extension.
"""

from __future__ import annotations

import posixpath
import re
from collections import UserDict
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from .config import Config
from .errors import FileAccessError, HeaderParseError

TEMPLATE_LAYOUT = "layout.jinja"
PLAIN_LAYOUT = "layout.html"

_TITLE_SEPARATORS_RE = re.compile(r"[/\\_\-]+")


class Vars(UserDict):
    """String-to-string mapping with case-insensitive keys.

    Keys are stored lowercased; lookups lowercase the key first.
    """

    def __setitem__(self, key: str, value: Any) -> None:
        super().__setitem__(str(key).lower(), _to_text(value))

    def __getitem__(self, key: str) -> str:
        return super().__getitem__(str(key).lower())

    def __delitem__(self, key: str) -> None:
        super().__delitem__(str(key).lower())

    def __contains__(self, key: object) -> bool:
        return str(key).lower() in self.data


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def rename_ext(path: str, oldext: str, newext: str) -> str:
    """Rename the extension of ``path`` from ``oldext`` to ``newext``.

    If ``oldext`` is empty the extension is detected automatically. A path
    that does not end with ``oldext`` is returned unchanged, and a path
    without any extension gets ``newext`` appended.

    Examples:
        >>> rename_ext("foo.jinja", ".jinja", ".html")
        'foo.html'
        >>> rename_ext("foo.jinja", ".md", ".html")
        'foo.jinja'
        >>> rename_ext("foo", "", ".html")
        'foo.html'
    """
    if not oldext:
        oldext = posixpath.splitext(path)[1]
    if not oldext:
        return path + newext
    if path.endswith(oldext):
        return path[: -len(oldext)] + newext
    return path


def source_name(path: Path | str, config: Config) -> str:
    """Return ``path`` as a POSIX string relative to the project root.

    Paths outside the root are returned as given.
    """
    candidate = Path(path)
    if candidate.is_absolute():
        try:
            candidate = candidate.relative_to(config.root)
        except ValueError:
            return candidate.as_posix()
    name = candidate.as_posix()
    return name[2:] if name.startswith("./") else name


def _publish_name(config: Config) -> str:
    try:
        return config.publish_dir.relative_to(config.root).as_posix()
    except ValueError:
        return config.publish_dir.as_posix()


def default_vars(name: str, config: Config) -> Vars:
    """Compute the path-derived defaults for a source file.

    Args:
        name: Source path relative to the project root.
        config: Build configuration.

    Returns:
        Vars holding file, url, outdir, output, title and description.
    """
    url = rename_ext(name, "", ".html")
    if url.startswith("./"):
        url = url[2:]
    outdir = _publish_name(config)
    stem = posixpath.splitext(name)[0]

    v = Vars()
    v["file"] = name
    v["url"] = url
    v["outdir"] = outdir
    v["output"] = posixpath.join(outdir, url)
    v["title"] = " ".join(_TITLE_SEPARATORS_RE.split(stem)).strip()
    v["description"] = ""
    return v


def split_header(text: str, separator: str = "---") -> tuple[str | None, str]:
    """Split ``text`` into header and body at a separator line.

    The header ends at the first line consisting solely of ``separator``.
    When the text starts with a separator line, the header is the block
    between the first and the second separator lines instead.

    Returns:
        Tuple of (header text or None when there is no header, body).
    """
    lines = text.splitlines(keepends=True)
    marks = [i for i, line in enumerate(lines) if line.rstrip() == separator]
    if not marks:
        return None, text
    start, end = 0, marks[0]
    if marks[0] == 0 and len(marks) > 1:
        start, end = 1, marks[1]
    header = "".join(lines[start:end])
    body = "".join(lines[end + 1 :])
    return header, body


def parse_header(header: str, path: Path | str) -> dict[str, Any]:
    """Parse a YAML (or JSON) header into a mapping.

    Raises:
        HeaderParseError: If the header is malformed or not a mapping.
    """
    try:
        data = yaml.safe_load(header)
    except yaml.YAMLError as exc:
        raise HeaderParseError(path, f"Invalid header: {exc}", exc) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise HeaderParseError(
            path, f"Header must be a mapping, got {type(data).__name__}"
        )
    return data


def default_layout(config: Config) -> str:
    """Return the layout used when no file or global names one."""
    if (config.service_dir / TEMPLATE_LAYOUT).exists():
        return TEMPLATE_LAYOUT
    return PLAIN_LAYOUT


def resolve(
    path: Path | str,
    config: Config,
    globals: Mapping[str, str] | None = None,
) -> tuple[Vars, str]:
    """Read a file and resolve its variables.

    Args:
        path: Source file, absolute or relative to the project root.
        config: Build configuration.
        globals: Variables overlaid on the defaults. Defaults to config.globals.

    Returns:
        Tuple of (merged Vars, body text following the header).

    Raises:
        FileAccessError: If the file cannot be read.
        HeaderParseError: If the header cannot be parsed.
    """
    name = source_name(path, config)
    source = config.root / name
    try:
        text = source.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise FileAccessError(source, f"Cannot read file: {exc}", exc) from exc

    v = default_vars(name, config)
    v.update(config.globals if globals is None else globals)

    header, body = split_header(text, config.separator)
    if header is not None:
        v.update(parse_header(header, source))

    if "layout" not in v:
        v["layout"] = default_layout(config)
    if v["url"].startswith("./"):
        v["url"] = v["url"][2:]
    return v, body


def format_vars(v: Mapping[str, str]) -> str:
    """Format vars as ``key:value`` lines."""
    return "\n".join(f"{key}:{value}" for key, value in v.items())
