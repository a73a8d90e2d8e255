"""Process-wide configuration for zest.

The configuration is computed once at startup and passed explicitly to the
resolver, the plugin runner and the build orchestrator. Nothing here mutates
the process environment: the plugin search path is stored on the Config
instead of being prepended to PATH.

Key functions:
- load_config: Build a Config from defaults, .zest/config.yaml and the environment.
- collect_globals: Extract prefixed environment variables as template globals.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

SERVICE_DIR = ".zest"
PUBLISH_DIR = ".pub"
CONFIG_FILE = "config.yaml"
TOOL_VAR = "ZEST"

DEFAULT_CONFIG = {
    "service_dir": SERVICE_DIR,
    "publish_dir": PUBLISH_DIR,
    "separator": "---",
    "env_prefix": "ZEST_",
    "interval": 1.0,
    "plugin_timeout": None,
}


@dataclass(frozen=True)
class Config:
    """Immutable build configuration.

    Attributes:
        root: Project root; every source path is relative to it.
        service_dir: Directory holding layouts, plugins and config.yaml.
        publish_dir: Publish root receiving generated output.
        separator: Line that separates a file header from its body.
        env_prefix: Prefix marking environment variables exposed as globals.
        interval: Seconds to wait between watch cycles.
        plugin_timeout: Seconds a plugin may run, or None for no limit.
        globals: Read-only globals collected from the environment.
        search_path: Executable search path, service dir first.
        tool: Path of the running zest executable, exposed to plugins.
    """

    root: Path
    service_dir: Path
    publish_dir: Path
    separator: str = "---"
    env_prefix: str = "ZEST_"
    interval: float = 1.0
    plugin_timeout: float | None = None
    globals: Mapping[str, str] = field(default_factory=dict)
    search_path: str = ""
    tool: str = "zest"

    def is_reserved(self, path: Path) -> bool:
        """Return True for the service dir and the publish root."""
        return path in (self.service_dir, self.publish_dir)


def collect_globals(environ: Mapping[str, str], prefix: str) -> dict[str, str]:
    """Return environment entries carrying ``prefix`` as template globals.

    The prefix is stripped and the remaining name lowercased, so
    ``ZEST_SITE_NAME=x`` becomes ``{"site_name": "x"}``.
    """
    found: dict[str, str] = {}
    for name, value in environ.items():
        if name.startswith(prefix) and len(name) > len(prefix):
            found[name[len(prefix) :].lower()] = value
    return found


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, encoding="utf-8") as f:
        loaded = yaml.safe_load(f) or {}
    return loaded if isinstance(loaded, dict) else {}


def load_config(
    root: Path | None = None,
    environ: Mapping[str, str] | None = None,
    tool: str | None = None,
) -> Config:
    """Load the build configuration.

    Args:
        root: Project root. Defaults to the current working directory.
        environ: Environment to read globals and PATH from. Defaults to os.environ.
        tool: Path of the running tool. Defaults to sys.argv[0].

    Returns:
        A frozen Config instance.
    """
    root = Path(root) if root is not None else Path.cwd()
    environ = os.environ if environ is None else environ

    settings = DEFAULT_CONFIG.copy()
    settings.update(_read_config_file(root / SERVICE_DIR / CONFIG_FILE))

    service_dir = root / str(settings["service_dir"])
    prefix = str(settings["env_prefix"])
    timeout = settings.get("plugin_timeout")
    system_path = environ.get("PATH", os.defpath)
    search_path = os.pathsep.join(p for p in (str(service_dir), system_path) if p)

    return Config(
        root=root,
        service_dir=service_dir,
        publish_dir=root / str(settings["publish_dir"]),
        separator=str(settings["separator"]),
        env_prefix=prefix,
        interval=float(settings["interval"]),
        plugin_timeout=float(timeout) if timeout is not None else None,
        globals=MappingProxyType(collect_globals(environ, prefix)),
        search_path=search_path,
        tool=tool if tool is not None else sys.argv[0],
    )
