"""Plugin invocation for zest.

A plugin is any executable found in the service directory or on PATH. It is
used in two ways: as the evaluator behind ``{{name args...}}`` macros, and
directly from the command line (``zest name args...``).

Plugins receive every template variable as ``ZEST_<KEY>`` in their
environment, plus ``ZEST`` pointing at the running zest executable so they
can call back into it (for example ``$ZEST var page.md title``).

Key class:
- PluginRunner: Locates and runs plugins for a Config.
"""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Mapping

from .config import TOOL_VAR, Config
from .errors import PluginEvalError
from .executable_utils import find_executable
from .macros import PluginResult

logger = logging.getLogger(__name__)


class PluginRunner:
    """Runs plugin executables on behalf of macros and the CLI.

    Instances are callable with the evaluator signature expected by
    ``zest.macros.expand``. Subclass or wrap ``__call__`` to change how
    plugins are executed without touching the expansion algorithm.

    Attributes:
        config: Build configuration (search path, prefix, timeout, tool path).
    """

    def __init__(self, config: Config):
        self.config = config

    def environment(self, vars: Mapping[str, str] | None = None) -> dict[str, str]:
        """Build the environment for a plugin process.

        Args:
            vars: Template variables to expose, one entry per key.

        Returns:
            Environment mapping for subprocess.
        """
        env = dict(os.environ)
        env["PATH"] = self.config.search_path
        for key, value in (vars or {}).items():
            env[self.config.env_prefix + key.upper()] = value
        env[TOOL_VAR] = self.config.tool
        return env

    def locate(self, name: str) -> str | None:
        return find_executable(name, self.config.search_path)

    def __call__(self, tokens: list[str], vars: Mapping[str, str]) -> PluginResult:
        """Evaluate a macro by running ``tokens[0]`` with ``tokens[1:]``.

        Returns:
            PluginResult holding stdout, or the PluginEvalError on failure.
        """
        if not tokens:
            return PluginResult.failure(PluginEvalError(tokens, "empty command"))
        executable = self.locate(tokens[0])
        if executable is None:
            return PluginResult.failure(
                PluginEvalError(tokens, "command not found in service dir or PATH")
            )
        try:
            proc = subprocess.run(
                [executable, *tokens[1:]],
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                env=self.environment(vars),
                cwd=self.config.root,
                timeout=self.config.plugin_timeout,
            )
        except subprocess.TimeoutExpired as exc:
            return PluginResult.failure(
                PluginEvalError(tokens, f"timed out after {exc.timeout} seconds")
            )
        except (OSError, ValueError) as exc:
            return PluginResult.failure(PluginEvalError(tokens, f"cannot run: {exc}"))

        if proc.stderr:
            logger.warning("%s: %s", tokens[0], proc.stderr.rstrip())
        if proc.returncode != 0:
            return PluginResult.failure(
                PluginEvalError(
                    tokens,
                    f"exited with status {proc.returncode}",
                    returncode=proc.returncode,
                    stderr=proc.stderr,
                )
            )
        return PluginResult.success(proc.stdout)

    def run_interactive(self, name: str, args: list[str]) -> int:
        """Run a plugin attached to the terminal.

        Args:
            name: Plugin name.
            args: Arguments passed to the plugin.

        Returns:
            The plugin's exit status.

        Raises:
            PluginEvalError: If the plugin cannot be found or started.
        """
        executable = self.locate(name)
        if executable is None:
            raise PluginEvalError([name, *args], "command not found in service dir or PATH")
        try:
            proc = subprocess.run(
                [executable, *args],
                env=self.environment(),
                cwd=self.config.root,
            )
        except (OSError, ValueError) as exc:
            raise PluginEvalError([name, *args], f"cannot run: {exc}") from exc
        return proc.returncode
