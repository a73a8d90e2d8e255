"""Exception types for zest.

Per-file failures derive from BuildError and carry the source path so the
orchestrator and the CLI can report them. Macro and plugin errors are raised
(or carried) without a path since the expansion engine works on plain text.
"""

from __future__ import annotations

from pathlib import Path


class ZestError(Exception):
    """Base class for all zest errors."""


class BuildError(ZestError):
    """Error during a file build with file context.

    Attributes:
        source_path: Path to the source file that caused the error.
        message: Human-readable error message.
        original_error: The original exception that was caught.
    """

    def __init__(
        self,
        source_path: Path | str,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source_path = Path(source_path)
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}")


class FileAccessError(BuildError):
    """A source file could not be read or an output file could not be written."""


class HeaderParseError(BuildError):
    """A file header is not valid YAML or is not a key/value mapping."""


class MalformedMacroError(ZestError):
    """A macro open delimiter has no matching close delimiter.

    Attributes:
        position: Offset of the unterminated open delimiter in the text.
    """

    def __init__(self, position: int):
        self.position = position
        super().__init__(f"unterminated macro at offset {position}")


class PluginEvalError(ZestError):
    """A macro-backing command could not be run or exited with an error.

    Attributes:
        command: Token list of the failed macro.
        returncode: Exit status, or None when the process never completed.
        stderr: Captured standard error, if any.
    """

    def __init__(
        self,
        command: list[str],
        message: str,
        returncode: int | None = None,
        stderr: str = "",
    ):
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr
        name = command[0] if command else "<empty>"
        super().__init__(f"{name}: {message}")
