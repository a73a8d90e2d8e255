"""Macro expansion for zest.

A macro is a ``{{ ... }}`` token sequence. A single token naming a variable
is replaced by that variable's value; anything else is handed to an
evaluator (normally an external plugin command) and replaced by its output.

Evaluation is best-effort: a failed plugin is logged and its macro is
replaced with nothing, so a broken plugin never blocks the rest of a page.
Only an unterminated macro fails the whole expansion.

Key names:
- expand: Expand all macros in a text.
- PluginResult: Outcome of evaluating one macro.
- Evaluator: Callable signature used to evaluate non-variable macros.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from .errors import MalformedMacroError, PluginEvalError

logger = logging.getLogger(__name__)

OPEN_DELIM = "{{"
CLOSE_DELIM = "}}"


@dataclass(frozen=True)
class PluginResult:
    """Outcome of a macro evaluation.

    Exactly one of ``output`` and ``error`` is set.
    """

    output: str | None = None
    error: PluginEvalError | None = None

    @classmethod
    def success(cls, output: str) -> PluginResult:
        return cls(output=output)

    @classmethod
    def failure(cls, error: PluginEvalError) -> PluginResult:
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def text(self) -> str:
        """Return the substitution text; empty for a failed evaluation."""
        return self.output if self.ok and self.output is not None else ""


Evaluator = Callable[[list[str], Mapping[str, str]], PluginResult]


def no_plugins(tokens: list[str], vars: Mapping[str, str]) -> PluginResult:
    """Evaluator that treats every non-variable macro as a failure."""
    return PluginResult.failure(PluginEvalError(tokens, "plugins are disabled"))


def expand(
    text: str,
    vars: Mapping[str, str],
    evaluate: Evaluator = no_plugins,
) -> str:
    """Expand every macro in ``text``.

    Text outside macros is copied verbatim. Substituted values are never
    scanned again, so a variable holding ``{{x}}`` is emitted literally.

    Args:
        text: Text to expand.
        vars: Variables available to single-token macros.
        evaluate: Evaluator for every other macro.

    Returns:
        The expanded text.

    Raises:
        MalformedMacroError: If an open delimiter has no matching close.
    """
    out: list[str] = []
    pos = 0
    while True:
        start = text.find(OPEN_DELIM, pos)
        if start == -1:
            out.append(text[pos:])
            return "".join(out)
        end = text.find(CLOSE_DELIM, start + len(OPEN_DELIM))
        if end == -1:
            raise MalformedMacroError(start)
        out.append(text[pos:start])
        tokens = text[start + len(OPEN_DELIM) : end].split()
        pos = end + len(CLOSE_DELIM)

        if len(tokens) == 1 and tokens[0] in vars:
            out.append(vars[tokens[0]])
            continue
        if not tokens:
            logger.warning("Dropping empty macro at offset %d", start)
            continue
        result = evaluate(tokens, vars)
        if not result.ok:
            logger.warning("Dropping macro {{%s}}: %s", " ".join(tokens), result.error)
        out.append(result.text())
