import logging

import pytest

from zest.errors import MalformedMacroError, PluginEvalError
from zest.macros import PluginResult, expand, no_plugins


class RecordingEvaluator:
    """Evaluator returning canned output and recording every call."""

    def __init__(self, outputs=None, failing=()):
        self.outputs = outputs or {}
        self.failing = set(failing)
        self.calls = []

    def __call__(self, tokens, vars):
        self.calls.append(list(tokens))
        if tokens[0] in self.failing:
            return PluginResult.failure(PluginEvalError(tokens, "exit status 1"))
        return PluginResult.success(self.outputs.get(tokens[0], ""))


def test_expand_substitutes_variable():
    assert expand("Hello {{name}}!", {"name": "World"}) == "Hello World!"


def test_expand_ignores_whitespace_inside_delimiters():
    assert expand("[{{  name\t}}]", {"name": "x"}) == "[x]"


@pytest.mark.parametrize(
    "text",
    ["", "plain text", "single { brace } and }} close only", "<p>{ {not a macro} }</p>"],
)
def test_expand_without_macros_is_identity(text):
    evaluate = RecordingEvaluator()
    assert expand(text, {"name": "x"}, evaluate) == text
    assert evaluate.calls == []


def test_expand_does_not_rescan_substituted_values():
    evaluate = RecordingEvaluator(outputs={"date": "{{name}}"})
    result = expand("{{a}} {{date}}", {"a": "{{b}}", "b": "x", "name": "n"}, evaluate)
    assert result == "{{b}} {{name}}"
    assert evaluate.calls == [["date"]]


def test_expand_unterminated_macro_raises():
    evaluate = RecordingEvaluator()
    with pytest.raises(MalformedMacroError) as excinfo:
        expand("ok {{name}} then {{broken", {"name": "x"}, evaluate)
    assert excinfo.value.position == len("ok {{name}} then ")


def test_expand_close_before_open_is_not_a_macro():
    with pytest.raises(MalformedMacroError):
        expand("}} {{name", {"name": "x"})


def test_expand_passes_tokens_to_evaluator():
    evaluate = RecordingEvaluator(outputs={"date": "2024"})
    result = expand("(c) {{date +%Y}} {{missing}}", {"title": "t"}, evaluate)
    assert result == "(c) 2024 "
    assert evaluate.calls == [["date", "+%Y"], ["missing"]]


def test_expand_variable_with_arguments_goes_to_evaluator():
    evaluate = RecordingEvaluator(outputs={"title": "from plugin"})
    assert expand("{{title upper}}", {"title": "t"}, evaluate) == "from plugin"


def test_expand_drops_failed_plugin_and_continues(caplog):
    evaluate = RecordingEvaluator(failing={"boom"})
    with caplog.at_level(logging.WARNING, logger="zest.macros"):
        result = expand("a{{boom x}}b{{name}}c", {"name": "World"}, evaluate)
    assert result == "abWorldc"
    assert "boom" in caplog.text


def test_expand_drops_empty_macro():
    assert expand("a{{ }}b", {}) == "ab"


def test_no_plugins_evaluator_drops_unknown_macros():
    assert expand("x{{nothing here}}y", {}, no_plugins) == "xy"


def test_plugin_result():
    ok = PluginResult.success("out")
    assert ok.ok and ok.text() == "out"
    failed = PluginResult.failure(PluginEvalError(["cmd"], "nope"))
    assert not failed.ok
    assert failed.text() == ""
    assert "cmd: nope" in str(failed.error)
