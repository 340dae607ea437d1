"""Tests for the sandboxed transform evaluator."""

import time

import pytest

from tubestream.core.evaluator import SandboxedEvaluator
from tubestream.errors import DecipherFailed
from tubestream.models.enums import TransformKind
from tubestream.models.player import CipherTransform


def _transform(source: str, name: str = "t", kind: TransformKind = TransformKind.SIGNATURE) -> CipherTransform:
    return CipherTransform(kind=kind, name=name, source=source)


class TestSandboxedEvaluator:
    def test_returns_string(self):
        transform = _transform("var t=function(a){return a.split('').reverse().join('')};")
        assert SandboxedEvaluator().evaluate(transform, "abc") == "cba"

    def test_deterministic(self):
        transform = _transform("var t=function(a){return a+Math.floor(Math.random()*10)};")
        evaluator = SandboxedEvaluator()
        assert evaluator.evaluate(transform, "x") == evaluator.evaluate(transform, "x") == "x5"

    def test_no_state_between_calls(self):
        transform = _transform("var n=0;var t=function(a){n++;return a+n};")
        evaluator = SandboxedEvaluator()
        assert evaluator.evaluate(transform, "x") == "x1"
        assert evaluator.evaluate(transform, "x") == "x1"

    def test_non_string_result(self):
        transform = _transform("var t=function(a){return a.length};")
        with pytest.raises(DecipherFailed):
            SandboxedEvaluator().evaluate(transform, "abc")

    def test_thrown_error(self):
        transform = _transform("var t=function(a){throw new Error(a)};", kind=TransformKind.N_PARAM)
        with pytest.raises(DecipherFailed):
            SandboxedEvaluator().evaluate(transform, "abc")

    def test_step_budget(self):
        transform = _transform("var t=function(a){for(;;){a+='x'}};")
        with pytest.raises(DecipherFailed, match="budget"):
            SandboxedEvaluator(max_steps=10_000).evaluate(transform, "abc")

    def test_time_budget(self):
        transform = _transform("var t=function(a){while(1){}};")
        with pytest.raises(DecipherFailed, match="budget"):
            SandboxedEvaluator(max_steps=10**9, timeout=0.05).evaluate(transform, "abc")

    def test_missing_entry_point(self):
        transform = _transform("var other=function(a){return a};")
        with pytest.raises(DecipherFailed):
            SandboxedEvaluator().evaluate(transform, "abc")

    @pytest.mark.parametrize(
        "body",
        [
            "var b=new Array(1e15);return a",
            "var b=[];b.length=1e15;return a",
            "for(;;){a+=a}",
        ],
    )
    def test_runaway_allocation(self, body):
        transform = _transform("var t=function(a){" + body + "};")
        with pytest.raises(DecipherFailed, match="budget"):
            SandboxedEvaluator().evaluate(transform, "abc")

    def test_backtracking_regex_refused_quickly(self):
        transform = _transform('var t=function(a){return /(x+)+y/.test(a)?a:"none"};')
        started = time.monotonic()
        with pytest.raises(DecipherFailed):
            SandboxedEvaluator(timeout=0.1).evaluate(transform, "x" * 24)
        assert time.monotonic() - started < 1

    def test_unexpected_interpreter_error(self, monkeypatch):
        def broken(self, name, *args):
            raise KeyError(name)

        monkeypatch.setattr("tubestream.core.js_interpreter.JSInterpreter.call_function", broken)
        with pytest.raises(DecipherFailed):
            SandboxedEvaluator().evaluate(_transform("var t=function(a){return a};"), "abc")
