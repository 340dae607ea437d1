"""Tests for the transform interpreter."""

import math

import pytest

from tubestream.core.js_interpreter import (
    JS_UNDEFINED,
    JSBudgetExceeded,
    JSInterpreter,
    JSInterpreterError,
    JSThrow,
)


def _call(code: str, name: str, *args, **kwargs):
    return JSInterpreter(code, **kwargs).call_function(name, *args)


class TestExpressions:
    def test_arithmetic_and_precedence(self):
        assert _call("function f(a){return a*2+3%2-(4-6)}", "f", 5) == 13

    def test_division_yields_float(self):
        assert _call("function f(){return 7/2}", "f") == 3.5

    def test_string_concatenation(self):
        assert _call('function f(a){return "x"+a+1}', "f", "y") == "xy1"

    def test_bitwise(self):
        assert _call("function f(a){return (a|0)^5&3}", "f", 6) == 7

    def test_ternary_and_logical(self):
        code = "function f(a){return a>2&&a<5?'mid':a||'zero'}"
        assert _call(code, "f", 3) == "mid"
        assert _call(code, "f", 0) == "zero"
        assert _call(code, "f", 9) == 9

    def test_typeof_undeclared(self):
        assert _call("function f(){return typeof nope}", "f") == "undefined"

    def test_undefined_argument(self):
        assert _call("function f(a,b){return b}", "f", 1) is JS_UNDEFINED


class TestStatements:
    def test_for_loop_and_array_index(self):
        code = "function f(a){var b=[];for(var i=0;i<a.length;i++){b.push(a[a.length-1-i])}return b.join('')}"
        assert _call(code, "f", "abc") == "cba"

    def test_while_break_continue(self):
        code = """
        function f(){var n=0,i=0;
          while(true){i++;if(i%2)continue;if(i>8)break;n+=i}
          return n}
        """
        assert _call(code, "f") == 2 + 4 + 6 + 8

    def test_switch_fallthrough(self):
        code = """
        function f(a){var r="";switch(a){case 1:r+="one";case 2:r+="two";break;default:r="other"}return r}
        """
        assert _call(code, "f", 1) == "onetwo"
        assert _call(code, "f", 2) == "two"
        assert _call(code, "f", 3) == "other"

    def test_try_catch_thrown_value(self):
        code = "function f(){try{throw 'bad'}catch(e){return 'caught '+e}}"
        assert _call(code, "f") == "caught bad"

    def test_uncaught_throw(self):
        with pytest.raises(JSThrow):
            _call("function f(){throw 1}", "f")

    def test_for_in_over_object(self):
        code = "function f(){var o={a:1,b:2},k,s='';for(k in o){s+=k}return s}"
        assert _call(code, "f") == "ab"

    def test_hoisted_function_declaration(self):
        code = "function f(){return g(2);function g(x){return x*10}}"
        assert _call(code, "f") == 20


class TestFunctionsAndObjects:
    def test_helper_object_methods(self):
        code = """
        var H={rev:function(a){a.reverse()},cut:function(a,b){a.splice(0,b)}};
        var f=function(a){a=a.split("");H.rev(a);H.cut(a,1);return a.join("")};
        """
        assert _call(code, "f", "abcd") == "cba"

    def test_closure_keeps_state(self):
        code = "function mk(){var n=0;return function(){return ++n}} function f(){var c=mk();c();return c()}"
        assert _call(code, "f") == 2

    def test_call_and_apply(self):
        code = "function g(a,b){return this.k+a+b} function f(){var o={k:1};return g.call(o,2,3)+g.apply(o,[4,5])}"
        assert _call(code, "f") == 6 + 10

    def test_extract_object(self):
        obj = JSInterpreter("var O={a:1,b:'x'};").extract_object("O")
        assert obj == {"a": 1, "b": "x"}

    def test_extract_function_callable(self):
        func = JSInterpreter("function f(a){return a+a}").extract_function("f")
        assert func("ab") == "abab"

    def test_globals_persist_between_calls(self):
        interp = JSInterpreter("var n=0;function f(){n++;return n}")
        interp.call_function("f")
        assert interp.call_function("f") == 2


class TestBuiltins:
    def test_string_methods(self):
        code = "function f(a){return a.slice(1,-1).toUpperCase()+a.indexOf('c')+a.charAt(0)+a.substr(2,1)}"
        assert _call(code, "f", "abcde") == "BCD2ac"

    def test_char_codes(self):
        code = "function f(a){return String.fromCharCode(a.charCodeAt(0)+1)}"
        assert _call(code, "f", "a") == "b"

    def test_regex_replace_global(self):
        assert _call("function f(a){return a.replace(/[aeiou]/g,'_')}", "f", "banana") == "b_n_n_"

    def test_dotted_member_access(self):
        code = "var o={k:{v:'x'}};function f(a){return o.k.v+a.split('').length+Math.max(1,2)}"
        assert _call(code, "f", "abc") == "x32"

    def test_regex_with_single_quantifier(self):
        assert _call("function f(a){return a.replace(/a+/g,'-')}", "f", "baaad") == "b-d"

    def test_large_integers_become_doubles(self):
        assert _call("function f(){var x=3;for(var i=0;i<12;i++){x=x*x}return x}", "f") == math.inf

    def test_math_and_parse(self):
        code = "function f(){return Math.floor(7.8)+Math.max(1,5,3)+parseInt('ff',16)}"
        assert _call(code, "f") == 7 + 5 + 255

    def test_math_random_is_fixed(self):
        assert _call("function f(){return Math.random()}", "f") == 0.5

    def test_uri_component_round_trip(self):
        code = "function f(a){return decodeURIComponent(encodeURIComponent(a))}"
        assert _call(code, "f", "a b&c=d") == "a b&c=d"


class TestFailures:
    def test_unknown_function(self):
        with pytest.raises(JSInterpreterError):
            _call("var x=1;", "missing")

    def test_undefined_name(self):
        with pytest.raises(JSInterpreterError):
            _call("function f(){return nope+1}", "f")

    def test_syntax_error(self):
        with pytest.raises(JSInterpreterError):
            _call("function f({", "f")

    def test_step_budget(self):
        with pytest.raises(JSBudgetExceeded):
            _call("function f(){while(true){}}", "f", max_steps=1000)

    def test_budget_not_catchable(self):
        code = "function f(){try{for(;;){}}catch(e){return 'escaped'}}"
        with pytest.raises(JSBudgetExceeded):
            _call(code, "f", max_steps=1000)

    def test_time_budget(self):
        with pytest.raises(JSBudgetExceeded):
            _call("function f(){for(;;){}}", "f", timeout=0.05)

    def test_runaway_recursion(self):
        with pytest.raises(JSInterpreterError):
            _call("function f(a){return f(a)}", "f", 1)

    @pytest.mark.parametrize(
        "code",
        [
            "function f(a){return new Array(1e15)}",
            "function f(a){var b=[];b.length=1e15;return b}",
            "function f(a){var b=[];b[1e12]=1;return b}",
            "function f(a){return a.repeat(1e12)}",
            "function f(a){return a.padStart(1e12)}",
            "function f(a){for(;;){a+=a}}",
            "function f(a){var b=[a];for(;;){b=b.concat(b)}}",
        ],
    )
    def test_allocation_limit(self, code):
        with pytest.raises(JSBudgetExceeded):
            _call(code, "f", "ab")

    def test_nested_quantifier_refused(self):
        with pytest.raises(JSInterpreterError, match="nested quantifiers"):
            _call("function f(a){return /(x+)+y/.test(a)}", "f", "x" * 24)

    def test_long_regex_input(self):
        with pytest.raises(JSBudgetExceeded):
            _call("function f(a){return a.repeat(5000).replace(/x/g,'y')}", "f", "x")
