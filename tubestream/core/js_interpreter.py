"""
JavaScript interpreter for YouTube signature and n-parameter transforms.
Modelled on yt-dlp's jsinterp.py.

Only the subset of ES5 that the player's transform functions are written in
is supported:
- var/let/const declarations, function declarations and expressions, closures
- Array and object literals, property access and method calls
- Arithmetic, bitwise, comparison, logical and ternary operators
- if/else, for, for-in, while, do-while, switch, break/continue
- try/catch/finally and throw
- Regular expression literals (translated to Python ``re``)
- parseInt, parseFloat, String.fromCharCode, Math.*, URI coding

The interpreter has no access to the network, the filesystem or timers. Every
instance owns its global scope and a step/time budget; running past the budget
raises JSBudgetExceeded, which JavaScript ``catch`` blocks cannot intercept.
"""

import functools
import logging
import math
import re
import time
from typing import Any
from urllib.parse import quote, unquote

logger = logging.getLogger(__name__)

_NAME_RE = re.compile(r"[a-zA-Z_$][\w$]*")
_NUMBER_RE = re.compile(r"0[xX][0-9a-fA-F]+|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

# Longest first so that ">>>=" wins over ">>" and ">".
_PUNCTUATORS = sorted(
    [
        "{", "}", "(", ")", "[", "]", ";", ",", ".", "?", ":", "~",
        "<", ">", "<=", ">=", "==", "!=", "===", "!==",
        "+", "-", "*", "/", "%", "**", "++", "--",
        "<<", ">>", ">>>", "&", "|", "^", "!", "&&", "||", "??",
        "=", "+=", "-=", "*=", "/=", "%=", "**=", "<<=", ">>=", ">>>=", "&=", "|=", "^=",
    ],
    key=len,
    reverse=True,
)

_ASSIGN_OPS = {"=", "+=", "-=", "*=", "/=", "%=", "**=", "<<=", ">>=", ">>>=", "&=", "|=", "^="}

_BINARY_PRECEDENCE = {
    "??": 1,
    "||": 2,
    "&&": 3,
    "|": 4,
    "^": 5,
    "&": 6,
    "==": 7, "!=": 7, "===": 7, "!==": 7,
    "<": 8, ">": 8, "<=": 8, ">=": 8, "in": 8, "instanceof": 8,
    "<<": 9, ">>": 9, ">>>": 9,
    "+": 10, "-": 10,
    "*": 11, "/": 11, "%": 11,
    "**": 12,
}

# After these keywords a "/" starts a regex literal rather than a division.
_KEYWORDS_BEFORE_EXPRESSION = {
    "return", "typeof", "case", "do", "else", "in", "instanceof", "new", "delete", "void", "throw",
}

_LITERALS = {
    "true": True,
    "false": False,
    "null": None,
    "NaN": math.nan,
    "Infinity": math.inf,
}

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v", "0": "\0"}

# Strings and arrays may not grow past this many elements.
_MAX_LENGTH = 1 << 22

# Python's re cannot be interrupted, so regex subjects are kept short and
# patterns with a quantified group that itself contains a quantifier are refused.
_MAX_REGEX_INPUT = 4096
_REGEX_ATOM = r"(?:\\.|\[(?:\\.|[^\]\\])*\]|[^()\\\[])"
_REGEX_QUANTIFIER = r"(?:[+*]|\{\d+,\d*\})"
_NESTED_QUANTIFIER_RE = re.compile(
    rf"\({_REGEX_ATOM}*{_REGEX_QUANTIFIER}{_REGEX_ATOM}*\){_REGEX_QUANTIFIER}"
)


class JSUndefined:
    """Represents JavaScript's undefined value."""

    def __repr__(self):
        return "undefined"

    def __bool__(self):
        return False


JS_UNDEFINED = JSUndefined()


class JSInterpreterError(Exception):
    pass


class JSBudgetExceeded(JSInterpreterError):
    pass


def _check_length(length):
    if length > _MAX_LENGTH:
        raise JSBudgetExceeded(f"Length {length} exceeds the limit of {_MAX_LENGTH}")
    return length


class JSThrow(JSInterpreterError):
    """A value thrown by a ``throw`` statement."""

    def __init__(self, value: Any):
        super().__init__(f"Uncaught {_to_string(value)}")
        self.value = value


class JSBreak(Exception):
    pass


class JSContinue(Exception):
    pass


class _JSReturn(Exception):
    def __init__(self, value: Any):
        super().__init__()
        self.value = value


# ----------------------------------------------------------------------
# Value conversions
# ----------------------------------------------------------------------


def _js_ternary(val):
    """Evaluate JS truthiness."""
    if val is None or val is JS_UNDEFINED or val is False:
        return False
    if isinstance(val, (int, float)):
        return val != 0 and not math.isnan(val)
    if isinstance(val, str):
        return val != ""
    return True


def _num(val: float | int) -> float | int:
    """
    Collapse integral floats to int so they can index strings and arrays, and
    turn integers past 2**53 into floats like JavaScript doubles.
    """
    if isinstance(val, float) and val.is_integer() and abs(val) < 2**53:
        return int(val)
    if isinstance(val, int) and not isinstance(val, bool) and abs(val) >= 2**53:
        try:
            return float(val)
        except OverflowError:
            return math.inf if val > 0 else -math.inf
    return val


def _to_number(val):
    """Convert value to a number like JavaScript would."""
    if val is JS_UNDEFINED:
        return math.nan
    if val is None:
        return 0
    if isinstance(val, bool):
        return 1 if val else 0
    if isinstance(val, (int, float)):
        return val
    if isinstance(val, str):
        s = val.strip()
        if not s:
            return 0
        if s[:2].lower() == "0x":
            try:
                return _num(int(s, 16))
            except ValueError:
                return math.nan
        if s in ("Infinity", "+Infinity"):
            return math.inf
        if s == "-Infinity":
            return -math.inf
        if not re.fullmatch(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?", s):
            return math.nan
        return _num(float(s) if len(s) > 15 or re.search(r"[.eE]", s) else int(s))
    if isinstance(val, list):
        if not val:
            return 0
        if len(val) == 1:
            return _to_number(val[0])
    return math.nan


def _to_int32(val) -> int:
    number = _to_number(val)
    if isinstance(number, float) and (math.isnan(number) or math.isinf(number)):
        return 0
    number = int(number) & 0xFFFFFFFF
    return number - 0x100000000 if number & 0x80000000 else number


def _to_uint32(val) -> int:
    return _to_int32(val) & 0xFFFFFFFF


def _join(items: list, sep: str) -> str:
    parts = ["" if v is None or v is JS_UNDEFINED else _to_string(v) for v in items]
    _check_length(sum(len(p) for p in parts) + len(sep) * max(len(parts) - 1, 0))
    return sep.join(parts)


def _to_string(val) -> str:
    if isinstance(val, str):
        return val
    if val is JS_UNDEFINED:
        return "undefined"
    if val is None:
        return "null"
    if isinstance(val, bool):
        return "true" if val else "false"
    if isinstance(val, int):
        return str(val)
    if isinstance(val, float):
        if math.isnan(val):
            return "NaN"
        if math.isinf(val):
            return "Infinity" if val > 0 else "-Infinity"
        if val.is_integer():
            return str(int(val))
        return repr(val)
    if isinstance(val, list):
        return _join(val, ",")
    if isinstance(val, JSRegExp):
        return f"/{val.source}/{val.flags}"
    if isinstance(val, dict):
        return "[object Object]"
    return "function"


def _typeof(val) -> str:
    if val is JS_UNDEFINED:
        return "undefined"
    if val is None:
        return "object"
    if isinstance(val, bool):
        return "boolean"
    if isinstance(val, (int, float)):
        return "number"
    if isinstance(val, str):
        return "string"
    if isinstance(val, JSFunction) or (callable(val) and not isinstance(val, _JSNamespace)):
        return "function"
    if isinstance(val, _JSNamespace) and val.call is not None:
        return "function"
    return "object"


def _strict_equals(a, b) -> bool:
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return a == b
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    return a is b


def _loose_equals(a, b) -> bool:
    nullish = (None, JS_UNDEFINED)
    if a in nullish or b in nullish:
        return a in nullish and b in nullish
    if isinstance(a, (int, float, bool)) and isinstance(b, (str, int, float, bool)):
        return _to_number(a) == _to_number(b)
    if isinstance(a, str) and isinstance(b, (int, float, bool)):
        return _to_number(a) == _to_number(b)
    return _strict_equals(a, b)


def _js_mod(a, b):
    if b == 0 or math.isnan(a) or math.isnan(b) or math.isinf(a):
        return math.nan
    if isinstance(a, int) and isinstance(b, int):
        r = abs(a) % abs(b)
        return -r if a < 0 else r
    return _num(math.fmod(a, b))


def _js_div(a, b):
    if b == 0:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.inf if a > 0 else -math.inf
    return _num(a / b)


def _compare(op: str, a, b) -> bool:
    if not (isinstance(a, str) and isinstance(b, str)):
        a, b = _to_number(a), _to_number(b)
        if math.isnan(a) or math.isnan(b):
            return False
    if op == "<":
        return a < b
    if op == ">":
        return a > b
    if op == "<=":
        return a <= b
    return a >= b


def _apply_op(op: str, a: Any, b: Any) -> Any:
    """Apply a non short-circuit binary operator."""
    if op == "+":
        if isinstance(a, (str, list, dict)) or isinstance(b, (str, list, dict)):
            left, right = _to_string(a), _to_string(b)
            _check_length(len(left) + len(right))
            return left + right
        return _num(_to_number(a) + _to_number(b))
    if op in ("-", "*", "/", "%", "**"):
        x, y = _to_number(a), _to_number(b)
        if op == "-":
            return _num(x - y)
        if op == "*":
            return _num(x * y)
        if op == "/":
            return _js_div(x, y)
        if op == "%":
            return _js_mod(x, y)
        try:
            result = float(x) ** y
        except (OverflowError, ZeroDivisionError):
            return math.nan
        return math.nan if isinstance(result, complex) else _num(result)
    if op == "|":
        return _to_int32(_to_int32(a) | _to_int32(b))
    if op == "^":
        return _to_int32(_to_int32(a) ^ _to_int32(b))
    if op == "&":
        return _to_int32(_to_int32(a) & _to_int32(b))
    if op == "<<":
        return _to_int32(_to_int32(a) << (_to_uint32(b) & 31))
    if op == ">>":
        return _to_int32(a) >> (_to_uint32(b) & 31)
    if op == ">>>":
        return _to_uint32(a) >> (_to_uint32(b) & 31)
    if op == "===":
        return _strict_equals(a, b)
    if op == "!==":
        return not _strict_equals(a, b)
    if op == "==":
        return _loose_equals(a, b)
    if op == "!=":
        return not _loose_equals(a, b)
    if op in ("<", ">", "<=", ">="):
        return _compare(op, a, b)
    if op == "in":
        if isinstance(b, dict):
            return _to_string(a) in b
        if isinstance(b, list):
            index = _as_index(a)
            return index is not None and index < len(b)
        raise JSInterpreterError("Cannot use 'in' operator on a primitive")
    if op == "instanceof":
        return False
    raise JSInterpreterError(f"Unsupported operator {op!r}")


def _as_index(key) -> int | None:
    if isinstance(key, bool):
        return None
    if isinstance(key, int):
        return key if key >= 0 else None
    if isinstance(key, float) and key.is_integer() and key >= 0:
        return int(key)
    if isinstance(key, str) and key.isdigit():
        return int(key)
    return None


def _arg(args: list, index: int) -> Any:
    return args[index] if index < len(args) else JS_UNDEFINED


def _relative_index(value, length: int, default: int) -> int:
    if value is JS_UNDEFINED:
        return default
    number = _to_number(value)
    if isinstance(number, float):
        if math.isnan(number):
            return 0
        if math.isinf(number):
            return length if number > 0 else 0
        number = int(number)
    if number < 0:
        return max(length + number, 0)
    return min(number, length)


# ----------------------------------------------------------------------
# Runtime objects
# ----------------------------------------------------------------------


class JSRegExp:
    """A regex literal, compiled with Python's ``re``."""

    def __init__(self, source: str, flags: str = ""):
        self.source = source
        self.flags = flags
        re_flags = 0
        if "i" in flags:
            re_flags |= re.IGNORECASE
        if "m" in flags:
            re_flags |= re.MULTILINE
        if "s" in flags:
            re_flags |= re.DOTALL
        if _NESTED_QUANTIFIER_RE.search(source):
            raise JSInterpreterError(f"Refusing regular expression /{source}/ with nested quantifiers")
        pattern = re.sub(r"\(\?<(?=[a-zA-Z])", "(?P<", source)
        try:
            self.regex = re.compile(pattern, re_flags)
        except re.error as exc:
            raise JSInterpreterError(f"Unsupported regular expression /{source}/: {exc}") from exc

    @property
    def is_global(self) -> bool:
        return "g" in self.flags

    def subject(self, value: str) -> str:
        if len(value) > _MAX_REGEX_INPUT:
            raise JSBudgetExceeded(f"Regex input of {len(value)} characters exceeds {_MAX_REGEX_INPUT}")
        return value


class _JSNamespace(dict):
    """A built-in object such as Math or String; optionally callable."""

    def __init__(self, members: dict, call=None):
        super().__init__(members)
        self.call = call

    def __call__(self, *args):
        if self.call is None:
            raise JSInterpreterError("Object is not a function")
        return self.call(*args)


class JSFunction:
    """A function value closing over the scope it was created in."""

    def __init__(self, name, params, body, closure, interpreter):
        self.name = name
        self.params = params
        self.body = body
        self.closure = closure
        self.interpreter = interpreter

    def __call__(self, *args):
        return self.interpreter._invoke(self, list(args), JS_UNDEFINED)

    def __repr__(self):
        return f"<JSFunction {self.name or 'anonymous'}({', '.join(self.params)})>"


class _Scope:
    __slots__ = ("vars", "parent")

    def __init__(self, parent=None, variables=None):
        self.vars = dict(variables or {})
        self.parent = parent

    def lookup(self, name: str):
        scope = self
        while scope is not None:
            if name in scope.vars:
                return scope
            scope = scope.parent
        return None


def _from_char_code(*codes):
    return "".join(chr(_to_uint32(c) & 0xFFFF) for c in codes)


def _parse_int(value=JS_UNDEFINED, radix=JS_UNDEFINED):
    s = _to_string(value).strip()
    base = 10 if radix is JS_UNDEFINED else _to_int32(radix)
    sign = -1 if s.startswith("-") else 1
    s = s.lstrip("+-")
    if base in (0, 16) and s[:2].lower() == "0x":
        s, base = s[2:], 16
    if base == 0:
        base = 10
    if not 2 <= base <= 36:
        return math.nan
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"[:base]
    end = 0
    while end < len(s) and s[end].lower() in digits:
        end += 1
    if end == 0:
        return math.nan
    return _num(sign * int(s[:end], base))


def _parse_float(value=JS_UNDEFINED):
    match = re.match(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?", _to_string(value).strip())
    return _num(float(match.group())) if match else math.nan


def _math_round(x=JS_UNDEFINED):
    number = _to_number(x)
    if isinstance(number, float) and (math.isnan(number) or math.isinf(number)):
        return number
    return math.floor(number + 0.5)


def _math_reduce(func, empty):
    def reducer(*args):
        numbers = [_to_number(a) for a in args]
        if any(isinstance(n, float) and math.isnan(n) for n in numbers):
            return math.nan
        return func(numbers) if numbers else empty

    return reducer


def _unary_math(func):
    def wrapper(x=JS_UNDEFINED):
        try:
            return _num(func(_to_number(x)))
        except (ValueError, OverflowError):
            return math.nan

    return wrapper


def _array_length(value) -> int:
    number = _to_number(value)
    if number < 0 or (isinstance(number, float) and not number.is_integer()):
        raise JSInterpreterError("Invalid array length")
    return _check_length(int(number))


def _new_array(*args):
    if len(args) == 1 and isinstance(args[0], (int, float)) and not isinstance(args[0], bool):
        return [JS_UNDEFINED] * _array_length(args[0])
    return list(args)


def _builtin_globals() -> dict:
    return {
        "Math": _JSNamespace(
            {
                "abs": _unary_math(abs),
                "ceil": _unary_math(math.ceil),
                "floor": _unary_math(math.floor),
                "trunc": _unary_math(math.trunc),
                "sqrt": _unary_math(math.sqrt),
                "log": _unary_math(math.log),
                "sign": _unary_math(lambda x: (x > 0) - (x < 0)),
                "round": _math_round,
                "pow": lambda x, y: _apply_op("**", x, y),
                "max": _math_reduce(max, -math.inf),
                "min": _math_reduce(min, math.inf),
                # Deterministic: transforms must not depend on randomness.
                "random": lambda: 0.5,
                "PI": math.pi,
                "E": math.e,
            }
        ),
        "String": _JSNamespace(
            {"fromCharCode": _from_char_code},
            call=lambda value="": _to_string(value),
        ),
        "Number": _JSNamespace(
            {"isNaN": lambda v=JS_UNDEFINED: isinstance(v, float) and math.isnan(v)},
            call=lambda value=0: _to_number(value),
        ),
        "Array": _JSNamespace({"isArray": lambda v=JS_UNDEFINED: isinstance(v, list)}, call=_new_array),
        "parseInt": _parse_int,
        "parseFloat": _parse_float,
        "isNaN": lambda v=JS_UNDEFINED: math.isnan(float(_to_number(v))),
        "encodeURIComponent": lambda v=JS_UNDEFINED: quote(_to_string(v), safe="-_.!~*'()"),
        "decodeURIComponent": lambda v=JS_UNDEFINED: unquote(_to_string(v)),
    }


# ----------------------------------------------------------------------
# Tokenizer
# ----------------------------------------------------------------------


def _read_string(code: str, pos: int) -> tuple[str, int]:
    quote_char = code[pos]
    pos += 1
    buf = []
    try:
        while True:
            ch = code[pos]
            if ch == quote_char:
                return "".join(buf), pos + 1
            if ch == "\\":
                esc = code[pos + 1]
                if esc == "x":
                    buf.append(chr(int(code[pos + 2 : pos + 4], 16)))
                    pos += 4
                    continue
                if esc == "u":
                    buf.append(chr(int(code[pos + 2 : pos + 6], 16)))
                    pos += 6
                    continue
                if esc != "\n":
                    buf.append(_ESCAPES.get(esc, esc))
                pos += 2
                continue
            if ch == "\n":
                raise JSInterpreterError("Unterminated string literal")
            buf.append(ch)
            pos += 1
    except (IndexError, ValueError) as exc:
        raise JSInterpreterError("Unterminated string literal") from exc


def _read_regex(code: str, pos: int) -> tuple[str, str, int]:
    end = pos + 1
    in_class = False
    while True:
        if end >= len(code) or code[end] == "\n":
            raise JSInterpreterError("Unterminated regular expression")
        ch = code[end]
        if ch == "\\":
            end += 2
            continue
        if ch == "[":
            in_class = True
        elif ch == "]":
            in_class = False
        elif ch == "/" and not in_class:
            break
        end += 1
    source = code[pos + 1 : end]
    flags = re.match(r"[a-z]*", code[end + 1 :]).group()
    return source, flags, end + 1 + len(flags)


def _regex_allowed(tokens: list) -> bool:
    if not tokens:
        return True
    kind, value = tokens[-1]
    if kind in ("num", "str", "regex"):
        return False
    if kind == "name":
        return value in _KEYWORDS_BEFORE_EXPRESSION
    return value not in (")", "]", "}")


def _tokenize(code: str) -> list[tuple[str, Any]]:
    tokens: list[tuple[str, Any]] = []
    pos, length = 0, len(code)
    while pos < length:
        ch = code[pos]
        if ch.isspace():
            pos += 1
            continue
        if code.startswith("//", pos):
            end = code.find("\n", pos)
            pos = length if end < 0 else end
            continue
        if code.startswith("/*", pos):
            end = code.find("*/", pos + 2)
            if end < 0:
                raise JSInterpreterError("Unterminated comment")
            pos = end + 2
            continue
        if ch.isdigit() or (ch == "." and code[pos + 1 : pos + 2].isdigit()):
            match = _NUMBER_RE.match(code, pos)
            text = match.group()
            if text[:2].lower() == "0x":
                value = _num(int(text, 16))
            elif len(text) > 15 or re.search(r"[.eE]", text):
                value = _num(float(text))
            else:
                value = int(text)
            tokens.append(("num", value))
            pos = match.end()
            continue
        if ch in "\"'":
            value, pos = _read_string(code, pos)
            tokens.append(("str", value))
            continue
        if ch == "`":
            raise JSInterpreterError("Template literals are not supported")
        match = _NAME_RE.match(code, pos)
        if match:
            tokens.append(("name", match.group()))
            pos = match.end()
            continue
        if ch == "/" and _regex_allowed(tokens):
            source, flags, pos = _read_regex(code, pos)
            tokens.append(("regex", (source, flags)))
            continue
        for punct in _PUNCTUATORS:
            if code.startswith(punct, pos):
                tokens.append(("punct", punct))
                pos += len(punct)
                break
        else:
            raise JSInterpreterError(f"Unexpected character {ch!r} at offset {pos}")
    tokens.append(("eof", None))
    return tokens


# ----------------------------------------------------------------------
# Parser: tokens -> nested tuples
# ----------------------------------------------------------------------


class _Parser:
    def __init__(self, tokens: list[tuple[str, Any]]):
        self.tokens = tokens
        self.pos = 0

    def peek(self, offset: int = 0) -> tuple[str, Any]:
        return self.tokens[min(self.pos + offset, len(self.tokens) - 1)]

    def next(self) -> tuple[str, Any]:
        token = self.tokens[self.pos]
        if token[0] != "eof":
            self.pos += 1
        return token

    def at(self, value: str, kind: str = "punct") -> bool:
        return self.peek() == (kind, value)

    def accept(self, value: str, kind: str = "punct") -> bool:
        if self.at(value, kind):
            self.pos += 1
            return True
        return False

    def expect(self, value: str, kind: str = "punct"):
        if not self.accept(value, kind):
            raise JSInterpreterError(f"Expected {value!r} but found {self.peek()[1]!r}")

    def expect_name(self) -> str:
        kind, value = self.next()
        if kind != "name":
            raise JSInterpreterError(f"Expected identifier but found {value!r}")
        return value

    # --- statements ---

    def parse_program(self):
        body = []
        while self.peek()[0] != "eof":
            body.append(self.parse_statement())
        return ("block", body)

    def parse_statement(self):
        kind, value = self.peek()
        if kind == "punct":
            if value == "{":
                return self.parse_block()
            if value == ";":
                self.pos += 1
                return ("empty",)
        elif kind == "name":
            handler = getattr(self, f"_parse_{value}_statement", None)
            if handler is not None and value in (
                "var", "let", "const", "function", "return", "if", "for", "while",
                "do", "break", "continue", "throw", "try", "switch",
            ):
                return handler()
        expr = self.parse_expression()
        self.accept(";")
        return ("expr", expr)

    def parse_block(self):
        self.expect("{")
        body = []
        while not self.accept("}"):
            if self.peek()[0] == "eof":
                raise JSInterpreterError("Unexpected end of input, missing '}'")
            body.append(self.parse_statement())
        return ("block", body)

    def _parse_declarations(self):
        self.next()
        declarations = []
        while True:
            name = self.expect_name()
            init = self.parse_assignment() if self.accept("=") else None
            declarations.append((name, init))
            if not self.accept(","):
                return ("var", declarations)

    def _parse_var_statement(self):
        node = self._parse_declarations()
        self.accept(";")
        return node

    _parse_let_statement = _parse_var_statement
    _parse_const_statement = _parse_var_statement

    def _parse_function_statement(self):
        self.next()
        name = self.expect_name()
        params, body = self.parse_function_rest()
        return ("funcdecl", name, params, body)

    def _parse_return_statement(self):
        self.next()
        arg = None
        if not (self.at(";") or self.at("}") or self.peek()[0] == "eof"):
            arg = self.parse_expression()
        self.accept(";")
        return ("return", arg)

    def _parse_if_statement(self):
        self.next()
        self.expect("(")
        test = self.parse_expression()
        self.expect(")")
        consequent = self.parse_statement()
        alternate = self.parse_statement() if self.accept("else", "name") else None
        return ("if", test, consequent, alternate)

    def _parse_for_statement(self):
        self.next()
        self.expect("(")
        if self.peek()[0] == "name":
            declared = self.peek()[1] in ("var", "let", "const")
            offset = 1 if declared else 0
            if self.peek(offset)[0] == "name" and self.peek(offset + 1) == ("name", "in"):
                if declared:
                    self.next()
                name = self.expect_name()
                self.next()
                obj = self.parse_expression()
                self.expect(")")
                return ("forin", name, declared, obj, self.parse_statement())
        init = None
        if not self.at(";"):
            if self.peek()[0] == "name" and self.peek()[1] in ("var", "let", "const"):
                init = self._parse_declarations()
            else:
                init = ("expr", self.parse_expression())
        self.expect(";")
        test = None if self.at(";") else self.parse_expression()
        self.expect(";")
        update = None if self.at(")") else self.parse_expression()
        self.expect(")")
        return ("for", init, test, update, self.parse_statement())

    def _parse_while_statement(self):
        self.next()
        self.expect("(")
        test = self.parse_expression()
        self.expect(")")
        return ("while", test, self.parse_statement())

    def _parse_do_statement(self):
        self.next()
        body = self.parse_statement()
        self.expect("while", "name")
        self.expect("(")
        test = self.parse_expression()
        self.expect(")")
        self.accept(";")
        return ("dowhile", body, test)

    def _parse_break_statement(self):
        self.next()
        self.accept(";")
        return ("break",)

    def _parse_continue_statement(self):
        self.next()
        self.accept(";")
        return ("continue",)

    def _parse_throw_statement(self):
        self.next()
        arg = self.parse_expression()
        self.accept(";")
        return ("throw", arg)

    def _parse_try_statement(self):
        self.next()
        block = self.parse_block()
        param = handler = finalizer = None
        if self.accept("catch", "name"):
            if self.accept("("):
                param = self.expect_name()
                self.expect(")")
            handler = self.parse_block()
        if self.accept("finally", "name"):
            finalizer = self.parse_block()
        if handler is None and finalizer is None:
            raise JSInterpreterError("try without catch or finally")
        return ("try", block, param, handler, finalizer)

    def _parse_switch_statement(self):
        self.next()
        self.expect("(")
        discriminant = self.parse_expression()
        self.expect(")")
        self.expect("{")
        cases = []
        while not self.accept("}"):
            if self.accept("case", "name"):
                test = self.parse_expression()
            elif self.accept("default", "name"):
                test = None
            else:
                raise JSInterpreterError(f"Unexpected {self.peek()[1]!r} in switch")
            self.expect(":")
            body = []
            while not (
                self.at("}") or self.at("case", "name") or self.at("default", "name")
            ):
                body.append(self.parse_statement())
            cases.append((test, body))
        return ("switch", discriminant, cases)

    def parse_function_rest(self):
        self.expect("(")
        params = []
        if not self.accept(")"):
            while True:
                params.append(self.expect_name())
                if self.accept(")"):
                    break
                self.expect(",")
        return params, self.parse_block()

    # --- expressions ---

    def parse_expression(self):
        expr = self.parse_assignment()
        if not self.at(","):
            return expr
        exprs = [expr]
        while self.accept(","):
            exprs.append(self.parse_assignment())
        return ("seq", exprs)

    def parse_assignment(self):
        left = self.parse_conditional()
        kind, value = self.peek()
        if kind == "punct" and value in _ASSIGN_OPS:
            if left[0] not in ("name", "member"):
                raise JSInterpreterError("Invalid assignment target")
            self.pos += 1
            return ("assign", value, left, self.parse_assignment())
        return left

    def parse_conditional(self):
        test = self.parse_binary(1)
        if self.accept("?"):
            consequent = self.parse_assignment()
            self.expect(":")
            return ("cond", test, consequent, self.parse_assignment())
        return test

    def _binary_operator(self) -> tuple[str | None, int]:
        kind, value = self.peek()
        if kind == "punct" and value in _BINARY_PRECEDENCE:
            return value, _BINARY_PRECEDENCE[value]
        if kind == "name" and value in ("in", "instanceof"):
            return value, _BINARY_PRECEDENCE[value]
        return None, 0

    def parse_binary(self, min_precedence: int):
        left = self.parse_unary()
        while True:
            op, precedence = self._binary_operator()
            if op is None or precedence < min_precedence:
                return left
            self.pos += 1
            right = self.parse_binary(precedence if op == "**" else precedence + 1)
            if op in ("&&", "||", "??"):
                left = ("logical", op, left, right)
            else:
                left = ("binary", op, left, right)

    def parse_unary(self):
        kind, value = self.peek()
        if kind == "punct" and value in ("!", "-", "+", "~"):
            self.pos += 1
            return ("unary", value, self.parse_unary())
        if kind == "punct" and value in ("++", "--"):
            self.pos += 1
            target = self.parse_unary()
            if target[0] not in ("name", "member"):
                raise JSInterpreterError("Invalid update target")
            return ("update", value, True, target)
        if kind == "name" and value in ("typeof", "void", "delete"):
            self.pos += 1
            return ("unary", value, self.parse_unary())
        expr = self.parse_call_member()
        kind, value = self.peek()
        if kind == "punct" and value in ("++", "--") and expr[0] in ("name", "member"):
            self.pos += 1
            return ("update", value, False, expr)
        return expr

    def parse_call_member(self):
        if self.accept("new", "name"):
            callee = self.parse_primary()
            while True:
                if self.accept("."):
                    callee = ("member", callee, ("const", self.expect_name()))
                elif self.accept("["):
                    prop = self.parse_expression()
                    self.expect("]")
                    callee = ("member", callee, prop)
                else:
                    break
            args = self.parse_arguments() if self.at("(") else []
            expr = ("new", callee, args)
        else:
            expr = self.parse_primary()
        while True:
            if self.accept("."):
                expr = ("member", expr, ("const", self.expect_name()))
            elif self.accept("["):
                prop = self.parse_expression()
                self.expect("]")
                expr = ("member", expr, prop)
            elif self.at("("):
                expr = ("call", expr, self.parse_arguments())
            else:
                return expr

    def parse_arguments(self):
        self.expect("(")
        args = []
        if self.accept(")"):
            return args
        while True:
            args.append(self.parse_assignment())
            if self.accept(")"):
                return args
            self.expect(",")

    def parse_primary(self):
        kind, value = self.next()
        if kind == "num" or kind == "str":
            return ("const", value)
        if kind == "regex":
            return ("regex", value[0], value[1])
        if kind == "punct":
            if value == "(":
                expr = self.parse_expression()
                self.expect(")")
                return expr
            if value == "[":
                elements = []
                while not self.accept("]"):
                    elements.append(self.parse_assignment())
                    if not self.accept(","):
                        self.expect("]")
                        break
                return ("array", elements)
            if value == "{":
                props = []
                while not self.accept("}"):
                    key_kind, key = self.next()
                    if key_kind not in ("name", "str", "num"):
                        raise JSInterpreterError(f"Invalid object key {key!r}")
                    self.expect(":")
                    props.append((_to_string(key), self.parse_assignment()))
                    if not self.accept(","):
                        self.expect("}")
                        break
                return ("object", props)
        if kind == "name":
            if value == "function":
                name = self.next()[1] if self.peek()[0] == "name" else None
                params, body = self.parse_function_rest()
                return ("function", name, params, body)
            if value in _LITERALS:
                return ("const", _LITERALS[value])
            if value == "undefined":
                return ("const", JS_UNDEFINED)
            if value == "this":
                return ("this",)
            return ("name", value)
        raise JSInterpreterError(f"Unexpected token {value!r}")


def _child_statements(node) -> list:
    kind = node[0]
    if kind == "block":
        return node[1]
    if kind == "if":
        return [s for s in node[2:4] if s is not None]
    if kind == "for":
        return [s for s in (node[1], node[4]) if s is not None]
    if kind in ("while", "forin"):
        return [node[-1]]
    if kind == "dowhile":
        return [node[1]]
    if kind == "try":
        return [s for s in (node[1], node[3], node[4]) if s is not None]
    if kind == "switch":
        return [stmt for _, body in node[2] for stmt in body]
    return []


# ----------------------------------------------------------------------
# Interpreter
# ----------------------------------------------------------------------


class JSInterpreter:
    """
    Small tree-walking JavaScript interpreter for player transform code.

    The whole ``code`` is executed once to define its globals (helper objects,
    arrays and functions); functions are then called by name. A single
    instance keeps its globals between calls, so callers that need isolation
    create one instance per evaluation.
    """

    def __init__(
        self,
        code: str,
        objects: dict | None = None,
        max_steps: int | None = None,
        timeout: float | None = None,
    ):
        self.code = code
        self.max_steps = max_steps
        self.timeout = timeout
        self._steps = 0
        self._deadline: float | None = None
        self._globals = _Scope(variables=_builtin_globals())
        if objects:
            self._globals.vars.update(objects)
        self._loaded = False

        self._exec_handlers = {
            "expr": self._exec_expr,
            "var": self._exec_var,
            "funcdecl": self._exec_noop,
            "empty": self._exec_noop,
            "return": self._exec_return,
            "if": self._exec_if,
            "block": self._exec_block,
            "for": self._exec_for,
            "forin": self._exec_forin,
            "while": self._exec_while,
            "dowhile": self._exec_dowhile,
            "break": self._exec_break,
            "continue": self._exec_continue,
            "throw": self._exec_throw,
            "try": self._exec_try,
            "switch": self._exec_switch,
        }
        self._eval_handlers = {
            "const": lambda node, scope: node[1],
            "regex": lambda node, scope: JSRegExp(node[1], node[2]),
            "name": self._eval_name,
            "this": self._eval_this,
            "array": lambda node, scope: [self._eval(e, scope) for e in node[1]],
            "object": lambda node, scope: {k: self._eval(v, scope) for k, v in node[1]},
            "function": lambda node, scope: JSFunction(node[1], node[2], node[3], scope, self),
            "unary": self._eval_unary,
            "update": self._eval_update,
            "binary": lambda node, scope: _apply_op(
                node[1], self._eval(node[2], scope), self._eval(node[3], scope)
            ),
            "logical": self._eval_logical,
            "cond": self._eval_cond,
            "assign": self._eval_assign,
            "seq": self._eval_seq,
            "member": self._eval_member,
            "call": self._eval_call,
            "new": self._eval_new,
        }

    # --- public API ---

    def extract_function(self, func_name: str) -> Any:
        """Return a Python callable for the named function."""
        return functools.partial(self.call_function, func_name)

    def call_function(self, func_name: str, *args) -> Any:
        """Call a function defined by the code, loading the code first if needed."""
        self._start_clock()
        try:
            self._load()
            scope = self._globals.lookup(func_name)
            func = scope.vars[func_name] if scope else None
            if not isinstance(func, JSFunction):
                raise JSInterpreterError(f"Could not find function {func_name!r}")
            return self._call_value(func, list(args), JS_UNDEFINED)
        except RecursionError as exc:
            raise JSInterpreterError("Maximum call depth exceeded") from exc

    def extract_object(self, obj_name: str) -> dict:
        """Return a global object literal defined by the code."""
        self._start_clock()
        self._load()
        scope = self._globals.lookup(obj_name)
        obj = scope.vars[obj_name] if scope else None
        if not isinstance(obj, dict):
            raise JSInterpreterError(f"Could not find object {obj_name!r}")
        return obj

    # --- budget ---

    def _start_clock(self):
        if self.timeout is not None:
            self._deadline = time.monotonic() + self.timeout

    def _tick(self):
        self._steps += 1
        if self.max_steps is not None and self._steps > self.max_steps:
            raise JSBudgetExceeded(f"Step budget of {self.max_steps} exceeded")
        if (
            self._deadline is not None
            and self._steps % 256 == 0
            and time.monotonic() > self._deadline
        ):
            raise JSBudgetExceeded(f"Time budget of {self.timeout}s exceeded")

    # --- loading ---

    def _load(self):
        if self._loaded:
            return
        program = _Parser(_tokenize(self.code)).parse_program()
        logger.debug("Parsed %d top-level statements", len(program[1]))
        self._loaded = True
        self._hoist(program[1], self._globals)
        self._exec(program, self._globals)

    def _hoist(self, statements: list, scope: _Scope):
        for stmt in statements:
            kind = stmt[0]
            if kind == "funcdecl":
                scope.vars[stmt[1]] = JSFunction(stmt[1], stmt[2], stmt[3], scope, self)
                continue
            if kind == "var":
                for name, _ in stmt[1]:
                    scope.vars.setdefault(name, JS_UNDEFINED)
            elif kind == "forin" and stmt[2]:
                scope.vars.setdefault(stmt[1], JS_UNDEFINED)
            self._hoist(_child_statements(stmt), scope)

    # --- statements ---

    def _exec(self, node, scope: _Scope):
        self._tick()
        self._exec_handlers[node[0]](node, scope)

    def _exec_noop(self, node, scope):
        pass

    def _exec_expr(self, node, scope):
        self._eval(node[1], scope)

    def _exec_var(self, node, scope):
        for name, init in node[1]:
            target = scope.lookup(name) or scope
            if init is not None:
                target.vars[name] = self._eval(init, scope)
            elif name not in target.vars:
                target.vars[name] = JS_UNDEFINED

    def _exec_return(self, node, scope):
        raise _JSReturn(self._eval(node[1], scope) if node[1] is not None else JS_UNDEFINED)

    def _exec_if(self, node, scope):
        if _js_ternary(self._eval(node[1], scope)):
            self._exec(node[2], scope)
        elif node[3] is not None:
            self._exec(node[3], scope)

    def _exec_block(self, node, scope):
        for stmt in node[1]:
            self._exec(stmt, scope)

    def _run_loop_body(self, body, scope) -> bool:
        """Run one iteration; False means the loop was broken out of."""
        try:
            self._exec(body, scope)
        except JSBreak:
            return False
        except JSContinue:
            pass
        return True

    def _exec_for(self, node, scope):
        _, init, test, update, body = node
        if init is not None:
            self._exec(init, scope)
        while test is None or _js_ternary(self._eval(test, scope)):
            if not self._run_loop_body(body, scope):
                break
            if update is not None:
                self._eval(update, scope)

    def _exec_forin(self, node, scope):
        _, name, _, obj_node, body = node
        obj = self._eval(obj_node, scope)
        if isinstance(obj, dict):
            keys = list(obj.keys())
        elif isinstance(obj, (list, str)):
            keys = [str(i) for i in range(len(obj))]
        else:
            keys = []
        target = scope.lookup(name) or self._globals
        for key in keys:
            target.vars[name] = key
            if not self._run_loop_body(body, scope):
                break

    def _exec_while(self, node, scope):
        while _js_ternary(self._eval(node[1], scope)):
            if not self._run_loop_body(node[2], scope):
                break

    def _exec_dowhile(self, node, scope):
        while True:
            if not self._run_loop_body(node[1], scope):
                break
            if not _js_ternary(self._eval(node[2], scope)):
                break

    def _exec_break(self, node, scope):
        raise JSBreak()

    def _exec_continue(self, node, scope):
        raise JSContinue()

    def _exec_throw(self, node, scope):
        raise JSThrow(self._eval(node[1], scope))

    def _exec_try(self, node, scope):
        _, block, param, handler, finalizer = node
        try:
            self._exec(block, scope)
        except JSBudgetExceeded:
            raise
        except JSInterpreterError as exc:
            if handler is None:
                raise
            value = exc.value if isinstance(exc, JSThrow) else str(exc)
            self._exec(handler, _Scope(scope, {param: value} if param else None))
        finally:
            if finalizer is not None:
                self._exec(finalizer, scope)

    def _exec_switch(self, node, scope):
        discriminant = self._eval(node[1], scope)
        cases = node[2]
        start = None
        for index, (test, _) in enumerate(cases):
            if test is not None and _strict_equals(discriminant, self._eval(test, scope)):
                start = index
                break
        if start is None:
            start = next((i for i, (test, _) in enumerate(cases) if test is None), None)
        if start is None:
            return
        try:
            for _, body in cases[start:]:
                for stmt in body:
                    self._exec(stmt, scope)
        except JSBreak:
            pass

    # --- expressions ---

    def _eval(self, node, scope: _Scope) -> Any:
        return self._eval_handlers[node[0]](node, scope)

    def _eval_name(self, node, scope):
        found = scope.lookup(node[1])
        if found is None:
            raise JSInterpreterError(f"{node[1]} is not defined")
        return found.vars[node[1]]

    def _eval_this(self, node, scope):
        found = scope.lookup("this")
        return found.vars["this"] if found else JS_UNDEFINED

    def _eval_unary(self, node, scope):
        op, operand = node[1], node[2]
        if op == "typeof":
            if operand[0] == "name" and scope.lookup(operand[1]) is None:
                return "undefined"
            return _typeof(self._eval(operand, scope))
        if op == "delete":
            if operand[0] == "member":
                obj = self._eval(operand[1], scope)
                if isinstance(obj, dict):
                    obj.pop(_to_string(self._eval(operand[2], scope)), None)
            return True
        value = self._eval(operand, scope)
        if op == "!":
            return not _js_ternary(value)
        if op == "-":
            return _num(-_to_number(value))
        if op == "+":
            return _to_number(value)
        if op == "~":
            return ~_to_int32(value)
        return JS_UNDEFINED  # void

    def _reference(self, target, scope):
        if target[0] == "name":
            return None, target[1]
        return self._eval(target[1], scope), self._eval(target[2], scope)

    def _get_reference(self, obj, key, scope):
        if obj is None and isinstance(key, str):
            found = scope.lookup(key)
            if found is None:
                raise JSInterpreterError(f"{key} is not defined")
            return found.vars[key]
        return self._get_member(obj, key)

    def _set_reference(self, obj, key, value, scope, is_name: bool):
        if is_name:
            (scope.lookup(key) or self._globals).vars[key] = value
        else:
            self._set_member(obj, key, value)

    def _eval_update(self, node, scope):
        _, op, prefix, target = node
        is_name = target[0] == "name"
        obj, key = self._reference(target, scope)
        old = _to_number(self._get_reference(obj, key, scope) if is_name else self._get_member(obj, key))
        new = _num(old + 1 if op == "++" else old - 1)
        self._set_reference(obj, key, new, scope, is_name)
        return new if prefix else old

    def _eval_logical(self, node, scope):
        op = node[1]
        left = self._eval(node[2], scope)
        if op == "&&":
            return self._eval(node[3], scope) if _js_ternary(left) else left
        if op == "||":
            return left if _js_ternary(left) else self._eval(node[3], scope)
        return self._eval(node[3], scope) if left is None or left is JS_UNDEFINED else left

    def _eval_cond(self, node, scope):
        if _js_ternary(self._eval(node[1], scope)):
            return self._eval(node[2], scope)
        return self._eval(node[3], scope)

    def _eval_assign(self, node, scope):
        _, op, target, value_node = node
        is_name = target[0] == "name"
        obj, key = self._reference(target, scope)
        if op == "=":
            value = self._eval(value_node, scope)
        else:
            current = self._get_reference(obj, key, scope) if is_name else self._get_member(obj, key)
            value = _apply_op(op[:-1], current, self._eval(value_node, scope))
        self._set_reference(obj, key, value, scope, is_name)
        return value

    def _eval_seq(self, node, scope):
        value = JS_UNDEFINED
        for expr in node[1]:
            value = self._eval(expr, scope)
        return value

    def _eval_member(self, node, scope):
        return self._get_member(self._eval(node[1], scope), self._eval(node[2], scope))

    def _eval_call(self, node, scope):
        callee = node[1]
        if callee[0] == "member":
            this = self._eval(callee[1], scope)
            func = self._get_member(this, self._eval(callee[2], scope))
        else:
            this = JS_UNDEFINED
            func = self._eval(callee, scope)
        args = [self._eval(arg, scope) for arg in node[2]]
        return self._call_value(func, args, this)

    def _eval_new(self, node, scope):
        constructor = self._eval(node[1], scope)
        args = [self._eval(arg, scope) for arg in node[2]]
        if isinstance(constructor, JSFunction):
            instance: dict = {}
            result = self._invoke(constructor, args, instance)
            return result if isinstance(result, (dict, list)) else instance
        return self._call_value(constructor, args, JS_UNDEFINED)

    # --- calls ---

    def _call_value(self, func, args: list, this) -> Any:
        self._tick()
        if isinstance(func, JSFunction):
            return self._invoke(func, args, this)
        if callable(func):
            try:
                return func(*args)
            except (TypeError, ValueError, IndexError, KeyError, AttributeError, OverflowError) as exc:
                raise JSInterpreterError(f"Built-in call failed: {exc}") from exc
        raise JSInterpreterError(f"{_to_string(func)} is not a function")

    def _invoke(self, func: JSFunction, args: list, this) -> Any:
        scope = _Scope(func.closure, {"this": this, "arguments": list(args)})
        if func.name:
            scope.vars[func.name] = func
        for index, name in enumerate(func.params):
            scope.vars[name] = _arg(args, index)
        self._hoist(func.body[1], scope)
        try:
            self._exec(func.body, scope)
        except _JSReturn as ret:
            return ret.value
        return JS_UNDEFINED

    # --- properties ---

    def _get_member(self, obj, key) -> Any:
        if obj is None or obj is JS_UNDEFINED:
            raise JSInterpreterError(
                f"Cannot read properties of {_to_string(obj)} (reading {_to_string(key)!r})"
            )
        if isinstance(obj, str):
            if key == "length":
                return len(obj)
            index = _as_index(key)
            if index is not None:
                return obj[index] if index < len(obj) else JS_UNDEFINED
            method = _STRING_METHODS.get(key) if isinstance(key, str) else None
            if method is not None:
                return functools.partial(method, self, obj)
            return JS_UNDEFINED
        if isinstance(obj, list):
            if key == "length":
                return len(obj)
            index = _as_index(key)
            if index is not None:
                return obj[index] if index < len(obj) else JS_UNDEFINED
            method = _ARRAY_METHODS.get(key) if isinstance(key, str) else None
            if method is not None:
                return functools.partial(method, self, obj)
            return JS_UNDEFINED
        if isinstance(obj, dict):
            return obj.get(_to_string(key), JS_UNDEFINED)
        if isinstance(obj, JSFunction):
            if key == "call":
                return lambda this=JS_UNDEFINED, *args: self._invoke(obj, list(args), this)
            if key == "apply":
                return lambda this=JS_UNDEFINED, args=JS_UNDEFINED: self._invoke(
                    obj, list(args) if isinstance(args, list) else [], this
                )
            if key == "length":
                return len(obj.params)
            if key == "name":
                return obj.name or ""
            return JS_UNDEFINED
        if isinstance(obj, JSRegExp):
            if key == "test":
                return lambda s=JS_UNDEFINED: obj.regex.search(obj.subject(_to_string(s))) is not None
            if key == "source":
                return obj.source
            return JS_UNDEFINED
        if isinstance(obj, (int, float)) and not isinstance(obj, bool) and key == "toString":
            return lambda radix=10: _number_to_string(obj, radix)
        return JS_UNDEFINED

    def _set_member(self, obj, key, value):
        if isinstance(obj, list):
            if key == "length":
                length = _array_length(value)
                del obj[length:]
                obj.extend([JS_UNDEFINED] * (length - len(obj)))
                return
            index = _as_index(key)
            if index is None:
                raise JSInterpreterError(f"Unsupported array property {key!r}")
            if index >= len(obj):
                _check_length(index + 1)
                obj.extend([JS_UNDEFINED] * (index + 1 - len(obj)))
            obj[index] = value
            return
        if isinstance(obj, dict):
            obj[_to_string(key)] = value
            return
        if isinstance(obj, str):
            return  # strings are immutable; assignment is silently ignored
        raise JSInterpreterError(f"Cannot set property {_to_string(key)!r} of {_to_string(obj)}")


def _number_to_string(value, radix=10) -> str:
    radix = int(_to_number(radix))
    if radix == 10 or not isinstance(value, int):
        return _to_string(value)
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    n, out = abs(value), ""
    while True:
        n, r = divmod(n, radix)
        out = digits[r] + out
        if n == 0:
            break
    return "-" + out if value < 0 else out


# ----------------------------------------------------------------------
# Built-in methods: fn(interpreter, receiver, *args)
# ----------------------------------------------------------------------


def _str_split(interp, s, sep=JS_UNDEFINED, limit=JS_UNDEFINED):
    if sep is JS_UNDEFINED:
        parts = [s]
    elif isinstance(sep, JSRegExp):
        parts = [p for p in sep.regex.split(sep.subject(s)) if p is not None]
    else:
        sep = _to_string(sep)
        parts = list(s) if sep == "" else s.split(sep)
    if limit is not JS_UNDEFINED:
        parts = parts[: int(_to_number(limit))]
    return parts


def _str_slice(interp, s, start=JS_UNDEFINED, end=JS_UNDEFINED):
    return s[_relative_index(start, len(s), 0) : _relative_index(end, len(s), len(s))]


def _str_substring(interp, s, start=JS_UNDEFINED, end=JS_UNDEFINED):
    def clamp(value, default):
        if value is JS_UNDEFINED:
            return default
        number = _to_number(value)
        if isinstance(number, float) and math.isnan(number):
            return 0
        return int(min(max(number, 0), len(s)))

    a, b = clamp(start, 0), clamp(end, len(s))
    return s[min(a, b) : max(a, b)]


def _str_substr(interp, s, start=JS_UNDEFINED, length=JS_UNDEFINED):
    begin = _relative_index(start, len(s), 0)
    count = len(s) - begin if length is JS_UNDEFINED else max(int(_to_number(length)), 0)
    return s[begin : begin + count]


def _str_char_at(interp, s, index=0):
    i = _as_index(_to_number(index) if index is not JS_UNDEFINED else 0)
    return s[i] if i is not None and i < len(s) else ""


def _str_char_code_at(interp, s, index=0):
    i = _as_index(_to_number(index) if index is not JS_UNDEFINED else 0)
    return ord(s[i]) if i is not None and i < len(s) else math.nan


def _str_index_of(interp, s, sub=JS_UNDEFINED, start=0):
    return s.find(_to_string(sub), _relative_index(start, len(s), 0))


def _str_last_index_of(interp, s, sub=JS_UNDEFINED):
    return s.rfind(_to_string(sub))


def _str_replace(interp, s, pattern=JS_UNDEFINED, replacement=JS_UNDEFINED):
    def substitute(match_text, groups=()):
        if callable(replacement):
            return _to_string(interp._call_value(replacement, [match_text, *groups], JS_UNDEFINED))
        return _to_string(replacement).replace("$&", match_text)

    if isinstance(pattern, JSRegExp):
        return pattern.regex.sub(
            lambda m: substitute(m.group(0), m.groups()),
            pattern.subject(s),
            count=0 if pattern.is_global else 1,
        )
    needle = _to_string(pattern)
    index = s.find(needle)
    if index < 0:
        return s
    return s[:index] + substitute(needle) + s[index + len(needle) :]


def _str_match(interp, s, pattern=JS_UNDEFINED):
    regex = pattern if isinstance(pattern, JSRegExp) else JSRegExp(re.escape(_to_string(pattern)))
    if regex.is_global:
        found = [m.group(0) for m in regex.regex.finditer(regex.subject(s))]
        return found or None
    match = regex.regex.search(regex.subject(s))
    return [match.group(0), *match.groups()] if match else None


def _str_repeat(interp, s, count=0):
    times = _to_number(count)
    if isinstance(times, float) and math.isnan(times):
        times = 0
    if times < 0 or times == math.inf:
        raise JSInterpreterError("Invalid count value")
    times = int(times)
    _check_length(len(s) * times)
    return s * times


def _str_pad(left: bool):
    def pad(interp, s, length=0, fill=" "):
        fill = _to_string(fill)
        target = _to_number(length)
        if isinstance(target, float) and math.isnan(target):
            target = 0
        missing = _check_length(target) - len(s)
        if missing <= 0 or not fill:
            return s
        missing = int(missing)
        padding = (fill * (missing // len(fill) + 1))[:missing]
        return padding + s if left else s + padding

    return pad


_STRING_METHODS = {
    "split": _str_split,
    "slice": _str_slice,
    "substring": _str_substring,
    "substr": _str_substr,
    "charAt": _str_char_at,
    "charCodeAt": _str_char_code_at,
    "indexOf": _str_index_of,
    "lastIndexOf": _str_last_index_of,
    "replace": _str_replace,
    "match": _str_match,
    "toLowerCase": lambda interp, s: s.lower(),
    "toUpperCase": lambda interp, s: s.upper(),
    "trim": lambda interp, s: s.strip(),
    "concat": lambda interp, s, *args: _join([s, *(_to_string(a) for a in args)], ""),
    "startsWith": lambda interp, s, sub=JS_UNDEFINED: s.startswith(_to_string(sub)),
    "endsWith": lambda interp, s, sub=JS_UNDEFINED: s.endswith(_to_string(sub)),
    "includes": lambda interp, s, sub=JS_UNDEFINED: _to_string(sub) in s,
    "repeat": _str_repeat,
    "padStart": _str_pad(left=True),
    "padEnd": _str_pad(left=False),
    "toString": lambda interp, s: s,
    "valueOf": lambda interp, s: s,
}


def _arr_push(interp, arr, *items):
    arr.extend(items)
    return len(arr)


def _arr_pop(interp, arr):
    return arr.pop() if arr else JS_UNDEFINED


def _arr_shift(interp, arr):
    return arr.pop(0) if arr else JS_UNDEFINED


def _arr_unshift(interp, arr, *items):
    arr[0:0] = items
    return len(arr)


def _arr_reverse(interp, arr):
    arr.reverse()
    return arr


def _arr_slice(interp, arr, start=JS_UNDEFINED, end=JS_UNDEFINED):
    return arr[_relative_index(start, len(arr), 0) : _relative_index(end, len(arr), len(arr))]


def _arr_splice(interp, arr, start=JS_UNDEFINED, delete_count=JS_UNDEFINED, *items):
    begin = _relative_index(start, len(arr), 0)
    if delete_count is JS_UNDEFINED:
        count = len(arr) - begin
    else:
        count = min(max(int(_to_number(delete_count)), 0), len(arr) - begin)
    removed = arr[begin : begin + count]
    arr[begin : begin + count] = items
    return removed


def _arr_index_of(interp, arr, item=JS_UNDEFINED):
    return next((i for i, v in enumerate(arr) if _strict_equals(v, item)), -1)


def _arr_join(interp, arr, sep=JS_UNDEFINED):
    return _join(arr, "," if sep is JS_UNDEFINED else _to_string(sep))


def _arr_for_each(interp, arr, callback=JS_UNDEFINED):
    for i, item in enumerate(list(arr)):
        interp._call_value(callback, [item, i, arr], JS_UNDEFINED)
    return JS_UNDEFINED


def _arr_map(interp, arr, callback=JS_UNDEFINED):
    return [interp._call_value(callback, [item, i, arr], JS_UNDEFINED) for i, item in enumerate(arr)]


def _arr_filter(interp, arr, callback=JS_UNDEFINED):
    return [
        item
        for i, item in enumerate(arr)
        if _js_ternary(interp._call_value(callback, [item, i, arr], JS_UNDEFINED))
    ]


def _arr_some(interp, arr, callback=JS_UNDEFINED):
    return any(
        _js_ternary(interp._call_value(callback, [item, i, arr], JS_UNDEFINED))
        for i, item in enumerate(arr)
    )


def _arr_reduce(interp, arr, callback=JS_UNDEFINED, *initial):
    items = list(arr)
    if initial:
        acc, start = initial[0], 0
    elif items:
        acc, start = items[0], 1
    else:
        raise JSInterpreterError("Reduce of empty array with no initial value")
    for i in range(start, len(items)):
        acc = interp._call_value(callback, [acc, items[i], i, arr], JS_UNDEFINED)
    return acc


def _arr_concat(interp, arr, *args):
    result = list(arr)
    for a in args:
        _check_length(len(result) + (len(a) if isinstance(a, list) else 1))
        if isinstance(a, list):
            result.extend(a)
        else:
            result.append(a)
    return result


def _arr_sort(interp, arr, comparator=JS_UNDEFINED):
    if comparator is JS_UNDEFINED:
        arr.sort(key=_to_string)
    else:
        arr.sort(
            key=functools.cmp_to_key(
                lambda a, b: _to_number(interp._call_value(comparator, [a, b], JS_UNDEFINED))
            )
        )
    return arr


_ARRAY_METHODS = {
    "push": _arr_push,
    "pop": _arr_pop,
    "shift": _arr_shift,
    "unshift": _arr_unshift,
    "reverse": _arr_reverse,
    "slice": _arr_slice,
    "splice": _arr_splice,
    "indexOf": _arr_index_of,
    "join": _arr_join,
    "forEach": _arr_for_each,
    "map": _arr_map,
    "filter": _arr_filter,
    "some": _arr_some,
    "reduce": _arr_reduce,
    "concat": _arr_concat,
    "sort": _arr_sort,
    "includes": lambda interp, arr, item=JS_UNDEFINED: any(_strict_equals(v, item) for v in arr),
    "toString": lambda interp, arr: _to_string(arr),
}
