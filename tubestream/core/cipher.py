"""
Locating the signature and n-parameter transforms inside a player script.

Each transform is found by an ordered list of matchers. A matcher either
recognises the place the player calls the transform (call-site matchers) or
recognises the transform by the shape of its body (declaration matchers).
The first matcher that yields a function wins. The function is then cut out
of the script together with the globals it depends on and emitted as a small
self-contained program for the evaluator.
"""

import logging
import re
from typing import Callable, Protocol

from ..errors import ExtractionFailed
from ..models.enums import TransformKind
from ..models.player import CipherTransform, CipherTransforms

logger = logging.getLogger(__name__)

_IDENT = r"[a-zA-Z_$][a-zA-Z0-9_$]*"
_BOUNDARY = r"(?<![a-zA-Z0-9_$.])"

_PLAYER_VERSION_RE = re.compile(r"/s/player/(?P<id>[a-zA-Z0-9_-]+)/")
_SIGNATURE_TIMESTAMP_RE = re.compile(r"(?:signatureTimestamp|sts):(\d+)")

_FUNCTION_DECL_RE = re.compile(
    _BOUNDARY
    + rf"(?:function\s+(?P<decl>{_IDENT})|(?P<assigned>{_IDENT})\s*=\s*function)"
    + r"\s*\((?P<args>[^)]*)\)\s*\{"
)
_STRING_LITERAL_RE = re.compile(r'"(?:[^"\\\n]|\\.)*"|\'(?:[^\'\\\n]|\\.)*\'')
_IDENTIFIER_RE = re.compile(_BOUNDARY + rf"({_IDENT})")
_LOCAL_DECL_RE = re.compile(rf"\b(?:var|let|const)\s+({_IDENT})")
_NESTED_PARAMS_RE = re.compile(r"\bfunction\s*[a-zA-Z0-9_$]*\s*\(([^)]*)\)")
_CATCH_PARAM_RE = re.compile(rf"\bcatch\s*\(\s*({_IDENT})\s*\)")
_OBJECT_KEY_RE = re.compile(rf"([{{,]\s*){_IDENT}\s*:")

_MAX_DEPENDENCY_DEPTH = 3

_RESERVED = frozenset(
    """
    break case catch const continue default delete do else false finally for function
    if in instanceof let new null return switch this throw true try typeof undefined var
    void while NaN Infinity arguments
    Math String Number Array Object parseInt parseFloat isNaN encodeURIComponent
    decodeURIComponent
    """.split()
)

# Characters after which a "/" starts a regex literal.
_REGEX_PRECEDERS = set("(,=:[!&|?{};+-*%<>~^")


def cut_after_js(code: str, start: int) -> int:
    """
    Return the index just past the bracket that closes ``code[start]``.

    Brackets inside string literals, comments and regex literals are ignored.
    """
    pairs = {"{": "}", "[": "]", "(": ")"}
    if code[start] not in pairs:
        raise ExtractionFailed(f"Expected an opening bracket at offset {start}")

    stack: list[str] = []
    pos = start
    last_significant = ""
    length = len(code)
    while pos < length:
        ch = code[pos]
        if ch in "\"'`":
            pos += 1
            while pos < length and code[pos] != ch:
                pos += 2 if code[pos] == "\\" else 1
            last_significant = ch
        elif code.startswith("//", pos):
            newline = code.find("\n", pos)
            pos = length if newline < 0 else newline
            continue
        elif code.startswith("/*", pos):
            close = code.find("*/", pos + 2)
            pos = length if close < 0 else close + 2
            continue
        elif ch == "/" and (last_significant in _REGEX_PRECEDERS or last_significant == ""):
            pos += 1
            in_class = False
            while pos < length and (code[pos] != "/" or in_class):
                if code[pos] == "\\":
                    pos += 1
                elif code[pos] == "[":
                    in_class = True
                elif code[pos] == "]":
                    in_class = False
                pos += 1
            last_significant = "/"
        elif ch in pairs:
            stack.append(pairs[ch])
            last_significant = ch
        elif ch in ")]}":
            if not stack or stack.pop() != ch:
                raise ExtractionFailed(f"Unbalanced {ch!r} at offset {pos}")
            if not stack:
                return pos + 1
            last_significant = ch
        elif not ch.isspace():
            last_significant = ch
        pos += 1

    raise ExtractionFailed(f"Unterminated block starting at offset {start}")


def player_version(player_url: str) -> str:
    """Version identifier embedded in a player URL."""
    match = _PLAYER_VERSION_RE.search(player_url)
    if not match:
        raise ExtractionFailed(f"Cannot find the player version in {player_url}")
    return match.group("id")


def signature_timestamp(script: str) -> int | None:
    match = _SIGNATURE_TIMESTAMP_RE.search(script)
    return int(match.group(1)) if match else None


# ----------------------------------------------------------------------
# Cutting functions and their dependencies out of the script
# ----------------------------------------------------------------------


def _split_params(args: str) -> list[str]:
    return [a.strip() for a in args.split(",") if a.strip()]


def _find_function(script: str, name: str) -> tuple[list[str], str] | None:
    escaped = re.escape(name)
    patterns = (
        _BOUNDARY + rf"function\s+{escaped}\s*\((?P<args>[^)]*)\)\s*\{{",
        _BOUNDARY + rf"{escaped}\s*=\s*function\s*\((?P<args>[^)]*)\)\s*\{{",
    )
    for pattern in patterns:
        match = re.search(pattern, script)
        if match:
            brace = match.end() - 1
            return _split_params(match.group("args")), script[brace : cut_after_js(script, brace)]
    return None


def _find_value(script: str, name: str) -> str | None:
    """Source of a global object, array or split-string named ``name``."""
    escaped = re.escape(name)
    prefix = rf"(?:\bvar\s+|[,;\n]\s*){escaped}\s*=\s*"
    match = re.search(prefix + r"(?=[\[{])", script)
    if match:
        return script[match.end() : cut_after_js(script, match.end())]
    match = re.search(
        prefix
        + r"""(?P<value>(?P<q>["'])(?:\\.|(?!(?P=q)).)*(?P=q)\.split\((?P<q2>["'])(?:\\.|(?!(?P=q2)).)*(?P=q2)\))""",
        script,
    )
    if match:
        return match.group("value")
    return None


def _free_names(params: list[str], body: str) -> list[str]:
    """Identifiers used in ``body`` that are not local to it, in first-use order."""
    stripped = _STRING_LITERAL_RE.sub('""', body)
    stripped = _OBJECT_KEY_RE.sub(r"\1", stripped)
    local = set(params)
    local.update(_LOCAL_DECL_RE.findall(stripped))
    local.update(_CATCH_PARAM_RE.findall(stripped))
    for nested in _NESTED_PARAMS_RE.findall(stripped):
        local.update(_split_params(nested))

    names: list[str] = []
    for name in _IDENTIFIER_RE.findall(stripped):
        if name in local or name in _RESERVED or name in names:
            continue
        names.append(name)
    return names


def _collect(script: str, name: str, depth: int, visited: set[str], out: list[str]):
    visited.add(name)
    function = _find_function(script, name)
    if function is not None:
        params, body = function
        if depth < _MAX_DEPENDENCY_DEPTH:
            for dependency in _free_names(params, body):
                if dependency not in visited:
                    _collect(script, dependency, depth + 1, visited, out)
        out.append(f"var {name}=function({','.join(params)}){body};")
        return

    value = _find_value(script, name)
    if value is None:
        return
    if depth < _MAX_DEPENDENCY_DEPTH:
        for dependency in _free_names([], value):
            if dependency not in visited:
                _collect(script, dependency, depth + 1, visited, out)
    out.append(f"var {name}={value};")


def build_transform(kind: TransformKind, script: str, name: str) -> CipherTransform:
    """Cut ``name`` and everything it references out of ``script``."""
    if _find_function(script, name) is None:
        raise ExtractionFailed(f"Cannot find the declaration of {kind.value} function {name}")
    parts: list[str] = []
    _collect(script, name, 0, set(), parts)
    return CipherTransform(kind=kind, name=name, source="\n".join(parts))


# ----------------------------------------------------------------------
# Matchers
# ----------------------------------------------------------------------


class TransformMatcher(Protocol):
    kind: TransformKind
    name: str

    def match(self, script: str) -> CipherTransform | None: ...


class CallSiteMatcher:
    """
    Finds the transform through the code that calls it.

    The pattern must capture the function in a ``name`` group. When it also
    captures an ``idx`` group, ``name`` is an array of functions and the
    transform is the element at that index.
    """

    def __init__(self, kind: TransformKind, name: str, pattern: str):
        self.kind = kind
        self.name = name
        self.pattern = re.compile(pattern)

    def _resolve_index(self, script: str, array_name: str, index: int) -> str | None:
        match = re.search(
            rf"{_BOUNDARY}var\s+{re.escape(array_name)}\s*=\s*\[(?P<items>[^\]]+)\]",
            script,
        )
        if not match:
            return None
        items = [item.strip() for item in match.group("items").split(",")]
        return items[index] if index < len(items) else None

    def match(self, script: str) -> CipherTransform | None:
        for found in self.pattern.finditer(script):
            func_name = found.group("name")
            if "idx" in self.pattern.groupindex and found.group("idx") is not None:
                func_name = self._resolve_index(script, func_name, int(found.group("idx")))
                if func_name is None:
                    continue
            try:
                return build_transform(self.kind, script, func_name)
            except ExtractionFailed as exc:
                logger.debug("%s matched %s but it could not be cut out: %s", self.name, func_name, exc)
        return None


class DeclarationShapeMatcher:
    """Finds a one-argument function whose body satisfies ``predicate``."""

    def __init__(self, kind: TransformKind, name: str, predicate: Callable[[str, str], bool]):
        self.kind = kind
        self.name = name
        self.predicate = predicate

    def match(self, script: str) -> CipherTransform | None:
        for found in _FUNCTION_DECL_RE.finditer(script):
            params = _split_params(found.group("args"))
            if len(params) != 1:
                continue
            brace = found.end() - 1
            try:
                body = script[brace : cut_after_js(script, brace)]
            except ExtractionFailed:
                continue
            if not self.predicate(params[0], body):
                continue
            func_name = found.group("decl") or found.group("assigned")
            return build_transform(self.kind, script, func_name)
        return None


def _looks_like_signature(arg: str, body: str) -> bool:
    escaped = re.escape(arg)
    starts = re.match(rf"\{{\s*{escaped}\s*=\s*{escaped}\.split\((?:\"\"|'')\)", body)
    joins = re.search(rf"return\s+{escaped}\.join\((?:\"\"|'')\)", body)
    return bool(starts and joins)


def _looks_like_n_transform(arg: str, body: str) -> bool:
    return "enhanced_except_" in body or "_w8_" in body


SIGNATURE_MATCHERS: list[TransformMatcher] = [
    CallSiteMatcher(
        TransformKind.SIGNATURE,
        "decode-call",
        rf"\b{_IDENT}&&\({_IDENT}=(?P<name>[a-zA-Z0-9_$]{{2,}})\(decodeURIComponent\(",
    ),
    CallSiteMatcher(
        TransformKind.SIGNATURE,
        "set-encode-call",
        r"\.set\([^,]+,\s*encodeURIComponent\((?P<name>[a-zA-Z0-9_$]+)\(",
    ),
    DeclarationShapeMatcher(TransformKind.SIGNATURE, "split-join-shape", _looks_like_signature),
]

N_PARAM_MATCHERS: list[TransformMatcher] = [
    CallSiteMatcher(
        TransformKind.N_PARAM,
        "get-n-call",
        r"\.get\(\"n\"\)\)&&\((?P<var>[a-zA-Z0-9_$]+)=(?P<name>[a-zA-Z0-9_$]+)"
        r"(?:\[(?P<idx>\d+)\])?\((?P=var)\)",
    ),
    CallSiteMatcher(
        TransformKind.N_PARAM,
        "get-var-call",
        rf"\({_IDENT}={_IDENT}\.get\({_IDENT}\)\)&&\({_IDENT}="
        r"(?P<name>[a-zA-Z0-9_$]+)(?:\[(?P<idx>\d+)\])?\(",
    ),
    DeclarationShapeMatcher(TransformKind.N_PARAM, "except-marker-shape", _looks_like_n_transform),
]


def find_transform(
    script: str,
    kind: TransformKind,
    matchers: list[TransformMatcher] | None = None,
) -> CipherTransform | None:
    """Run the matchers for ``kind`` in order; the first hit wins."""
    if matchers is None:
        matchers = SIGNATURE_MATCHERS if kind == TransformKind.SIGNATURE else N_PARAM_MATCHERS
    for matcher in matchers:
        try:
            transform = matcher.match(script)
        except ExtractionFailed as exc:
            logger.debug("Matcher %s failed: %s", matcher.name, exc)
            continue
        if transform is not None:
            logger.debug("Found %s function %s via %s", kind.value, transform.name, matcher.name)
            return transform
    logger.warning("No %s function found in player script", kind.value)
    return None


def extract_transforms(script: str) -> CipherTransforms:
    return CipherTransforms(
        signature=find_transform(script, TransformKind.SIGNATURE),
        n_param=find_transform(script, TransformKind.N_PARAM),
    )


def require_transform(transforms: CipherTransforms, kind: TransformKind) -> CipherTransform:
    transform = transforms.get(kind)
    if transform is None:
        raise ExtractionFailed(f"No {kind.value} function was found in the player script")
    return transform
