"""Path pattern compiler.

Turns a placeholder pattern into three independent artifacts that share one
token stream:

- a matcher (named-group regex plus a non-capturing validation regex)
- an enumeration template (glob alternatives, one per optional combination)
- a builder (positional substitution)

Grammar:
    {name}          required, one non-empty segment part without "/"
    {?name}         optional, absent form drops its governing "/"
    {...name}       splat, captures the rest including "/"
    {name:regex}    required with an inline constraint

Examples:
    >>> p = compile_pattern("posts/{?date}/{slug}.md")
    >>> p.match("posts/2024-01-01/x.md")
    {'date': '2024-01-01', 'slug': 'x'}
    >>> p.match("posts/x.md")
    {'slug': 'x'}
    >>> p.build({"slug": "x"})
    'posts/x.md'
    >>> str(p.to_enumeration_template())
    'posts{,/*}/*.md'
"""

from __future__ import annotations

import glob
import itertools
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Pattern, Tuple, Union

from piq.core.config import PATH_SEPARATOR
from piq.core.enums import ParamKind
from piq.core.errors import (
    AmbiguousPatternError,
    MissingParameterError,
    ParameterValueError,
    PatternInternalError,
    PatternSyntaxError,
)

logger = logging.getLogger(__name__)

_NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

_SEP = PATH_SEPARATOR
_SEGMENT = f"[^{re.escape(_SEP)}]+?"

# Where an optional parameter's separator lives relative to its value
_FOLD_BEFORE = "before"
_FOLD_AFTER = "after"


@dataclass(frozen=True)
class PathParam:
    """A placeholder in a compiled pattern.

    Attributes:
        name: Parameter name, unique within the pattern.
        kind: Placeholder kind.
        position: Zero-based order of appearance among parameters.
        constraint: Inline regex for constrained parameters, else None.
    """

    name: str
    kind: ParamKind
    position: int
    constraint: Optional[str] = None


@dataclass(frozen=True)
class Literal:
    value: str


Token = Union[Literal, PathParam]


@dataclass(frozen=True)
class _Part:
    """One element of the compiled layout.

    Literal parts carry their text after separator folding. Parameter parts
    carry the fold direction of optional parameters.
    """

    text: str = ""
    param: Optional[PathParam] = None
    fold: Optional[str] = None


@dataclass(frozen=True)
class EnumerationTemplate:
    """Glob form of a pattern with constraint values applied.

    Attributes:
        pattern: Brace-alternation rendering, e.g. ``posts{,/*}/*.md``.
        alternatives: Plain globs, one per optional present/absent combination.
        pinned: True when every parameter had a constraint value.
    """

    pattern: str
    alternatives: Tuple[str, ...]
    pinned: bool

    def __str__(self) -> str:
        return self.pattern


# ============================================================================
# TOKENIZER
# ============================================================================


def _find_close(pattern: str, start: int) -> int:
    depth = 0
    i = start
    while i < len(pattern):
        ch = pattern[i]
        if ch == "\\":
            i += 2
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    raise PatternSyntaxError(pattern, "unclosed '{'", start)


def _parse_placeholder(pattern: str, body: str, start: int, position: int) -> PathParam:
    if body.startswith("..."):
        kind, rest = ParamKind.SPLAT, body[3:]
    elif body.startswith("?"):
        kind, rest = ParamKind.OPTIONAL, body[1:]
    else:
        kind, rest = ParamKind.REQUIRED, body

    name, sep, constraint = rest.partition(":")
    if not _NAME_RE.fullmatch(name):
        raise PatternSyntaxError(pattern, f"invalid parameter name {name!r}", start)

    if not sep:
        return PathParam(name=name, kind=kind, position=position)

    if kind is not ParamKind.REQUIRED:
        raise PatternSyntaxError(
            pattern, f"constraint not allowed on {kind.value} parameter '{name}'", start
        )
    if not constraint.strip():
        raise PatternSyntaxError(pattern, f"empty constraint for parameter '{name}'", start)
    try:
        re.compile(constraint)
    except re.error as e:
        raise PatternSyntaxError(
            pattern, f"invalid constraint for '{name}': {e}", start
        ) from e
    return PathParam(
        name=name, kind=ParamKind.CONSTRAINED, position=position, constraint=constraint
    )


def tokenize(pattern: str) -> List[Token]:
    """Split a pattern into literal and parameter tokens.

    Raises:
        PatternSyntaxError: On unbalanced braces, bad names, bad or misplaced
            constraints, or duplicate parameter names.
    """
    tokens: List[Token] = []
    buf: List[str] = []
    seen: Dict[str, int] = {}
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "{":
            if buf:
                tokens.append(Literal("".join(buf)))
                buf = []
            end = _find_close(pattern, i)
            param = _parse_placeholder(pattern, pattern[i + 1 : end], i, len(seen))
            if param.name in seen:
                raise PatternSyntaxError(
                    pattern, f"duplicate parameter name '{param.name}'", i
                )
            seen[param.name] = i
            tokens.append(param)
            i = end + 1
            continue
        if ch == "}":
            raise PatternSyntaxError(pattern, "unmatched '}'", i)
        buf.append(ch)
        i += 1
    if buf:
        tokens.append(Literal("".join(buf)))
    return tokens


def _check_ambiguity(pattern: str, tokens: List[Token]) -> None:
    for left, right in zip(tokens, tokens[1:]):
        if isinstance(left, PathParam) and isinstance(right, PathParam):
            if left.constraint is None and right.constraint is None:
                raise AmbiguousPatternError(pattern, left.name, right.name)


def _check_folded_optionals(pattern: str, parts: List["_Part"]) -> None:
    # x/{?a}/{?b}/y: with one segment present there is no telling a from b
    for left, right in zip(parts, parts[1:]):
        if left.param is None or right.param is None:
            continue
        if (
            left.param.kind is ParamKind.OPTIONAL
            and right.param.kind is ParamKind.OPTIONAL
            and left.fold is not None
            and left.fold == right.fold
        ):
            raise AmbiguousPatternError(pattern, left.param.name, right.param.name)


def _layout(tokens: List[Token]) -> List[_Part]:
    """Fold each optional parameter's separator into the parameter itself.

    The separator before the optional is preferred; an optional that starts
    the pattern (or follows another parameter) takes the separator after it.
    """
    lead_taken = set()
    tail_taken = set()
    folds: Dict[int, Optional[str]] = {}

    for k, tok in enumerate(tokens):
        if not isinstance(tok, PathParam) or tok.kind is not ParamKind.OPTIONAL:
            continue
        prev = tokens[k - 1] if k > 0 else None
        nxt = tokens[k + 1] if k + 1 < len(tokens) else None
        prev_ok = (
            isinstance(prev, Literal)
            and prev.value.endswith(_SEP)
            and not (len(prev.value) == len(_SEP) and (k - 1) in lead_taken)
        )
        if prev_ok:
            tail_taken.add(k - 1)
            folds[k] = _FOLD_BEFORE
        elif isinstance(nxt, Literal) and nxt.value.startswith(_SEP):
            lead_taken.add(k + 1)
            folds[k] = _FOLD_AFTER
        else:
            folds[k] = None

    parts: List[_Part] = []
    for k, tok in enumerate(tokens):
        if isinstance(tok, Literal):
            text = tok.value
            if k in lead_taken:
                text = text[len(_SEP) :]
            if k in tail_taken:
                text = text[: -len(_SEP)]
            if text:
                parts.append(_Part(text=text))
        else:
            parts.append(_Part(param=tok, fold=folds.get(k)))
    return parts


# ============================================================================
# REGEX SYNTHESIS
# ============================================================================


def _param_regex(param: PathParam, fold: Optional[str], capture: bool) -> str:
    def group(inner: str) -> str:
        return f"(?P<{param.name}>{inner})" if capture else f"(?:{inner})"

    if param.kind is ParamKind.REQUIRED:
        return group(_SEGMENT)
    if param.kind is ParamKind.CONSTRAINED:
        return group(f"(?:{param.constraint})")
    if param.kind is ParamKind.SPLAT:
        return group(".*")
    sep = re.escape(_SEP)
    if fold == _FOLD_BEFORE:
        return f"(?:{sep}{group(_SEGMENT)})?"
    if fold == _FOLD_AFTER:
        return f"(?:{group(_SEGMENT)}{sep})?"
    return f"{group(_SEGMENT)}?"


def _synthesize_regex(parts: List[_Part], capture: bool) -> str:
    out: List[str] = []
    for part in parts:
        if part.param is None:
            out.append(re.escape(part.text))
        else:
            out.append(_param_regex(part.param, part.fold, capture))
    return "".join(out)


# ============================================================================
# COMPILED PATTERN
# ============================================================================


class CompiledPattern:
    """A compiled path pattern.

    Use :func:`compile_pattern` to construct. Instances are immutable and safe
    to share between threads.
    """

    def __init__(self, pattern: str) -> None:
        tokens = tokenize(pattern)
        _check_ambiguity(pattern, tokens)
        self.pattern = pattern
        self._parts = _layout(tokens)
        _check_folded_optionals(pattern, self._parts)
        self.params: Tuple[PathParam, ...] = tuple(
            t for t in tokens if isinstance(t, PathParam)
        )
        self.param_names: Tuple[str, ...] = tuple(p.name for p in self.params)
        self._by_name = {p.name: p for p in self.params}
        self._constraints = {
            p.name: re.compile(p.constraint)
            for p in self.params
            if p.constraint is not None
        }
        try:
            self.regex: Pattern[str] = re.compile(_synthesize_regex(self._parts, True))
            self.validation_regex: Pattern[str] = re.compile(
                _synthesize_regex(self._parts, False)
            )
        except re.error as e:
            raise PatternSyntaxError(pattern, f"cannot synthesize matcher: {e}") from e

        prefix: List[str] = []
        for part in self._parts:
            if part.param is not None:
                break
            prefix.append(part.text)
        self.static_prefix = "".join(prefix)
        logger.debug("Compiled pattern %r -> %s", pattern, self.regex.pattern)

    def __repr__(self) -> str:
        return f"CompiledPattern({self.pattern!r})"

    # ------------------------------------------------------------------ match

    def match(self, item_id: str) -> Optional[Dict[str, str]]:
        """Extract parameters from an identifier.

        Returns:
            Mapping of parameter name to captured text, or None when the
            identifier does not match. Absent optional parameters are omitted.

        Raises:
            PatternInternalError: If a required capture did not participate.
        """
        m = self.regex.fullmatch(item_id)
        if m is None:
            return None
        result: Dict[str, str] = {}
        for param in self.params:
            value = m.group(param.name)
            if value is None:
                if param.kind is ParamKind.OPTIONAL:
                    continue
                raise PatternInternalError(
                    f"Parameter '{param.name}' did not participate in a match of "
                    f"{item_id!r} against {self.pattern!r}"
                )
            if param.kind is ParamKind.CONSTRAINED and (not value or _SEP in value):
                return None
            result[param.name] = value
        return result

    def is_match(self, item_id: str) -> bool:
        """Validate an identifier without extracting parameters."""
        if self._constraints:
            # constrained captures need the non-empty / separator-free check
            return self.match(item_id) is not None
        return self.validation_regex.fullmatch(item_id) is not None

    # ------------------------------------------------------------------ build

    def _check_value(self, param: PathParam, value: str) -> None:
        if param.kind is ParamKind.SPLAT:
            return
        if not value:
            raise ParameterValueError(param.name, value, "value is empty")
        if _SEP in value:
            raise ParameterValueError(param.name, value, f"value contains {_SEP!r}")
        constraint = self._constraints.get(param.name)
        if constraint is not None and constraint.fullmatch(value) is None:
            raise ParameterValueError(
                param.name, value, f"value does not match constraint {param.constraint!r}"
            )

    def build(self, params: Mapping[str, Any]) -> str:
        """Substitute parameter values into the pattern.

        Raises:
            MissingParameterError: A required or constrained parameter is unset.
            ParameterValueError: A value cannot appear in its placeholder.
        """
        out: List[str] = []
        for part in self._parts:
            param = part.param
            if param is None:
                out.append(part.text)
                continue
            raw = params.get(param.name)
            if raw is None or (param.kind is ParamKind.OPTIONAL and raw == ""):
                if param.kind in (ParamKind.REQUIRED, ParamKind.CONSTRAINED):
                    raise MissingParameterError(param.name, self.pattern)
                continue
            value = str(raw)
            self._check_value(param, value)
            if part.fold == _FOLD_BEFORE:
                out.append(_SEP + value)
            elif part.fold == _FOLD_AFTER:
                out.append(value + _SEP)
            else:
                out.append(value)
        return "".join(out)

    # ------------------------------------------------------------ enumeration

    def to_enumeration_template(
        self, constraints: Optional[Mapping[str, Any]] = None
    ) -> EnumerationTemplate:
        """Render the pattern as glob alternatives with constraints applied.

        Each parameter becomes a wildcard unless a constraint value is given,
        in which case the value is substituted literally (glob-escaped).
        """
        constraints = constraints or {}
        choices: List[List[str]] = []
        rendered: List[str] = []
        pinned = True

        for part in self._parts:
            param = part.param
            if param is None:
                text = glob.escape(part.text)
                choices.append([text])
                rendered.append(text)
                continue
            value = constraints.get(param.name)
            if value is not None:
                text = glob.escape(str(value))
                if part.fold == _FOLD_BEFORE:
                    text = _SEP + text
                elif part.fold == _FOLD_AFTER:
                    text = text + _SEP
                choices.append([text])
                rendered.append(text)
                continue
            pinned = False
            if param.kind is ParamKind.SPLAT:
                choices.append(["**"])
                rendered.append("**")
            elif param.kind is ParamKind.OPTIONAL:
                if part.fold == _FOLD_BEFORE:
                    present = _SEP + "*"
                elif part.fold == _FOLD_AFTER:
                    present = "*" + _SEP
                else:
                    present = "*"
                choices.append(["", present])
                rendered.append("{," + present + "}")
            else:
                choices.append(["*"])
                rendered.append("*")

        alternatives: List[str] = []
        for combo in itertools.product(*choices):
            candidate = _normalize_glob("".join(combo))
            if candidate not in alternatives:
                alternatives.append(candidate)
        return EnumerationTemplate(
            pattern="".join(rendered), alternatives=tuple(alternatives), pinned=pinned
        )


def _normalize_glob(text: str) -> str:
    """Make a glob walkable segment by segment.

    A ``**`` fused into a larger segment (a splat inside a file name) cannot be
    walked, so everything from that segment on is widened to ``**/*``. The
    matcher narrows the result back down.
    """
    segments = text.split(_SEP)
    for i, segment in enumerate(segments):
        if "**" in segment and segment != "**":
            segments = segments[:i] + ["**", "*"]
            break
    if segments and segments[-1] == "**":
        segments.append("*")
    return _SEP.join(segments)


def compile_pattern(pattern: str) -> CompiledPattern:
    """Compile a placeholder pattern.

    Raises:
        PatternSyntaxError: Malformed placeholder syntax.
        AmbiguousPatternError: Adjacent unconstrained parameters.
    """
    return CompiledPattern(pattern)


__all__ = [
    "PathParam",
    "EnumerationTemplate",
    "CompiledPattern",
    "compile_pattern",
    "tokenize",
]
