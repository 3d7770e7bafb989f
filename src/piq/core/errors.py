"""Error taxonomy for piq.

Every error raised by the package derives from :class:`PiqError`. Where a
builtin exception is a natural fit it is mixed in as well, so callers can catch
``ValueError`` or ``LookupError`` without importing this module.

Compile-time pattern errors:
    PatternSyntaxError, AmbiguousPatternError
Identifier/path errors:
    NoMatchError, MissingParameterError, ParameterValueError, PatternInternalError
Query configuration errors:
    ConfigurationError, UnknownFieldError, SelectionCollisionError
Facet errors:
    MalformedFacetError
Strict single-row errors:
    EmptyResultError, MultipleResultError
"""

from __future__ import annotations

from typing import Optional, Sequence


class PiqError(Exception):
    """Base class for all piq errors."""


class PatternSyntaxError(PiqError, ValueError):
    """Malformed placeholder syntax in a path pattern."""

    def __init__(self, pattern: str, reason: str, position: Optional[int] = None) -> None:
        self.pattern = pattern
        self.reason = reason
        self.position = position
        where = f" at position {position}" if position is not None else ""
        super().__init__(f"Invalid pattern {pattern!r}{where}: {reason}")


class AmbiguousPatternError(PiqError, ValueError):
    """Two adjacent unconstrained parameters make extraction undecidable."""

    def __init__(self, pattern: str, first: str, second: str) -> None:
        self.pattern = pattern
        self.first = first
        self.second = second
        super().__init__(
            f"Ambiguous pattern {pattern!r}: parameters '{first}' and '{second}' "
            f"are adjacent with no literal separator between them"
        )


class PatternInternalError(PiqError, RuntimeError):
    """A required capture did not participate in an otherwise successful match."""


class NoMatchError(PiqError, LookupError):
    """An item identifier does not match the resolver's pattern."""

    def __init__(self, item_id: str, pattern: str) -> None:
        self.item_id = item_id
        self.pattern = pattern
        super().__init__(f"{item_id!r} does not match pattern {pattern!r}")


class MissingParameterError(PiqError, ValueError):
    """A required parameter was not supplied when building a path."""

    def __init__(self, name: str, pattern: str) -> None:
        self.name = name
        self.pattern = pattern
        super().__init__(f"Missing required parameter '{name}' for pattern {pattern!r}")


class ParameterValueError(PiqError, ValueError):
    """A parameter value cannot be substituted into its placeholder."""

    def __init__(self, name: str, value: str, reason: str) -> None:
        self.name = name
        self.value = value
        super().__init__(f"Invalid value {value!r} for parameter '{name}': {reason}")


class ConfigurationError(PiqError):
    """The query builder is used in a way its resolvers cannot support."""


class UnknownFieldError(ConfigurationError, LookupError):
    """A scan key, filter key or selection path names an undeclared field."""

    def __init__(self, namespace: str, field: str, known: Optional[Sequence[str]] = None) -> None:
        self.namespace = namespace
        self.field = field
        self.known = sorted(known) if known is not None else None
        hint = f" Known: {', '.join(self.known) or '(none)'}" if self.known is not None else ""
        super().__init__(f"Unknown {namespace} field '{field}'.{hint}")


class MalformedFacetError(PiqError, ValueError):
    """A facet block was opened but is corrupt or never closed."""

    def __init__(self, item_id: str, reason: str) -> None:
        self.item_id = item_id
        self.reason = reason
        super().__init__(f"Malformed facet in {item_id}: {reason}")


class SelectionCollisionError(PiqError, ValueError):
    """Two selected paths flatten to the same output key."""

    def __init__(self, key: str, paths: Sequence[str]) -> None:
        self.key = key
        self.paths = list(paths)
        super().__init__(
            f"Selection collision on '{key}': {', '.join(self.paths)}. "
            f"Use an alias map to disambiguate."
        )


class EmptyResultError(PiqError, LookupError):
    """A strict single-row query produced no rows."""


class MultipleResultError(PiqError, LookupError):
    """A strict single-row query produced more than one row."""


__all__ = [
    "PiqError",
    "PatternSyntaxError",
    "AmbiguousPatternError",
    "PatternInternalError",
    "NoMatchError",
    "MissingParameterError",
    "ParameterValueError",
    "ConfigurationError",
    "UnknownFieldError",
    "MalformedFacetError",
    "SelectionCollisionError",
    "EmptyResultError",
    "MultipleResultError",
]
