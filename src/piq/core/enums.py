"""Core enumerations used across the package."""

from __future__ import annotations

from enum import Enum


class ParamKind(str, Enum):
    """Kinds of placeholders a path pattern may contain.

    Values are strings to ease serialization and CLI interchange.
    """

    REQUIRED = "required"
    OPTIONAL = "optional"
    SPLAT = "splat"
    CONSTRAINED = "constrained"


class Namespace(str, Enum):
    """Facets an item can expose, in increasing cost order."""

    PARAMS = "params"
    META = "meta"
    BODY = "body"


__all__ = ["ParamKind", "Namespace"]
