"""Selection declared through ``QueryEngine.select``.

A selection is either an ordered list of dotted paths (output keyed by the
final segment) or an alias map (output keyed by alias). Both forms are
normalized into an immutable :class:`Selection` that knows which namespaces
and fields a query has to resolve.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

from piq.core.config import WILDCARD_SUFFIX
from piq.core.enums import Namespace
from piq.core.errors import ConfigurationError
from piq.core.query.undot import (
    get_namespace,
    is_wildcard,
    undot,
    undot_with_aliases,
)

NAMESPACES: Tuple[str, ...] = tuple(ns.value for ns in Namespace)


@dataclass(frozen=True)
class Selection:
    """Normalized selection.

    Exactly one of ``paths`` and ``aliases`` is set. Aliases are stored as
    ordered (alias, path) pairs.
    """

    paths: Optional[Tuple[str, ...]] = None
    aliases: Optional[Tuple[Tuple[str, str], ...]] = None

    @classmethod
    def from_args(cls, *args: Any) -> "Selection":
        """Accept ``select("a", "b")``, ``select(["a", "b"])`` or ``select({"x": "a"})``."""
        if len(args) == 1 and isinstance(args[0], Mapping):
            pairs = tuple((str(k), str(v)) for k, v in args[0].items())
            if not pairs:
                raise ConfigurationError("select() needs at least one path")
            return cls(aliases=pairs)
        if len(args) == 1 and isinstance(args[0], (list, tuple)):
            args = tuple(args[0])
        paths = []
        for path in args:
            if not isinstance(path, str):
                raise ConfigurationError(f"Selection paths must be strings, got {path!r}")
            if path not in paths:
                paths.append(path)
        if not paths:
            raise ConfigurationError("select() needs at least one path")
        return cls(paths=tuple(paths))

    @property
    def is_aliased(self) -> bool:
        return self.aliases is not None

    def all_paths(self) -> Tuple[str, ...]:
        if self.aliases is not None:
            return tuple(path for _, path in self.aliases)
        return self.paths or ()

    def namespaces(self) -> FrozenSet[str]:
        return frozenset(get_namespace(p) for p in self.all_paths())

    def fields_for(self, namespace: str) -> Optional[FrozenSet[str]]:
        """Top-level fields selected in a namespace.

        Returns None when a ``namespace.*`` wildcard asks for everything.
        """
        fields = set()
        for path in self.all_paths():
            if get_namespace(path) != namespace:
                continue
            if path == namespace + WILDCARD_SUFFIX:
                return None
            fields.add(path.split(".")[1])
        return frozenset(fields)

    def flatten(self, namespaces: Mapping[str, Any]) -> Dict[str, Any]:
        if self.aliases is not None:
            return undot_with_aliases(namespaces, dict(self.aliases))
        return undot(namespaces, list(self.paths or ()))

    def describe(self) -> str:
        if self.aliases is not None:
            return ", ".join(f"{a}={p}" for a, p in self.aliases)
        return ", ".join(self.paths or ())


def split_path(path: str) -> Tuple[str, Optional[str]]:
    """Split ``ns.field[.nested]`` into namespace and top-level field.

    The field is None for a ``ns.*`` wildcard.
    """
    parts = path.split(".")
    if len(parts) < 2 or not all(parts):
        raise ConfigurationError(
            f"Invalid selection path {path!r}: expected 'namespace.field' or 'namespace.*'"
        )
    if is_wildcard(path):
        if len(parts) != 2:
            raise ConfigurationError(f"Wildcards only apply to whole namespaces: {path!r}")
        return parts[0], None
    return parts[0], parts[1]


__all__ = ["NAMESPACES", "Selection", "split_path"]
