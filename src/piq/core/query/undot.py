"""Flattening of namespaced rows.

A namespaced row such as ``{"params": {"slug": "a"}, "meta": {"title": "A"}}``
becomes ``{"slug": "a", "title": "A"}`` for the paths
``["params.slug", "meta.title"]``, or ``{"s": "a", "t": "A"}`` for the alias
map ``{"s": "params.slug", "t": "meta.title"}``.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from piq.core.config import WILDCARD_SUFFIX
from piq.core.errors import SelectionCollisionError


def is_wildcard(path: str) -> bool:
    return path.endswith(WILDCARD_SUFFIX)


def get_namespace(path: str) -> str:
    """Return the first segment of a dot-path (``params.slug`` → ``params``)."""
    return path.split(".", 1)[0]


def get_field_name(path: str) -> str:
    """Return the final segment of a dot-path (``params.slug`` → ``slug``)."""
    return path.rsplit(".", 1)[-1]


def get_by_path(obj: Mapping[str, Any], path: str) -> Any:
    """Read a value through nested mappings; missing segments yield None."""
    current: Any = obj
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


def expand_wildcards(paths: Iterable[str], namespaces: Mapping[str, Any]) -> List[str]:
    """Replace every ``ns.*`` with one ``ns.<field>`` per field present.

    A wildcard over a namespace that is absent (or not a mapping) expands to
    nothing. Expansion is idempotent.

    Examples:
        >>> expand_wildcards(
        ...     ["params.*", "meta.title"],
        ...     {"params": {"slug": "x", "year": "2024"}, "meta": {"title": "Hello"}},
        ... )
        ['params.slug', 'params.year', 'meta.title']
    """
    expanded: List[str] = []
    for path in paths:
        if not is_wildcard(path):
            expanded.append(path)
            continue
        ns = path[: -len(WILDCARD_SUFFIX)]
        value = namespaces.get(ns)
        if isinstance(value, Mapping):
            expanded.extend(f"{ns}.{key}" for key in value)
    return expanded


def find_collision(paths: Sequence[str]) -> Optional[Tuple[str, List[str]]]:
    """Return the first output key shared by two distinct paths, if any."""
    owners: Dict[str, List[str]] = {}
    for path in paths:
        key = get_field_name(path)
        bucket = owners.setdefault(key, [])
        if path not in bucket:
            bucket.append(path)
        if len(bucket) > 1:
            return key, bucket
    return None


def undot(namespaces: Mapping[str, Any], paths: Sequence[str]) -> Dict[str, Any]:
    """Flatten a namespaced row keyed by each path's final segment.

    Raises:
        SelectionCollisionError: Two distinct expanded paths end in the same
            segment.
    """
    expanded = expand_wildcards(paths, namespaces)
    collision = find_collision(expanded)
    if collision is not None:
        raise SelectionCollisionError(*collision)
    return {get_field_name(path): get_by_path(namespaces, path) for path in expanded}


def undot_with_aliases(
    namespaces: Mapping[str, Any], aliases: Mapping[str, str]
) -> Dict[str, Any]:
    """Flatten a namespaced row keyed by alias.

    An alias bound to a wildcard cannot name several fields, so it degrades to
    one entry per expanded field keyed by that field's own name.

    Raises:
        SelectionCollisionError: Two entries end up under the same key.
    """
    result: Dict[str, Any] = {}
    sources: Dict[str, str] = {}

    def put(key: str, path: str) -> None:
        if key in sources and sources[key] != path:
            raise SelectionCollisionError(key, [sources[key], path])
        sources[key] = path
        result[key] = get_by_path(namespaces, path)

    for alias, path in aliases.items():
        if is_wildcard(path):
            for expanded in expand_wildcards([path], namespaces):
                put(get_field_name(expanded), expanded)
        else:
            put(alias, path)
    return result


def undot_all(
    rows: Iterable[Mapping[str, Any]], paths: Sequence[str]
) -> List[Dict[str, Any]]:
    return [undot(row, paths) for row in rows]
