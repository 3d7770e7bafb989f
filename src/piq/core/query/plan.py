from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

from piq.core.enums import Namespace
from piq.core.query.selection import Selection


def strict_equals(expected: Any, actual: Any) -> bool:
    """Equality that does not coerce between types.

    ``1 == True`` and ``1 == 1.0`` hold in Python; filters treat booleans as
    distinct from numbers and otherwise require values of the same type, with
    int and float interchangeable.

    Examples:
        >>> strict_equals("published", "published")
        True
        >>> strict_equals(1, True)
        False
        >>> strict_equals("2024", 2024)
        False
    """
    if isinstance(expected, bool) or isinstance(actual, bool):
        return isinstance(expected, bool) and isinstance(actual, bool) and expected == actual
    numeric = (int, float)
    if isinstance(expected, numeric) and isinstance(actual, numeric):
        return expected == actual
    if type(expected) is not type(actual):
        return False
    return expected == actual


def _as_request(fields: Optional[FrozenSet[str]]) -> Optional[List[str]]:
    return None if fields is None else sorted(fields)


@dataclass(frozen=True)
class QueryPlan:
    """Per-call decisions derived from the builder state.

    Attributes:
        selection: The selection to flatten with.
        filter_items: Filter constraints as ordered (field, value) pairs.
        needs_params: Whether Params must be extracted for survivors.
        needs_meta: Whether Meta is part of the output.
        needs_body: Whether Body is part of the output.
        meta_request: Fields to ask the MetaResolver for, None for all.
        body_request: Fields to ask the BodyResolver for, None for all.
    """

    selection: Selection
    filter_items: Tuple[Tuple[str, Any], ...]
    needs_params: bool
    needs_meta: bool
    needs_body: bool
    meta_request: Optional[List[str]]
    body_request: Optional[List[str]]

    @property
    def has_filter(self) -> bool:
        return bool(self.filter_items)

    def matches(self, meta: Mapping[str, Any]) -> bool:
        """True when every filter key is present and strictly equal."""
        for key, expected in self.filter_items:
            if key not in meta or not strict_equals(expected, meta[key]):
                return False
        return True


def build_plan(selection: Selection, filters: Dict[str, Any]) -> QueryPlan:
    """Work out what each item needs before any resolver runs.

    When a filter is present the Meta request is the union of the filter keys
    and the selected Meta fields, so one resolve per item serves both.
    """
    used = selection.namespaces()
    needs_meta = Namespace.META.value in used
    needs_body = Namespace.BODY.value in used

    meta_fields: Optional[FrozenSet[str]] = frozenset()
    if needs_meta:
        meta_fields = selection.fields_for(Namespace.META.value)
    if filters and meta_fields is not None:
        meta_fields = meta_fields | frozenset(filters)

    body_fields = selection.fields_for(Namespace.BODY.value) if needs_body else frozenset()

    return QueryPlan(
        selection=selection,
        filter_items=tuple(filters.items()),
        needs_params=Namespace.PARAMS.value in used,
        needs_meta=needs_meta,
        needs_body=needs_body,
        meta_request=_as_request(meta_fields),
        body_request=_as_request(body_fields),
    )


__all__ = ["QueryPlan", "build_plan", "strict_equals"]
