"""Query result data models.

This module defines the namespaced row produced before flattening:
- ResultRow: one item with only the facets the query asked for
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from piq.core.enums import Namespace


@dataclass(frozen=True)
class ResultRow:
    """A partially materialized item.

    Each facet is either a mapping of resolved fields or None when the query
    did not request it. None means "not resolved", an empty mapping means
    "resolved, nothing there".

    Attributes:
        item_id: Opaque identifier produced by enumeration.
        params: Fields extracted from the identifier.
        meta: Lightweight metadata fields.
        body: Full content fields.

    Examples:
        >>> row = ResultRow(item_id="/c/2024/a.md", params={"slug": "a"})
        >>> row.has_params, row.has_meta
        (True, False)
        >>> row.namespaces()
        {'params': {'slug': 'a'}}
    """

    item_id: str
    params: Optional[Dict[str, Any]] = None
    meta: Optional[Dict[str, Any]] = None
    body: Optional[Dict[str, Any]] = None

    @property
    def has_params(self) -> bool:
        return self.params is not None

    @property
    def has_meta(self) -> bool:
        return self.meta is not None

    @property
    def has_body(self) -> bool:
        return self.body is not None

    def namespaces(self) -> Dict[str, Dict[str, Any]]:
        """Return the resolved facets keyed by namespace name."""
        out: Dict[str, Dict[str, Any]] = {}
        if self.params is not None:
            out[Namespace.PARAMS.value] = self.params
        if self.meta is not None:
            out[Namespace.META.value] = self.meta
        if self.body is not None:
            out[Namespace.BODY.value] = self.body
        return out
