"""Resolver contracts and reference implementations.

The engine talks to resolvers only through these protocols; any object with
the right attributes works, no inheritance required.
"""

from __future__ import annotations

from typing import Any, Dict, Iterator, List, Mapping, Optional, Protocol, Sequence


class SearchResolver(Protocol):
    """Enumerates item ids and extracts Params without reading content."""

    @property
    def param_names(self) -> Sequence[str]: ...

    def enumerate(self, constraints: Optional[Mapping[str, Any]] = None) -> List[str]: ...

    def extract_params(self, item_id: str) -> Dict[str, str]: ...

    def build_id(self, params: Mapping[str, Any]) -> str: ...


class LazySearchResolver(SearchResolver, Protocol):
    """SearchResolver that can also enumerate lazily."""

    def iter_enumerate(
        self, constraints: Optional[Mapping[str, Any]] = None
    ) -> Iterator[str]: ...


class MetaResolver(Protocol):
    """Resolves the lightweight metadata facet of an item.

    ``fields`` is None for an open schema.
    """

    fields: Optional[Sequence[str]]

    def resolve(self, item_id: str, fields: Optional[Sequence[str]] = None) -> Dict[str, Any]: ...


class BodyResolver(Protocol):
    """Resolves the full-content facet of an item."""

    fields: Optional[Sequence[str]]

    def resolve(self, item_id: str, fields: Optional[Sequence[str]] = None) -> Dict[str, Any]: ...


from .filesystem import GlobSearchResolver  # noqa: E402
from .frontmatter import FrontmatterMetaResolver  # noqa: E402
from .markdown import MarkdownBodyResolver  # noqa: E402
from .memory import MemoryBodyResolver, MemoryMetaResolver, MemorySearchResolver  # noqa: E402

__all__ = [
    "SearchResolver",
    "LazySearchResolver",
    "MetaResolver",
    "BodyResolver",
    "GlobSearchResolver",
    "FrontmatterMetaResolver",
    "MarkdownBodyResolver",
    "MemorySearchResolver",
    "MemoryMetaResolver",
    "MemoryBodyResolver",
]
