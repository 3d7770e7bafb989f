"""In-memory resolvers.

Useful for tests and for content that is already loaded: ids are plain
strings matched against a pattern, facets are dicts keyed by id.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from piq.core.errors import NoMatchError
from piq.core.pattern import CompiledPattern, compile_pattern


class MemorySearchResolver:
    """Enumerate a fixed sequence of ids in the order given.

    Examples:
        >>> r = MemorySearchResolver("{year}/{slug}.md", ["2024/a.md", "2023/b.md", "x"])
        >>> r.enumerate({"year": "2024"})
        ['2024/a.md']
    """

    def __init__(self, pattern: Union[str, CompiledPattern], ids: Iterable[str]) -> None:
        self.pattern = pattern if isinstance(pattern, CompiledPattern) else compile_pattern(pattern)
        self.ids: Tuple[str, ...] = tuple(ids)

    @property
    def param_names(self) -> Tuple[str, ...]:
        return self.pattern.param_names

    def enumerate(self, constraints: Optional[Mapping[str, Any]] = None) -> List[str]:
        return list(self.iter_enumerate(constraints))

    def iter_enumerate(self, constraints: Optional[Mapping[str, Any]] = None) -> Iterator[str]:
        expected = {k: str(v) for k, v in (constraints or {}).items() if v is not None}
        for item_id in self.ids:
            params = self.pattern.match(item_id)
            if params is None:
                continue
            if all(params.get(k) == v for k, v in expected.items()):
                yield item_id

    def extract_params(self, item_id: str) -> Dict[str, str]:
        params = self.pattern.match(item_id)
        if params is None:
            raise NoMatchError(item_id, self.pattern.pattern)
        return params

    def build_id(self, params: Mapping[str, Any]) -> str:
        return self.pattern.build(params)


class MemoryFacetResolver:
    """Serve a facet from a dict keyed by item id; unknown ids resolve to ``{}``."""

    def __init__(
        self,
        data: Mapping[str, Mapping[str, Any]],
        fields: Optional[Sequence[str]] = None,
    ) -> None:
        self.data = {k: dict(v) for k, v in data.items()}
        self.fields = tuple(fields) if fields is not None else None

    def resolve(self, item_id: str, fields: Optional[Sequence[str]] = None) -> Dict[str, Any]:
        record = self.data.get(item_id, {})
        wanted = fields if fields is not None else self.fields
        if wanted is None:
            return dict(record)
        return {f: record[f] for f in wanted if f in record}


class MemoryMetaResolver(MemoryFacetResolver):
    pass


class MemoryBodyResolver(MemoryFacetResolver):
    pass
