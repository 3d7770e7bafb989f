from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from piq.core.config import FRONTMATTER_MAX_BYTES
from piq.core.errors import ConfigurationError
from piq.core.pattern import compile_pattern
from piq.core.query.engine import QueryEngine
from piq.resolvers.filesystem import GlobSearchResolver
from piq.resolvers.frontmatter import FrontmatterMetaResolver
from piq.resolvers.markdown import MarkdownBodyResolver


@dataclass(frozen=True)
class CollectionDefinition:
    """Definition of a content collection entry."""

    name: str
    root: Path  # resolved against the directory of the collections file
    pattern: str  # relative to root, e.g. "{year}/{slug}.md"
    meta_enabled: bool = True
    meta_fields: Optional[Tuple[str, ...]] = None  # None: open schema
    meta_max_bytes: int = FRONTMATTER_MAX_BYTES
    body_enabled: bool = True
    description: str = ""


def _parse_meta(name: str, raw: Any) -> Tuple[bool, Optional[Tuple[str, ...]], int]:
    if raw is None or raw is True:
        return True, None, FRONTMATTER_MAX_BYTES
    if raw is False:
        return False, None, FRONTMATTER_MAX_BYTES
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Collection '{name}': 'meta' must be a mapping or boolean")
    fields = raw.get("fields")
    if fields is not None and not isinstance(fields, list):
        raise ConfigurationError(f"Collection '{name}': 'meta.fields' must be a list")
    max_bytes = int(raw.get("max_bytes", FRONTMATTER_MAX_BYTES))
    return True, tuple(str(f) for f in fields) if fields is not None else None, max_bytes


class CollectionRegistry:
    """Load and query collection definitions from YAML.

    Example file::

        collections:
          - name: posts
            root: content/posts
            pattern: "{year}/{slug}.md"
            meta: {fields: [title, status], max_bytes: 4096}
            body: true
    """

    def __init__(self, collections_file: Union[str, Path]) -> None:
        """Initialize the registry with a path to the collections YAML file."""
        self.collections_file = Path(collections_file)
        self._collections: List[CollectionDefinition] = self._load_collections(
            self.collections_file
        )

    @staticmethod
    def _load_collections(collections_file: Path) -> List[CollectionDefinition]:
        """Load and parse YAML into a list of CollectionDefinition objects.

        Raises:
            FileNotFoundError: The file does not exist.
            ConfigurationError: An entry is incomplete, invalid or duplicated.
        """
        if not collections_file.exists():
            raise FileNotFoundError(f"Collections file not found: {collections_file}")
        with collections_file.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        entries = data.get("collections", []) or []
        base = collections_file.resolve().parent
        collections: List[CollectionDefinition] = []
        seen = set()
        for item in entries:
            name = str(item.get("name", "")).strip()
            pattern = item.get("pattern")
            root = item.get("root")
            if not name or not pattern or not root:
                raise ConfigurationError(
                    f"Collection entries need 'name', 'root' and 'pattern': {item!r}"
                )
            if name in seen:
                raise ConfigurationError(f"Duplicate collection name '{name}'")
            seen.add(name)
            # fail on a bad pattern at load time, not at first query
            compile_pattern(str(pattern))
            meta_enabled, meta_fields, meta_max_bytes = _parse_meta(name, item.get("meta"))
            collections.append(
                CollectionDefinition(
                    name=name,
                    root=(base / str(root)).resolve(),
                    pattern=str(pattern),
                    meta_enabled=meta_enabled,
                    meta_fields=meta_fields,
                    meta_max_bytes=meta_max_bytes,
                    body_enabled=bool(item.get("body", True)),
                    description=str(item.get("description", "")),
                )
            )
        return collections

    def all(self) -> List[CollectionDefinition]:
        """Return all collection definitions."""
        return list(self._collections)

    def names(self) -> List[str]:
        return [c.name for c in self._collections]

    def get(self, name: str) -> CollectionDefinition:
        """Return the collection with the given name.

        Raises:
            ConfigurationError: No such collection.
        """
        for c in self._collections:
            if c.name == name:
                return c
        raise ConfigurationError(
            f"Unknown collection '{name}'. Known: {', '.join(self.names()) or '(none)'}"
        )

    def build_engine(
        self,
        name: str,
        *,
        max_workers: Optional[int] = None,
        resolver_overrides: Optional[Dict[str, Any]] = None,
    ) -> QueryEngine:
        """Wire filesystem resolvers for a collection into a fresh QueryEngine.

        Args:
            name: Collection name.
            max_workers: Thread count for ``exec``.
            resolver_overrides: Optional ``{"meta": ..., "body": ...}``
                instances replacing the default resolvers (for example a body
                resolver with an HTML renderer).
        """
        definition = self.get(name)
        overrides = resolver_overrides or {}
        search = GlobSearchResolver(definition.root, definition.pattern)
        meta = overrides.get("meta")
        if meta is None and definition.meta_enabled:
            meta = FrontmatterMetaResolver(definition.meta_fields, definition.meta_max_bytes)
        body = overrides.get("body")
        if body is None and definition.body_enabled:
            body = MarkdownBodyResolver()
        return QueryEngine(search, meta=meta, body=body, max_workers=max_workers)
