"""Tests for the in-memory resolvers."""

from __future__ import annotations

import pytest

from piq.core.errors import NoMatchError
from piq.resolvers.memory import MemoryBodyResolver, MemoryMetaResolver, MemorySearchResolver


def test_search_keeps_given_order_and_drops_non_matching():
    resolver = MemorySearchResolver("{year}/{slug}.md", ["2024/b.md", "junk", "2023/a.md"])
    assert resolver.param_names == ("year", "slug")
    assert resolver.enumerate() == ["2024/b.md", "2023/a.md"]
    assert resolver.enumerate({"year": 2023}) == ["2023/a.md"]


def test_search_optional_constraint():
    resolver = MemorySearchResolver("posts/{?date}/{slug}.md", ["posts/x.md", "posts/d/y.md"])
    assert resolver.enumerate({"date": "d"}) == ["posts/d/y.md"]


def test_extract_and_build():
    resolver = MemorySearchResolver("{year}/{slug}.md", [])
    assert resolver.extract_params("2024/a.md") == {"year": "2024", "slug": "a"}
    assert resolver.build_id({"year": "2024", "slug": "a"}) == "2024/a.md"
    with pytest.raises(NoMatchError):
        resolver.extract_params("nope")


def test_facet_resolvers():
    meta = MemoryMetaResolver({"a": {"title": "A", "x": 1}}, fields=["title"])
    assert meta.resolve("a") == {"title": "A"}
    assert meta.resolve("a", ["x"]) == {"x": 1}
    assert meta.resolve("missing") == {}
    body = MemoryBodyResolver({"a": {"raw": "text"}})
    assert body.fields is None
    assert body.resolve("a") == {"raw": "text"}
