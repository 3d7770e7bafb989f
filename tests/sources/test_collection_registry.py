"""Tests for the YAML collection registry."""

from __future__ import annotations

import pytest

from piq.core.errors import ConfigurationError, PatternSyntaxError
from piq.resolvers.frontmatter import FrontmatterMetaResolver
from piq.resolvers.memory import MemoryBodyResolver
from piq.sources.registry import CollectionRegistry


def test_load_collections(collections_file, blog_root):
    registry = CollectionRegistry(collections_file)
    assert registry.names() == ["posts", "raw"]
    posts = registry.get("posts")
    assert posts.root == blog_root.resolve()
    assert posts.pattern == "{year}/{slug}.md"
    assert posts.meta_fields == ("title", "status", "tags")
    assert posts.meta_max_bytes == 64
    assert posts.description == "Blog posts"
    raw = registry.get("raw")
    assert raw.meta_enabled is False
    assert raw.body_enabled is False


def test_unknown_collection(collections_file):
    with pytest.raises(ConfigurationError):
        CollectionRegistry(collections_file).get("nope")


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        CollectionRegistry(tmp_path / "missing.yaml")


def test_duplicate_names(tmp_path):
    path = tmp_path / "c.yaml"
    path.write_text(
        "collections:\n"
        "  - {name: a, root: x, pattern: '{slug}.md'}\n"
        "  - {name: a, root: y, pattern: '{slug}.md'}\n",
        encoding="utf-8",
    )
    with pytest.raises(ConfigurationError):
        CollectionRegistry(path)


def test_incomplete_entry(tmp_path):
    path = tmp_path / "c.yaml"
    path.write_text("collections:\n  - {name: a, root: x}\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        CollectionRegistry(path)


def test_bad_pattern_fails_at_load(tmp_path):
    path = tmp_path / "c.yaml"
    path.write_text("collections:\n  - {name: a, root: x, pattern: '{slug'}\n", encoding="utf-8")
    with pytest.raises(PatternSyntaxError):
        CollectionRegistry(path)


def test_empty_file(tmp_path):
    path = tmp_path / "c.yaml"
    path.write_text("", encoding="utf-8")
    assert CollectionRegistry(path).all() == []


def test_build_engine_end_to_end(collections_file):
    engine = CollectionRegistry(collections_file).build_engine("posts")
    rows = (
        engine.scan({"year": "2024"})
        .filter({"status": "published"})
        .select("params.slug", "meta.title")
        .exec()
    )
    assert rows == [{"slug": "hello", "title": "Hello"}]


def test_three_item_scenario_in_enumeration_order(collections_file):
    engine = CollectionRegistry(collections_file).build_engine("posts", max_workers=4)
    rows = engine.filter({"status": "published"}).select("params.slug", "meta.title").exec()
    assert rows == [{"slug": "old", "title": "Old"}, {"slug": "hello", "title": "Hello"}]


def test_build_engine_body_and_headings(collections_file):
    engine = CollectionRegistry(collections_file).build_engine("posts")
    row = engine.scan({"slug": "hello"}).select("meta.tags", "body.headings").single().exec_strict()
    assert row["tags"] == ["intro", "news"]
    assert [h["text"] for h in row["headings"]] == ["Hello", "Getting started"]


def test_collection_without_meta(collections_file):
    engine = CollectionRegistry(collections_file).build_engine("raw")
    with pytest.raises(ConfigurationError):
        engine.filter({"status": "published"})
    rows = engine.select("params.rest").exec()
    assert [r["rest"] for r in rows] == ["2023/old.md", "2024/draft.md", "2024/hello.md"]


def test_resolver_overrides(collections_file):
    body = MemoryBodyResolver({}, fields=["raw"])
    engine = CollectionRegistry(collections_file).build_engine(
        "raw", resolver_overrides={"meta": FrontmatterMetaResolver(), "body": body}
    )
    rows = engine.scan({"rest": "2024/hello.md"}).select("meta.title", "body.raw").exec()
    assert rows == [{"title": "Hello", "raw": None}]
