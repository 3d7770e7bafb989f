"""Tests for the markdown BodyResolver."""

from __future__ import annotations

import pytest

from piq.core.errors import MalformedFacetError
from piq.resolvers.markdown import MarkdownBodyResolver, extract_headings, slugify

DOC = """---
title: Hello
---


# Hello World

Intro text.

```python
# not a heading
```

## Getting Started ##
### Café & Crème
"""


@pytest.fixture
def doc_path(tmp_path):
    path = tmp_path / "doc.md"
    path.write_text(DOC, encoding="utf-8")
    return str(path)


def test_raw_strips_frontmatter_and_leading_newlines(doc_path):  # pylint: disable=redefined-outer-name
    body = MarkdownBodyResolver().resolve(doc_path, ["raw"])
    assert body["raw"].startswith("# Hello World\n")
    assert "title: Hello" not in body["raw"]


def test_headings_skip_code_blocks(doc_path):  # pylint: disable=redefined-outer-name
    headings = MarkdownBodyResolver().resolve(doc_path, ["headings"])["headings"]
    assert headings == [
        {"depth": 1, "text": "Hello World", "slug": "hello-world"},
        {"depth": 2, "text": "Getting Started", "slug": "getting-started"},
        {"depth": 3, "text": "Café & Crème", "slug": "café-crème"},
    ]


def test_fields_without_renderer(doc_path):  # pylint: disable=redefined-outer-name
    resolver = MarkdownBodyResolver()
    assert resolver.fields == ("raw", "headings")
    assert set(resolver.resolve(doc_path)) == {"raw", "headings"}


def test_html_through_injected_renderer(doc_path):  # pylint: disable=redefined-outer-name
    resolver = MarkdownBodyResolver(render=lambda text: f"<pre>{len(text)}</pre>")
    assert "html" in resolver.fields
    body = resolver.resolve(doc_path, ["html"])
    assert body == {"html": f"<pre>{len(resolver.resolve(doc_path, ['raw'])['raw'])}</pre>"}


def test_file_without_frontmatter(tmp_path):
    path = tmp_path / "plain.md"
    path.write_text("\n\nplain text\n", encoding="utf-8")
    assert MarkdownBodyResolver().resolve(str(path), ["raw"]) == {"raw": "plain text\n"}


def test_unclosed_frontmatter(tmp_path):
    path = tmp_path / "broken.md"
    path.write_text("---\ntitle: x\n# body\n", encoding="utf-8")
    with pytest.raises(MalformedFacetError):
        MarkdownBodyResolver().resolve(str(path))


def test_extract_headings_ignores_hashtags():
    assert extract_headings("#tag\n####### seven\n") == []


@pytest.mark.parametrize(
    "text,slug",
    [("Hello, World!", "hello-world"), ("  a  b  ", "a-b"), ("snake_case", "snake-case")],
)
def test_slugify(text, slug):
    assert slugify(text) == slug
