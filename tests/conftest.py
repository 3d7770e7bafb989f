"""Shared pytest fixtures: small markdown collections on disk and in memory."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

import pytest

from piq.resolvers.memory import MemoryMetaResolver


BLOG_POSTS = {
    "2023/old.md": "---\ntitle: Old\nstatus: published\n---\n\n# Old post\n\nBody of old.\n",
    "2024/draft.md": "---\ntitle: Draft\nstatus: draft\n---\n\n# Draft post\n",
    "2024/hello.md": (
        "---\ntitle: Hello\nstatus: published\ntags: [intro, news]\n---\n\n"
        "# Hello\n\n## Getting started\n\nText.\n"
    ),
}


def write_tree(root: Path, files: Dict[str, str]) -> Path:
    for rel, text in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    return root


@pytest.fixture
def blog_root(tmp_path: Path) -> Path:
    """A posts collection laid out as {year}/{slug}.md."""
    return write_tree(tmp_path / "content" / "posts", BLOG_POSTS)


@pytest.fixture
def collections_file(tmp_path: Path, blog_root: Path) -> Path:  # pylint: disable=redefined-outer-name
    path = tmp_path / "collections.yaml"
    path.write_text(
        "collections:\n"
        "  - name: posts\n"
        "    root: content/posts\n"
        '    pattern: "{year}/{slug}.md"\n'
        "    meta: {fields: [title, status, tags], max_bytes: 64}\n"
        "    body: true\n"
        "    description: Blog posts\n"
        "  - name: raw\n"
        "    root: content/posts\n"
        '    pattern: "{...rest}"\n'
        "    meta: false\n"
        "    body: false\n",
        encoding="utf-8",
    )
    return path


class CountingMetaResolver(MemoryMetaResolver):
    """MemoryMetaResolver that counts resolve() calls across threads."""

    def __init__(self, data: Dict[str, Dict[str, Any]], fields: Optional[Sequence[str]] = None):
        super().__init__(data, fields)
        self._lock = threading.Lock()
        self.calls = 0
        self.requests = []

    def resolve(self, item_id: str, fields: Optional[Sequence[str]] = None) -> Dict[str, Any]:
        with self._lock:
            self.calls += 1
            self.requests.append((item_id, None if fields is None else tuple(fields)))
        return super().resolve(item_id, fields)


@pytest.fixture
def counting_meta():
    """Factory for CountingMetaResolver instances."""
    return CountingMetaResolver
