"""Markdown BodyResolver.

Fields:
    raw: text after the frontmatter block, leading newlines stripped
    headings: ATX headings as ``{"depth", "text", "slug"}`` (fenced code
        blocks are skipped)
    html: rendered markup, only when a renderer is injected
"""

from __future__ import annotations

import re
from typing import Any, Callable, Dict, List, Optional, Sequence

from piq.core.errors import MalformedFacetError
from piq.resolvers.frontmatter import BlockState, scan_block

_HEADING_RE = re.compile(r"^ {0,3}(#{1,6})(?:[ \t]+(.*?))?(?:[ \t]+#+)?[ \t]*$")
_FENCE_RE = re.compile(r"^ {0,3}(`{3,}|~{3,})")


def slugify(text: str) -> str:
    """Lowercase, drop punctuation, join words with hyphens.

    Examples:
        >>> slugify("Hello, World!")
        'hello-world'
        >>> slugify("  Multiple   spaces -- here ")
        'multiple-spaces-here'
    """
    text = re.sub(r"[^\w\s-]", "", text.lower())
    text = re.sub(r"[\s_-]+", "-", text)
    return text.strip("-")


def extract_headings(text: str) -> List[Dict[str, Any]]:
    headings: List[Dict[str, Any]] = []
    fence: Optional[str] = None
    for line in text.splitlines():
        fence_match = _FENCE_RE.match(line)
        if fence_match:
            marker = fence_match.group(1)
            if fence is None:
                fence = marker
            elif marker[0] == fence[0] and len(marker) >= len(fence):
                fence = None
            continue
        if fence is not None:
            continue
        m = _HEADING_RE.match(line)
        if m:
            heading = (m.group(2) or "").strip()
            headings.append({"depth": len(m.group(1)), "text": heading, "slug": slugify(heading)})
    return headings


def strip_frontmatter(data: bytes, item_id: str) -> str:
    """Return the text after a leading frontmatter block.

    Raises:
        MalformedFacetError: The block is opened but never closed, or the
            file is not UTF-8.
    """
    state, span = scan_block(data, eof=True)
    if state is BlockState.PENDING:
        raise MalformedFacetError(item_id, "frontmatter block is never closed")
    body = data[span[2] :] if state is BlockState.CLOSED else data
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedFacetError(item_id, f"body is not valid UTF-8: {e}") from e
    return text.lstrip("\r\n")


class MarkdownBodyResolver:
    """BodyResolver for markdown files.

    Args:
        render: Optional callable turning the raw markdown into HTML. The
            ``html`` field exists only when one is given.
    """

    def __init__(self, render: Optional[Callable[[str], str]] = None) -> None:
        self.render = render
        self.fields = ("raw", "headings", "html") if render is not None else ("raw", "headings")

    def __repr__(self) -> str:
        return f"MarkdownBodyResolver(fields={self.fields!r})"

    def resolve(self, item_id: str, fields: Optional[Sequence[str]] = None) -> Dict[str, Any]:
        with open(item_id, "rb") as fh:
            data = fh.read()
        raw = strip_frontmatter(data, item_id)

        wanted = self.fields if fields is None else fields
        out: Dict[str, Any] = {}
        for name in wanted:
            if name == "raw":
                out["raw"] = raw
            elif name == "headings":
                out["headings"] = extract_headings(raw)
            elif name == "html" and self.render is not None:
                out["html"] = self.render(raw)
        return out
