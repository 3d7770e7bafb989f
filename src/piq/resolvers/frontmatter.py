"""YAML frontmatter MetaResolver.

A frontmatter block opens with a ``---`` line at the very start of a file and
closes with the next ``---`` line::

    ---
    title: Hello
    status: published
    ---
    # Body starts here

Only the head of the file is read. When the block does not close within the
read budget, the window doubles until it closes or the file ends.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Any, BinaryIO, Dict, Optional, Sequence, Tuple

import yaml

from piq.core.config import FRONTMATTER_MAX_BYTES, FRONTMATTER_READ_CEILING
from piq.core.errors import MalformedFacetError

logger = logging.getLogger(__name__)

_OPEN_RE = re.compile(rb"---[ \t]*\r?\n")
_CLOSE_RE = re.compile(rb"^---[ \t]*\r?$", re.MULTILINE)


class BlockState(str, Enum):
    ABSENT = "absent"
    PENDING = "pending"
    CLOSED = "closed"


def scan_block(buf: bytes, eof: bool) -> Tuple[BlockState, Optional[Tuple[int, int, int]]]:
    """Locate a frontmatter block at the start of ``buf``.

    Args:
        buf: Leading bytes of the file.
        eof: Whether ``buf`` holds the whole file.

    Returns:
        ``(CLOSED, (yaml_start, yaml_end, body_start))`` when the block closes
        inside ``buf``; ``(ABSENT, None)`` when the file has no block;
        ``(PENDING, None)`` when more bytes are needed to decide. At EOF an
        opened block that never closes is reported as PENDING too; callers
        treat that as malformed.
    """
    if not buf.startswith(b"---") and not b"---".startswith(buf):
        return BlockState.ABSENT, None
    if b"\n" not in buf and not eof:
        return BlockState.PENDING, None
    opening = _OPEN_RE.match(buf)
    if opening is None:
        return BlockState.ABSENT, None

    closing = _CLOSE_RE.search(buf, opening.end())
    if closing is None:
        return BlockState.PENDING, None
    # "---" at the edge of a partial read may continue as "----"
    if closing.end() == len(buf) and not eof:
        return BlockState.PENDING, None
    body_start = closing.end()
    if buf[body_start : body_start + 1] == b"\n":
        body_start += 1
    return BlockState.CLOSED, (opening.end(), closing.start(), body_start)


def parse_block(raw: bytes, item_id: str) -> Dict[str, Any]:
    """Parse the YAML between the fences into a mapping.

    Raises:
        MalformedFacetError: Invalid UTF-8 or YAML, or a non-mapping block.
    """
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedFacetError(item_id, f"frontmatter is not valid UTF-8: {e}") from e
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise MalformedFacetError(item_id, f"invalid YAML frontmatter: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise MalformedFacetError(
            item_id, f"frontmatter must be a mapping, got {type(data).__name__}"
        )
    return data


def read_frontmatter(
    fh: BinaryIO,
    item_id: str,
    max_bytes: int = FRONTMATTER_MAX_BYTES,
    ceiling: int = FRONTMATTER_READ_CEILING,
) -> Dict[str, Any]:
    """Read and parse the frontmatter at the head of an open binary file.

    Raises:
        MalformedFacetError: The block never closes or does not parse.
    """
    buf = fh.read(max_bytes)
    eof = len(buf) < max_bytes
    window = max_bytes
    while True:
        state, span = scan_block(buf, eof)
        if state is BlockState.ABSENT:
            return {}
        if state is BlockState.CLOSED:
            yaml_start, yaml_end, _ = span
            return parse_block(buf[yaml_start:yaml_end], item_id)
        if eof:
            raise MalformedFacetError(item_id, "frontmatter block is never closed")
        window = min(window * 2, ceiling)
        more = fh.read(window)
        eof = len(more) < window
        buf += more
        logger.debug("Frontmatter of %s not closed yet, read %d bytes", item_id, len(buf))


class FrontmatterMetaResolver:
    """MetaResolver reading YAML frontmatter from files.

    Args:
        fields: Declared field names, or None for an open schema. With a
            declared schema, unrequested resolution returns only these fields.
        max_bytes: Initial read budget.
    """

    def __init__(
        self, fields: Optional[Sequence[str]] = None, max_bytes: int = FRONTMATTER_MAX_BYTES
    ) -> None:
        if max_bytes < 1:
            raise ValueError(f"max_bytes must be >= 1, got {max_bytes}")
        self.fields = tuple(fields) if fields is not None else None
        self.max_bytes = max_bytes

    def __repr__(self) -> str:
        return f"FrontmatterMetaResolver(fields={self.fields!r}, max_bytes={self.max_bytes})"

    def resolve(self, item_id: str, fields: Optional[Sequence[str]] = None) -> Dict[str, Any]:
        with open(item_id, "rb") as fh:
            data = read_frontmatter(fh, item_id, self.max_bytes)
        wanted = fields if fields is not None else self.fields
        if wanted is None:
            return data
        return {f: data[f] for f in wanted if f in data}
