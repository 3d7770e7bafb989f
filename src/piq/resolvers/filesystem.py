"""Filesystem SearchResolver.

Enumerates files under a root directory by walking the pattern's enumeration
template segment by segment. File contents are never read here.
"""

from __future__ import annotations

import fnmatch
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from piq.core.config import PATH_SEPARATOR
from piq.core.errors import MissingParameterError, NoMatchError, ParameterValueError
from piq.core.pattern import CompiledPattern, compile_pattern

logger = logging.getLogger(__name__)

_MAGIC_RE = re.compile(r"[*?\[]")


def _scan_dir(base: Path) -> List[Tuple[str, bool, bool]]:
    """List (name, is_dir, is_file) for a directory in sorted name order.

    Symlinked directories are reported as non-directories so walks never
    leave the tree or loop; symlinked files are listed. A directory that does
    not exist yields nothing.
    """
    try:
        with os.scandir(base) as it:
            entries = [(e.name, e.is_dir(follow_symlinks=False), e.is_file()) for e in it]
    except (FileNotFoundError, NotADirectoryError):
        return []
    entries.sort(key=lambda e: e[0])
    return entries


def _walk(base: Path, segments: Sequence[str], prefix: str = "") -> Iterator[str]:
    """Yield relative POSIX paths of files matching glob segments."""
    if not segments:
        return
    head, rest = segments[0], segments[1:]

    if head == "**":
        # zero directories, then one more level with ** still in front
        yield from _walk(base, rest, prefix)
        for name, is_dir, _ in _scan_dir(base):
            if is_dir:
                yield from _walk(base / name, segments, f"{prefix}{name}{PATH_SEPARATOR}")
        return

    if not _MAGIC_RE.search(head):
        target = base / head
        if rest:
            if target.is_dir() and not target.is_symlink():
                yield from _walk(target, rest, f"{prefix}{head}{PATH_SEPARATOR}")
        elif target.is_file():
            yield prefix + head
        return

    for name, is_dir, is_file in _scan_dir(base):
        if not fnmatch.fnmatchcase(name, head):
            continue
        if rest:
            if is_dir:
                yield from _walk(base / name, rest, f"{prefix}{name}{PATH_SEPARATOR}")
        elif is_file:
            yield prefix + name


class GlobSearchResolver:
    """Enumerate files under ``root`` whose relative path matches ``pattern``.

    Item ids are absolute POSIX paths.

    Args:
        root: Collection directory.
        pattern: Pattern relative to root, or an already compiled pattern.

    Examples:
        >>> resolver = GlobSearchResolver("content/posts", "{year}/{slug}.md")  # doctest: +SKIP
        >>> resolver.enumerate({"year": "2024"})  # doctest: +SKIP
        ['/abs/content/posts/2024/a.md', '/abs/content/posts/2024/b.md']
    """

    def __init__(self, root: Union[str, Path], pattern: Union[str, CompiledPattern]) -> None:
        self.root = Path(root).resolve()
        self.pattern = pattern if isinstance(pattern, CompiledPattern) else compile_pattern(pattern)
        self._root_prefix = self.root.as_posix().rstrip(PATH_SEPARATOR) + PATH_SEPARATOR

    def __repr__(self) -> str:
        return f"GlobSearchResolver({str(self.root)!r}, {self.pattern.pattern!r})"

    @property
    def param_names(self) -> Tuple[str, ...]:
        return self.pattern.param_names

    def enumerate(self, constraints: Optional[Mapping[str, Any]] = None) -> List[str]:
        """Return matching item ids in deterministic order."""
        return list(self.iter_enumerate(constraints))

    def iter_enumerate(self, constraints: Optional[Mapping[str, Any]] = None) -> Iterator[str]:
        """Lazily yield matching item ids.

        Alternatives of the enumeration template are walked in order, each in
        sorted name order. An id reached by two alternatives is yielded once.
        Constraint values of None leave their parameter unconstrained. Symlinked
        directories are never descended into; symlinked files are listed.
        """
        pinned_values = {k: v for k, v in (constraints or {}).items() if v is not None}
        template = self.pattern.to_enumeration_template(pinned_values)
        expected = {k: str(v) for k, v in pinned_values.items()}
        logger.debug("Enumerating %s with %s", self.root, template)

        expected_rel = None
        if template.pinned:
            try:
                expected_rel = self.pattern.build(pinned_values)
            except (ParameterValueError, MissingParameterError):
                return
            # x-y-z.md is never {a: x-y, b: z} when the matcher reads {a: x, b: y-z}
            if self.pattern.match(expected_rel) != expected:
                return

        seen = set()
        count = 0
        for alternative in template.alternatives:
            segments = [s for s in alternative.split(PATH_SEPARATOR) if s]
            for rel in _walk(self.root, segments):
                if rel in seen:
                    continue
                seen.add(rel)
                if expected_rel is not None:
                    if rel != expected_rel:
                        continue
                else:
                    params = self.pattern.match(rel)
                    if params is None:
                        continue
                    if any(params.get(k) != v for k, v in expected.items()):
                        continue
                count += 1
                yield self._root_prefix + rel
        logger.debug("Enumerated %d ids under %s", count, self.root)

    def _relative(self, item_id: str) -> Optional[str]:
        if item_id.startswith(self._root_prefix):
            return item_id[len(self._root_prefix) :]
        if item_id.startswith(PATH_SEPARATOR):
            return None
        return item_id

    def extract_params(self, item_id: str) -> Dict[str, str]:
        """Parse Params from an id; recomputed on every call.

        Raises:
            NoMatchError: The id is outside the root or does not match.
        """
        rel = self._relative(item_id)
        params = self.pattern.match(rel) if rel is not None else None
        if params is None:
            raise NoMatchError(item_id, self.pattern.pattern)
        return params

    def build_id(self, params: Mapping[str, Any]) -> str:
        return self._root_prefix + self.pattern.build(params)
