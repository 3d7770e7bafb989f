"""Cost-tiered query builder.

Items are narrowed in increasing cost order:

1. Params: parsed from the identifier during enumeration (no I/O)
2. Meta: a small block read from the head of each item
3. Body: full content, parsed only for items that survived the filter

Usage:
    >>> engine = QueryEngine(search, meta=meta, body=body)  # doctest: +SKIP
    >>> rows = (
    ...     engine.scan({"year": "2024"})
    ...     .filter({"status": "published"})
    ...     .select("params.slug", "meta.title")
    ...     .exec()
    ... )  # doctest: +SKIP
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Dict,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Tuple,
    TypeVar,
)

from piq.core.config import get_concurrency_limit, get_exec_workers
from piq.core.enums import Namespace
from piq.core.errors import (
    ConfigurationError,
    EmptyResultError,
    MultipleResultError,
    UnknownFieldError,
)
from piq.core.models import ResultRow
from piq.core.query.plan import QueryPlan, build_plan
from piq.core.query.selection import NAMESPACES, Selection, split_path

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

_EXHAUSTED = object()


def _declared_fields(resolver: Any) -> Optional[Tuple[str, ...]]:
    fields = getattr(resolver, "fields", None)
    return None if fields is None else tuple(fields)


class QueryEngine:
    """Query builder over one SearchResolver and optional Meta/Body resolvers.

    ``scan``, ``filter`` and ``select`` each return a new builder and leave
    this one untouched, so one base query can branch into several. Terminal calls (``exec``, ``single``, ``stream``,
    ``astream``) never modify the builder, so one configured builder can be
    executed any number of times.

    Args:
        search: Resolver that enumerates item ids and extracts Params.
        meta: Resolver for lightweight metadata, required by ``filter``.
        body: Resolver for full content.
        max_workers: Threads used by ``exec`` to resolve items; 1 resolves on
            the calling thread.
    """

    def __init__(
        self,
        search: Any,
        meta: Any = None,
        body: Any = None,
        *,
        max_workers: Optional[int] = None,
    ) -> None:
        self._search = search
        self._meta = meta
        self._body = body
        self._max_workers = get_exec_workers(max_workers)
        self._scan: Dict[str, Any] = {}
        self._filter: Dict[str, Any] = {}
        self._selection: Optional[Selection] = None

    def __repr__(self) -> str:
        selection = self._selection.describe() if self._selection else None
        return (
            f"QueryEngine(scan={self._scan!r}, filter={self._filter!r}, "
            f"select={selection!r})"
        )

    # ---------------------------------------------------------------- inspect

    @property
    def scan_constraints(self) -> Dict[str, Any]:
        return dict(self._scan)

    @property
    def filter_constraints(self) -> Dict[str, Any]:
        return dict(self._filter)

    @property
    def selection(self) -> Optional[Selection]:
        return self._selection

    # ---------------------------------------------------------------- builder

    def scan(self, constraints: Mapping[str, Any]) -> "QueryEngine":
        """Return a new builder with Params constraints merged; later keys win.

        Raises:
            UnknownFieldError: A key is not a parameter of the search pattern.
        """
        known = tuple(self._search.param_names)
        for key in constraints:
            if key not in known:
                raise UnknownFieldError(Namespace.PARAMS.value, key, known)
        fork = self._fork()
        fork._scan.update(constraints)
        return fork

    def filter(self, constraints: Mapping[str, Any]) -> "QueryEngine":
        """Return a new builder with Meta equality constraints merged; later keys win.

        Raises:
            ConfigurationError: No MetaResolver is configured.
            UnknownFieldError: The MetaResolver declares its fields and a key
                is not one of them.
        """
        if self._meta is None:
            raise ConfigurationError("filter() requires a MetaResolver")
        declared = _declared_fields(self._meta)
        if declared is not None:
            for key in constraints:
                if key not in declared:
                    raise UnknownFieldError(Namespace.META.value, key, declared)
        fork = self._fork()
        fork._filter.update(constraints)
        return fork

    def select(self, *args: Any) -> "QueryEngine":
        """Declare the output shape and return a new builder.

        Accepts dotted paths as positional arguments, a list of paths, or an
        alias map ``{"alias": "ns.field"}``.

        Raises:
            ConfigurationError: A path is malformed or needs a resolver that
                is not configured.
            UnknownFieldError: A path names an undeclared field.
            SelectionCollisionError: Two paths flatten to the same key.
        """
        selection = Selection.from_args(*args)
        self._validate_selection(selection)
        fork = self._fork()
        fork._selection = selection
        return fork

    def single(self) -> "SingleQuery":
        return SingleQuery(self)

    def _fork(self) -> "QueryEngine":
        clone = QueryEngine(
            self._search, self._meta, self._body, max_workers=self._max_workers
        )
        clone._scan = dict(self._scan)
        clone._filter = dict(self._filter)
        clone._selection = self._selection
        return clone

    def _resolver_for(self, namespace: str) -> Any:
        if namespace == Namespace.PARAMS.value:
            return self._search
        if namespace == Namespace.META.value:
            return self._meta
        return self._body

    def _known_fields(self, namespace: str) -> Optional[Tuple[str, ...]]:
        if namespace == Namespace.PARAMS.value:
            return tuple(self._search.param_names)
        return _declared_fields(self._resolver_for(namespace))

    def _validate_selection(self, selection: Selection) -> None:
        for path in selection.all_paths():
            namespace, field = split_path(path)
            if namespace not in NAMESPACES:
                raise UnknownFieldError("namespace", namespace, NAMESPACES)
            if self._resolver_for(namespace) is None:
                raise ConfigurationError(
                    f"Selecting {path!r} requires a {namespace} resolver"
                )
            known = self._known_fields(namespace)
            if field is not None and known is not None and field not in known:
                raise UnknownFieldError(namespace, field, known)

        # flatten a row shaped like the declared fields to surface collisions
        shape: Dict[str, Dict[str, None]] = {}
        for namespace in selection.namespaces():
            known = self._known_fields(namespace)
            if known is not None:
                shape[namespace] = dict.fromkeys(known)
        selection.flatten(shape)

    def _require_plan(self) -> QueryPlan:
        if self._selection is None:
            raise ConfigurationError("No selection: call select() before executing")
        return build_plan(self._selection, self._filter)

    # ------------------------------------------------------------- resolution

    def _iter_ids(self) -> Iterator[str]:
        constraints = dict(self._scan)
        lazy = getattr(self._search, "iter_enumerate", None)
        if callable(lazy):
            return iter(lazy(constraints))
        return iter(self._search.enumerate(constraints))

    def _passes_filter(
        self, item_id: str, plan: QueryPlan
    ) -> Tuple[bool, Optional[Dict[str, Any]]]:
        if not plan.has_filter:
            return True, None
        meta = self._meta.resolve(item_id, plan.meta_request)
        return plan.matches(meta), meta

    def _build_row(
        self, item_id: str, plan: QueryPlan, meta: Optional[Dict[str, Any]]
    ) -> ResultRow:
        params = self._search.extract_params(item_id) if plan.needs_params else None
        if plan.needs_meta:
            if meta is None:
                meta = self._meta.resolve(item_id, plan.meta_request)
        else:
            meta = None
        body = self._body.resolve(item_id, plan.body_request) if plan.needs_body else None
        return ResultRow(item_id=item_id, params=params, meta=meta, body=body)

    def _resolve_one(self, item_id: str, plan: QueryPlan) -> Optional[Dict[str, Any]]:
        """Filter, resolve and flatten one item; None when it is filtered out."""
        keep, meta = self._passes_filter(item_id, plan)
        if not keep:
            return None
        row = self._build_row(item_id, plan, meta)
        return plan.selection.flatten(row.namespaces())

    def _iter_rows(self, plan: QueryPlan) -> Iterator[Dict[str, Any]]:
        ids = self._iter_ids()
        try:
            for item_id in ids:
                row = self._resolve_one(item_id, plan)
                if row is not None:
                    yield row
        finally:
            close = getattr(ids, "close", None)
            if close is not None:
                close()

    def _map(self, fn: Callable[[T], R], items: Sequence[T]) -> List[R]:
        if self._max_workers == 1 or len(items) <= 1:
            return [fn(item) for item in items]
        with ThreadPoolExecutor(max_workers=min(self._max_workers, len(items))) as pool:
            return list(pool.map(fn, items))

    # -------------------------------------------------------------- terminals

    def exec(self) -> List[Dict[str, Any]]:
        """Run the query and return flat rows in enumeration order."""
        plan = self._require_plan()
        ids = list(self._search.enumerate(dict(self._scan)))
        logger.debug("exec: %d ids enumerated with scan=%r", len(ids), self._scan)

        # per-call Meta cache, dropped when this call returns
        meta_cache: Dict[str, Dict[str, Any]] = {}
        try:
            survivors = ids
            if plan.has_filter:
                metas = self._map(
                    lambda item_id: self._meta.resolve(item_id, plan.meta_request), ids
                )
                survivors = []
                for item_id, meta in zip(ids, metas):
                    if plan.matches(meta):
                        meta_cache[item_id] = meta
                        survivors.append(item_id)
                logger.debug(
                    "exec: %d of %d ids passed filter=%r",
                    len(survivors),
                    len(ids),
                    self._filter,
                )
            rows = self._map(
                lambda item_id: self._build_row(item_id, plan, meta_cache.get(item_id)),
                survivors,
            )
            return [plan.selection.flatten(row.namespaces()) for row in rows]
        finally:
            meta_cache.clear()

    def stream(self, concurrency_limit: Optional[int] = None) -> Iterator[Dict[str, Any]]:
        """Yield flat rows as items finish resolving.

        At most ``concurrency_limit`` items are in flight or waiting to be
        consumed at any time. Rows come out in completion order. Closing the
        generator stops pulling ids from enumeration; work already started
        runs to completion.

        Raises:
            ConfigurationError: No selection was declared (raised immediately).
            ValueError: concurrency_limit is not a positive integer.
        """
        plan = self._require_plan()
        limit = get_concurrency_limit(concurrency_limit)
        return self._stream(plan, limit)

    def _stream(self, plan: QueryPlan, limit: int) -> Iterator[Dict[str, Any]]:
        slots = threading.BoundedSemaphore(limit)
        ids = self._iter_ids()
        pending: Set[Future] = set()
        exhausted = False
        issued = 0
        pool = ThreadPoolExecutor(max_workers=limit, thread_name_prefix="piq-stream")
        try:
            while True:
                while not exhausted and slots.acquire(blocking=False):
                    item_id = next(ids, _EXHAUSTED)
                    if item_id is _EXHAUSTED:
                        slots.release()
                        exhausted = True
                        break
                    pending.add(pool.submit(self._resolve_one, item_id, plan))
                    issued += 1
                if not pending:
                    break
                logger.debug("stream: %d issued, %d in flight", issued, len(pending))
                done, pending = wait(pending, return_when=FIRST_COMPLETED)
                for future in done:
                    try:
                        row = future.result()
                        if row is not None:
                            yield row
                    finally:
                        slots.release()
        finally:
            close = getattr(ids, "close", None)
            if close is not None:
                close()
            pool.shutdown(wait=True)

    def astream(
        self, concurrency_limit: Optional[int] = None
    ) -> AsyncIterator[Dict[str, Any]]:
        """Async variant of :meth:`stream`.

        Resolver calls run in worker threads through ``asyncio.to_thread``
        under an ``asyncio.Semaphore`` of ``concurrency_limit`` slots.
        """
        plan = self._require_plan()
        limit = get_concurrency_limit(concurrency_limit)
        return self._astream(plan, limit)

    async def _astream(
        self, plan: QueryPlan, limit: int
    ) -> AsyncIterator[Dict[str, Any]]:
        slots = asyncio.Semaphore(limit)
        ids = self._iter_ids()
        pending: Set[asyncio.Task] = set()
        ready: Set[asyncio.Task] = set()
        exhausted = False
        try:
            while True:
                while not exhausted and not slots.locked():
                    await slots.acquire()
                    item_id = await asyncio.to_thread(next, ids, _EXHAUSTED)
                    if item_id is _EXHAUSTED:
                        slots.release()
                        exhausted = True
                        break
                    pending.add(
                        asyncio.create_task(
                            asyncio.to_thread(self._resolve_one, item_id, plan)
                        )
                    )
                if not pending:
                    break
                ready, pending = await asyncio.wait(
                    pending, return_when=asyncio.FIRST_COMPLETED
                )
                for task in list(ready):
                    ready.discard(task)
                    try:
                        row = task.result()
                        if row is not None:
                            yield row
                    finally:
                        slots.release()
        finally:
            abandoned = pending | ready
            if pending:
                # let started work finish; its rows are no longer wanted
                await asyncio.wait(pending)
            for task in abandoned:
                error = None if task.cancelled() else task.exception()
                if error is not None:
                    logger.debug("astream: dropped error from abandoned item: %r", error)
            close = getattr(ids, "close", None)
            if close is not None:
                close()


class SingleQuery:
    """Single-row view of a configured :class:`QueryEngine`.

    Both variants pull ids lazily and stop as soon as the answer is known.
    """

    def __init__(self, engine: QueryEngine) -> None:
        self._engine = engine

    def _first(self, count: int) -> List[Dict[str, Any]]:
        plan = self._engine._require_plan()
        rows = self._engine._iter_rows(plan)
        out: List[Dict[str, Any]] = []
        try:
            for row in rows:
                out.append(row)
                if len(out) >= count:
                    break
        finally:
            rows.close()
        return out

    def exec(self) -> Optional[Dict[str, Any]]:
        """Return the first row, or None when nothing matches."""
        rows = self._first(1)
        return rows[0] if rows else None

    def exec_strict(self) -> Dict[str, Any]:
        """Return the only row.

        Raises:
            EmptyResultError: No row matched.
            MultipleResultError: More than one row matched.
        """
        rows = self._first(2)
        if not rows:
            raise EmptyResultError(f"Expected exactly one row, got none ({self._engine!r})")
        if len(rows) > 1:
            raise MultipleResultError(
                f"Expected exactly one row, got more than one ({self._engine!r})"
            )
        return rows[0]


__all__ = ["QueryEngine", "SingleQuery"]
