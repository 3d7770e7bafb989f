"""Query engine public API.

Builder, selection flattening and result materialization. Resolvers are
injected by the caller; nothing here reads files directly.
"""

from .engine import QueryEngine, SingleQuery
from .selection import Selection
from .plan import QueryPlan, build_plan
from .undot import expand_wildcards, undot, undot_with_aliases, undot_all
from .materialize import (
    rows_to_frame,
    materialize_result,
    distinct_values,
)

__all__ = [
    "QueryEngine",
    "SingleQuery",
    "Selection",
    "QueryPlan",
    "build_plan",
    "expand_wildcards",
    "undot",
    "undot_with_aliases",
    "undot_all",
    "rows_to_frame",
    "materialize_result",
    "distinct_values",
]
