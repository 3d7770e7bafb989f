from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Optional, Sequence

import polars as pl

from piq.core.config import DEFAULT_MAX_BYTES, DEFAULT_MAX_ROWS


def _jsonable(value: Any) -> Any:
    # nested values do not fit a CSV cell
    if isinstance(value, (list, dict, tuple)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return value


def rows_to_frame(rows: Sequence[Mapping[str, Any]]) -> pl.DataFrame:
    """Load flat query rows into a DataFrame.

    The schema is inferred from all rows so that a column which is None in
    the first rows still gets its real type.
    """
    if not rows:
        return pl.DataFrame()
    return pl.from_dicts([dict(r) for r in rows], infer_schema_length=None)


def materialize_result(
    rows: Sequence[Mapping[str, Any]],
    *,
    limit: Optional[int] = None,
    offset: int = 0,
    format: str = "json",
    max_rows: int = DEFAULT_MAX_ROWS,
    max_bytes: int = DEFAULT_MAX_BYTES,
) -> Dict[str, Any]:
    """Shape query rows into an inline payload.

    Returns:
        ``{"method": "direct", ...}`` with ``data`` (json) or ``csv`` (csv),
        or ``{"method": "too_large", "row_count": n}`` when the selected rows
        exceed ``max_rows`` or the payload exceeds ``max_bytes``. Rows are
        never dropped silently.

    Raises:
        ValueError: Unsupported format.
    """
    if format not in ("json", "csv"):
        raise ValueError(f"Unsupported format: {format}")
    selected = list(rows[offset:]) if offset else list(rows)
    if limit:
        selected = selected[:limit]
    row_count = len(selected)
    if row_count > max_rows:
        return {"method": "too_large", "row_count": row_count}

    if format == "json":
        data = [dict(r) for r in selected]
        s = json.dumps({"data": data}, ensure_ascii=False, default=str)
        if len(s.encode("utf-8")) > max_bytes:
            return {"method": "too_large", "row_count": row_count}
        return {"method": "direct", "data": data, "row_count": row_count}
    else:
        flat = [{k: _jsonable(v) for k, v in r.items()} for r in selected]
        text = rows_to_frame(flat).write_csv()
        if len(text.encode("utf-8")) > max_bytes:
            return {"method": "too_large", "row_count": row_count}
        return {"method": "direct", "csv": text, "row_count": row_count}


def distinct_values(
    rows: Sequence[Mapping[str, Any]], field: str, *, limit: int = 100, min_count: int = 1
) -> List[Dict[str, Any]]:
    """Count distinct values of one output field, most frequent first."""
    if not rows:
        return []
    frame = rows_to_frame([{field: _jsonable(r.get(field))} for r in rows])
    return (
        frame.group_by(field)
        .agg(pl.len().alias("count"))
        .sort(["count", field], descending=[True, False], nulls_last=True)
        .filter(pl.col("count") >= min_count)
        .limit(limit)
        .to_dicts()
    )
