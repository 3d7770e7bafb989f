import argparse
import itertools
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import colorlog
import yaml

from piq import __version__ as _PACKAGE_VERSION
from piq.core.errors import (
    ConfigurationError,
    EmptyResultError,
    MissingParameterError,
    MultipleResultError,
    ParameterValueError,
    PiqError,
)
from piq.core.pattern import compile_pattern
from piq.core.query.materialize import distinct_values, materialize_result


def setup_logging(
    verbose: bool = False, warnings_only: bool = False, errors_only: bool = False
) -> None:
    logger = logging.getLogger()
    for h in list(logger.handlers):
        logger.removeHandler(h)
    log_format = (
        "%(asctime)s:%(levelname)s:%(name)s in %(filename)s:%(funcName)s:%(lineno)d: %(message)s"
    )
    log_colors = {
        "DEBUG": "cyan",
        "INFO": "green",
        "WARNING": "yellow",
        "ERROR": "red",
        "CRITICAL": "bold_red",
    }
    stream_handler = colorlog.StreamHandler()
    formatter = colorlog.ColoredFormatter(f"%(log_color)s{log_format}", log_colors=log_colors)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)
    if errors_only:
        logger.setLevel(logging.ERROR)
    elif warnings_only:
        logger.setLevel(logging.WARNING)
    else:
        logger.setLevel(logging.DEBUG if verbose else logging.INFO)


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def _parse_assignments(
    items: Optional[List[str]], *, typed: bool = False
) -> Optional[Dict[str, Any]]:
    """Parse ``key=value`` arguments.

    With ``typed`` the value is read as a YAML scalar, so ``true`` becomes a
    bool and ``3`` an int; otherwise values stay strings.
    """
    if not items:
        return None
    out: Dict[str, Any] = {}
    for item in items:
        key, sep, value = item.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ValueError(f"Expected key=value, got {item!r}")
        out[key] = yaml.safe_load(value) if typed and value != "" else value
    return out


def cmd_match(args: argparse.Namespace) -> int:
    """Print the params an identifier yields under a pattern."""
    try:
        pattern = compile_pattern(args.pattern)
    except PiqError as e:
        logging.error("%s", e)
        return 2
    params = pattern.match(args.id)
    if params is None:
        logging.error("%r does not match %r", args.id, args.pattern)
        return 1
    _print_json(params)
    return 0


def cmd_build(args: argparse.Namespace) -> int:
    """Print the identifier a pattern builds from key=value params."""
    try:
        pattern = compile_pattern(args.pattern)
        params = _parse_assignments(args.params) or {}
        print(pattern.build(params))
    except (MissingParameterError, ParameterValueError) as e:
        logging.error("%s", e)
        return 1
    except (PiqError, ValueError) as e:
        logging.error("%s", e)
        return 2
    return 0


def _load_registry(path: str):
    from piq.sources.registry import CollectionRegistry

    return CollectionRegistry(Path(path))


def cmd_list(args: argparse.Namespace) -> int:
    try:
        registry = _load_registry(args.collections)
    except (PiqError, OSError) as e:
        logging.error("Failed to load collections: %s", e)
        return 2
    collections = registry.all()
    if not collections:
        logging.warning("No collections defined in %s", args.collections)
        return 0
    for c in collections:
        facets = ["params"]
        if c.meta_enabled:
            facets.append("meta")
        if c.body_enabled:
            facets.append("body")
        line = f"{c.name}: {c.root}/{c.pattern} [{', '.join(facets)}]"
        if c.description:
            line += f" - {c.description}"
        print(line)
    return 0


def _build_selection(args: argparse.Namespace) -> Any:
    aliases = _parse_assignments(args.alias)
    if aliases and args.select:
        raise ValueError("Use either --select or --alias, not both")
    if aliases:
        return aliases
    if not args.select:
        raise ValueError("At least one --select or --alias is required")
    return list(args.select)


def cmd_query(args: argparse.Namespace) -> int:
    """Run a query against a collection and print the rows."""
    try:
        registry = _load_registry(args.collections)
        engine = registry.build_engine(args.name, max_workers=args.workers)
        scan = _parse_assignments(args.scan)
        flt = _parse_assignments(args.filter, typed=True)
        if scan:
            engine = engine.scan(scan)
        if flt:
            engine = engine.filter(flt)
        query = engine.select(_build_selection(args))
    except (PiqError, OSError, ValueError) as e:
        logging.error("Invalid query: %s", e)
        return 2

    try:
        if args.single or args.strict_single:
            single = query.single()
            row = single.exec_strict() if args.strict_single else single.exec()
            if row is None:
                logging.error("No rows matched")
                return 1
            _print_json(row)
            return 0
        if args.stream:
            rows = list(itertools.islice(query.stream(args.concurrency), args.limit))
        else:
            rows = query.exec()
    except (EmptyResultError, MultipleResultError) as e:
        logging.error("%s", e)
        return 1
    except ConfigurationError as e:
        logging.error("Invalid query: %s", e)
        return 2
    except (PiqError, OSError) as e:
        logging.error("Query failed: %s", e)
        return 1

    logging.info("%d rows from collection '%s'", len(rows), args.name)
    if args.distinct:
        _print_json(distinct_values(rows, args.distinct))
        return 0 if rows else 1

    payload = materialize_result(rows, limit=args.limit, format=args.format)
    if payload["method"] == "too_large":
        logging.error(
            "Result too large to print (%d rows); narrow the query or pass --limit",
            payload["row_count"],
        )
        return 1
    if args.format == "csv":
        print(payload["csv"], end="")
    else:
        _print_json(payload["data"])
    return 0 if rows else 1


def _positive(value: str) -> int:
    n = int(value)
    if n < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {n}")
    return n


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="piq",
        description=f"Cost-tiered queries over content collections (v{_PACKAGE_VERSION})",
    )
    p.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    p.add_argument(
        "--warnings-only",
        action="store_true",
        help="Show only warnings and errors (overrides --verbose)",
    )
    p.add_argument(
        "--errors-only",
        action="store_true",
        help="Show only errors (overrides --warnings-only and --verbose)",
    )

    sub = p.add_subparsers(dest="command", required=True)

    p_match = sub.add_parser("match", help="Extract params from an identifier")
    p_match.add_argument("pattern", help='Path pattern, e.g. "posts/{?date}/{slug}.md"')
    p_match.add_argument("id", help="Identifier to match")
    p_match.set_defaults(func=cmd_match)

    p_build = sub.add_parser("build", help="Build an identifier from params")
    p_build.add_argument("pattern", help="Path pattern")
    p_build.add_argument("params", nargs="*", help="key=value params")
    p_build.set_defaults(func=cmd_build)

    p_list = sub.add_parser("list", help="List collections from a collections YAML file")
    p_list.add_argument(
        "--collections",
        default=str(Path("config/collections.yaml")),
        help="Path to collections.yaml",
    )
    p_list.set_defaults(func=cmd_list)

    p_query = sub.add_parser("query", help="Query a collection")
    p_query.add_argument("name", help="Collection name")
    p_query.add_argument(
        "--collections",
        default=str(Path("config/collections.yaml")),
        help="Path to collections.yaml",
    )
    p_query.add_argument("--scan", action="append", help="Params constraint key=value (repeatable)")
    p_query.add_argument(
        "--filter",
        action="append",
        help="Meta constraint key=value; values are YAML scalars (repeatable)",
    )
    p_query.add_argument(
        "--select", action="append", help="Dotted path such as params.slug or meta.* (repeatable)"
    )
    p_query.add_argument("--alias", action="append", help="alias=path output mapping (repeatable)")
    mode = p_query.add_mutually_exclusive_group()
    mode.add_argument("--single", action="store_true", help="Print the first row only")
    mode.add_argument(
        "--strict-single",
        action="store_true",
        help="Print the only row; fail on zero or several",
    )
    mode.add_argument("--stream", action="store_true", help="Resolve items with bounded concurrency")
    p_query.add_argument("--concurrency", type=_positive, default=None, help="Stream concurrency limit")
    p_query.add_argument("--workers", type=_positive, default=None, help="exec() worker threads")
    p_query.add_argument("--limit", type=_positive, default=None, help="Maximum rows to print")
    p_query.add_argument("--format", choices=["json", "csv"], default="json", help="Output format")
    p_query.add_argument("--distinct", default=None, help="Print value counts of one output field")
    p_query.set_defaults(func=cmd_query)

    return p


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(
        verbose=bool(args.verbose),
        warnings_only=bool(getattr(args, "warnings_only", False)),
        errors_only=bool(getattr(args, "errors_only", False)),
    )
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
