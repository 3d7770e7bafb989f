"""Engine configuration constants.

This module centralizes the tunables of the query engine and the reference
resolvers. Adjust these constants to trade memory and file handles for
throughput.

Concurrency:
    - stream(): counting-semaphore slots for in-flight item resolutions
    - exec(): worker threads used to fan out per-item resolution

Partial reads:
    - frontmatter: initial read budget before the window is expanded
"""

from __future__ import annotations

from typing import Optional

# ============================================================================
# IDENTIFIERS
# ============================================================================

# Separator between identifier segments (POSIX paths for filesystem items)
PATH_SEPARATOR = "/"

# Suffix that turns a selection path into a namespace wildcard
WILDCARD_SUFFIX = ".*"


# ============================================================================
# CONCURRENCY
# ============================================================================

DEFAULT_STREAM_CONCURRENCY = 50

# 1 disables fan-out and resolves items on the calling thread
DEFAULT_EXEC_WORKERS = 8


# ============================================================================
# PARTIAL READS
# ============================================================================

# Bytes read before looking for the closing frontmatter fence
FRONTMATTER_MAX_BYTES = 4096

# The read window doubles until the block closes; this caps a single read
FRONTMATTER_READ_CEILING = 1024 * 1024


# ============================================================================
# MATERIALIZATION
# ============================================================================

DEFAULT_MAX_ROWS = 5000
DEFAULT_MAX_BYTES = 2_000_000  # ~2MB inline budget


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================


def _positive_int(value: Optional[int], default: int, label: str) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{label} must be an integer, got {value!r}")
    if value < 1:
        raise ValueError(f"{label} must be >= 1, got {value}")
    return value


def get_concurrency_limit(value: Optional[int] = None) -> int:
    """Return a validated stream concurrency limit.

    Args:
        value: Caller-supplied limit, or None for the default.

    Returns:
        Number of semaphore slots to use.

    Raises:
        ValueError: If value is not a positive integer.

    Examples:
        >>> get_concurrency_limit()
        50
        >>> get_concurrency_limit(4)
        4
    """
    return _positive_int(value, DEFAULT_STREAM_CONCURRENCY, "concurrency_limit")


def get_exec_workers(value: Optional[int] = None) -> int:
    """Return a validated worker count for exec() fan-out."""
    return _positive_int(value, DEFAULT_EXEC_WORKERS, "max_workers")
