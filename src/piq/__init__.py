"""piq: cost-tiered queries over content collections.

Narrow a collection by identifier structure first, then by a small metadata
block, and only parse full content for what is left.
"""

__all__ = [
    "__version__",
    "QueryEngine",
    "compile_pattern",
]

__version__ = "0.1.0"

from piq.core.pattern import compile_pattern  # noqa: E402
from piq.core.query.engine import QueryEngine  # noqa: E402
