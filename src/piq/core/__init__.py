"""Pattern compiler, error taxonomy and query engine."""
