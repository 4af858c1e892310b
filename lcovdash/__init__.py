"""Coverage dashboard for per-project LCOV reports."""
