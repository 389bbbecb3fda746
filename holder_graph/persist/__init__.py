"""SQLite-backed storage for token analyses."""

__all__ = [
    'db',
    'migrations',
    'analysis_repo',
]
