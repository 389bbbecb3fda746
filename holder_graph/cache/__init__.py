"""Cache keys and the rendered-artifact TTL cache."""

__all__ = [
    'keys',
    'artifact_cache',
]
