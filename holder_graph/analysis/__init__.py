"""Freshness-managed token analyses backed by the persistence layer."""

__all__ = [
    'store',
]
