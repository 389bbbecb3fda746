"""Holder-graph analytics.

Fetches token-holder graphs from an on-chain analytics provider, keeps the
derived metrics fresh in a local store and renders force-directed bubble maps
of holder relationships.
"""

__version__ = "0.3.0"
