"""Holder graph visualization.

`scaling` maps metrics to sizes, `graph` builds transient layout records,
`layout` positions them, `renderer` and `card` draw PNGs, and `service`
ties them to the artifact cache.
"""

__all__ = [
    'scaling',
    'graph',
    'layout',
    'canvas',
    'renderer',
    'card',
    'service',
]
