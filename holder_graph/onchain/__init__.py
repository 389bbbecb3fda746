"""Provider access for on-chain holder graphs.

`provider` holds the HTTP client and the raw payload models; `report` folds a
graph and its metadata into the normalized fields of a token analysis;
`market` reads DEX price and liquidity for the same tokens.
"""

__all__ = [
    'provider',
    'report',
    'market',
]
