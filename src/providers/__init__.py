"""Upstream data providers.

Each provider module declares a tool catalog document and the handlers
backing it. Handlers only translate arguments into upstream requests.
"""

from providers.base import ProviderError, RESTProvider
from providers.coingecko import CATALOG, CoinGeckoTools, register_coingecko

__all__ = [
    "CATALOG",
    "CoinGeckoTools",
    "ProviderError",
    "RESTProvider",
    "register_coingecko",
]
