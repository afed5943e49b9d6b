"""
LTP System Integrations

External market data integrations:
- Alpaca Market Data Client: quotes and bars via alpaca-py

alpaca-py is imported lazily so the core engine and its tests can be used
without it:
    from integrations.alpaca_market_data import AlpacaMarketDataClient
"""

__all__ = [
    'AlpacaMarketDataClient',
]


def __getattr__(name):
    """Lazy import for the alpaca-backed client."""
    if name == 'AlpacaMarketDataClient':
        from .alpaca_market_data import AlpacaMarketDataClient
        return AlpacaMarketDataClient
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
