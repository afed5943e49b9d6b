"""
Market Data Provider Interface

The LTP engine only ever talks to market data through this interface:
- get_quote(symbol): latest price snapshot
- get_aggregates(symbol, timeframe_key, limit): OHLCV bars, oldest first

timeframe_key is either a calendar unit ('day', 'week') or a number of
minutes as a string ('2', '5', '15', '60', '240').

Implementations:
- integrations.alpaca_market_data.AlpacaMarketDataClient (live, alpaca-py)
- InMemoryMarketData (replays and unit tests)
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Tuple

from ltp.models import Bar, Quote

CALENDAR_TIMEFRAMES = ('day', 'week')


def parse_timeframe_key(timeframe_key: str) -> Tuple[str, int]:
    """
    Split a timeframe key into (unit, amount).

    Returns:
        ('day', 1), ('week', 1) or ('minute', N)

    Raises:
        ValueError: If the key is neither a calendar unit nor a positive integer
    """
    key = str(timeframe_key).strip().lower()
    if key in CALENDAR_TIMEFRAMES:
        return key, 1
    if key.isdigit() and int(key) > 0:
        return 'minute', int(key)
    raise ValueError(f"Invalid timeframe key: {timeframe_key!r}")


class MarketDataProvider(ABC):
    """
    Abstract market data source.

    Keeps the engine independent of any broker SDK and makes the
    data side trivially mockable in tests.
    """

    @abstractmethod
    def get_quote(self, symbol: str) -> Optional[Quote]:
        """
        Get the most recent price for a symbol.

        Returns:
            Quote or None if no price is available
        """
        pass

    @abstractmethod
    def get_aggregates(self, symbol: str, timeframe_key: str, limit: int) -> List[Bar]:
        """
        Get the most recent `limit` bars for a symbol.

        Args:
            symbol: Ticker symbol
            timeframe_key: 'day', 'week' or minutes as a string
            limit: Maximum number of bars to return

        Returns:
            Bars ordered oldest -> newest (may be shorter than limit)

        Raises:
            MarketDataError: On upstream failure
        """
        pass

    def is_configured(self) -> bool:
        """True when the provider can serve requests."""
        return True


class InMemoryMarketData(MarketDataProvider):
    """
    Market data served from preloaded bar series.

    Usage:
        data = InMemoryMarketData()
        data.set_bars('SPY', 'day', daily_bars)
        data.set_quote('SPY', 512.40)
    """

    def __init__(self):
        self._bars: Dict[Tuple[str, str], List[Bar]] = {}
        self._quotes: Dict[str, Quote] = {}

    def set_bars(self, symbol: str, timeframe_key: str, bars: Sequence[Bar]) -> None:
        unit, amount = parse_timeframe_key(timeframe_key)
        key = unit if unit in CALENDAR_TIMEFRAMES else str(amount)
        self._bars[(symbol.upper(), key)] = list(bars)

    def set_quote(self, symbol: str, last: float) -> None:
        self._quotes[symbol.upper()] = Quote(symbol=symbol.upper(), last=float(last))

    def get_quote(self, symbol: str) -> Optional[Quote]:
        return self._quotes.get(symbol.upper())

    def get_aggregates(self, symbol: str, timeframe_key: str, limit: int) -> List[Bar]:
        unit, amount = parse_timeframe_key(timeframe_key)
        key = unit if unit in CALENDAR_TIMEFRAMES else str(amount)
        bars = self._bars.get((symbol.upper(), key), [])
        return bars[-limit:] if limit > 0 else []
