"""
Alpaca Market Data Client - MarketDataProvider backed by alpaca-py

Provides:
- Latest quote (mid of bid/ask) via StockLatestQuoteRequest
- Minute / daily / weekly bars via StockBarsRequest
- Retry logic with exponential backoff on transient API errors (3 attempts)
- Sliding 60-second request budget (200 req/min by default)

Credentials come from config.settings (ALPACA_API_KEY / ALPACA_SECRET_KEY
in the root .env).

Usage:
    client = AlpacaMarketDataClient()
    quote = client.get_quote('SPY')
    bars = client.get_aggregates('SPY', '5', 78)
"""

import math
import time
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Optional

import pandas as pd

from config.settings import get_alpaca_credentials

from alpaca.common.exceptions import APIError
from alpaca.data import StockHistoricalDataClient
from alpaca.data.enums import DataFeed
from alpaca.data.requests import StockBarsRequest, StockLatestQuoteRequest
from alpaca.data.timeframe import TimeFrame, TimeFrameUnit

from ltp.exceptions import MarketDataError
from ltp.market_data import MarketDataProvider, parse_timeframe_key
from ltp.models import Bar, Quote

logger = logging.getLogger(__name__)

# Regular session minutes per trading day
SESSION_MINUTES = 390


def lookback_start(unit: str, amount: int, limit: int, end: datetime) -> datetime:
    """
    Start of a request window wide enough to hold `limit` bars.

    Calendar padding covers weekends and holidays.
    """
    if unit == 'week':
        return end - timedelta(weeks=limit + 2)
    if unit == 'day':
        return end - timedelta(days=math.ceil(limit * 7 / 5) + 10)
    sessions = math.ceil(limit * amount / SESSION_MINUTES)
    return end - timedelta(days=sessions * 2 + 4)


def to_alpaca_timeframe(unit: str, amount: int) -> TimeFrame:
    if unit == 'week':
        return TimeFrame(1, TimeFrameUnit.Week)
    if unit == 'day':
        return TimeFrame(1, TimeFrameUnit.Day)
    if amount % 60 == 0:
        return TimeFrame(amount // 60, TimeFrameUnit.Hour)
    return TimeFrame(amount, TimeFrameUnit.Minute)


def bars_from_frame(df: pd.DataFrame, limit: int) -> List[Bar]:
    """Convert an alpaca BarSet DataFrame (oldest first) to the last `limit` Bars."""
    if df is None or df.empty:
        return []

    # Multi-index: (symbol, timestamp) -> flatten
    if isinstance(df.index, pd.MultiIndex):
        df = df.droplevel('symbol')

    df = df.sort_index().tail(limit)
    return [
        Bar(
            time=ts.to_pydatetime() if hasattr(ts, 'to_pydatetime') else ts,
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
        )
        for ts, row in zip(df.index, df.itertuples(index=False))
    ]


class AlpacaMarketDataClient(MarketDataProvider):
    """
    Market data from Alpaca's historical stock data API.

    Features:
    - Automatic retry with exponential backoff
    - Rate limit handling
    - alpaca-py errors surfaced as MarketDataError
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        data_feed: Optional[str] = None,
        max_requests_per_minute: int = 200,
        data_client: Optional[StockHistoricalDataClient] = None,
    ):
        """
        Initialize Alpaca market data client.

        Args:
            api_key: Alpaca API key (default from config.settings)
            secret_key: Alpaca secret key (default from config.settings)
            data_feed: 'iex' or 'sip' (default from config.settings)
            max_requests_per_minute: Sliding-window request budget
            data_client: Pre-built StockHistoricalDataClient (tests)
        """
        creds = get_alpaca_credentials()
        self.api_key = api_key or creds['api_key']
        self.secret_key = secret_key or creds['secret_key']
        self.data_feed = DataFeed((data_feed or creds['data_feed']).lower())

        self.data_client = data_client
        if self.data_client is None and self.api_key and self.secret_key:
            self.data_client = StockHistoricalDataClient(
                api_key=self.api_key,
                secret_key=self.secret_key
            )

        # Rate limiting
        self.max_requests_per_minute = max_requests_per_minute
        self.request_timestamps: List[float] = []

        logger.info(
            f"AlpacaMarketDataClient initialized: "
            f"feed={self.data_feed.value}, configured={self.is_configured()}"
        )

    def is_configured(self) -> bool:
        return self.data_client is not None

    def _ensure_configured(self) -> None:
        if self.data_client is None:
            raise MarketDataError(
                "Alpaca market data client not configured. "
                "Set ALPACA_API_KEY and ALPACA_SECRET_KEY in the root .env file."
            )

    def _retry_api_call(
        self,
        func: Callable,
        *args,
        max_retries: int = 3,
        **kwargs
    ) -> Any:
        """
        Execute API call with retry logic and exponential backoff.

        Args:
            func: API function to call
            *args: Positional arguments for func
            max_retries: Maximum retry attempts
            **kwargs: Keyword arguments for func

        Returns:
            Result of func(*args, **kwargs)

        Raises:
            MarketDataError: If the call fails with a non-retryable error or
                all retries fail
        """
        for attempt in range(max_retries):
            self._check_rate_limit()
            try:
                result = func(*args, **kwargs)

                # Track request timestamp for rate limiting
                self.request_timestamps.append(time.time())

                return result

            except APIError as e:
                self.request_timestamps.append(time.time())

                is_retryable = any(
                    keyword in str(e).lower()
                    for keyword in ['timeout', 'rate limit', 'connection', 'too many requests']
                )

                if not is_retryable or attempt == max_retries - 1:
                    logger.error(
                        f"API call failed (attempt {attempt + 1}/{max_retries}): {e}"
                    )
                    raise MarketDataError(str(e)) from e

                wait_time = 2 ** attempt
                logger.warning(
                    f"API call failed (attempt {attempt + 1}/{max_retries}), "
                    f"retrying in {wait_time}s: {e}"
                )
                time.sleep(wait_time)

        raise MarketDataError(f"API call failed after {max_retries} attempts")

    def _check_rate_limit(self) -> None:
        """Check and enforce rate limits."""
        now = time.time()

        # Remove timestamps older than 1 minute
        self.request_timestamps = [
            ts for ts in self.request_timestamps
            if now - ts < 60
        ]

        # If at limit, wait until oldest request is 1 minute old
        if len(self.request_timestamps) >= self.max_requests_per_minute:
            oldest_request = self.request_timestamps[0]
            wait_time = 60 - (now - oldest_request)

            if wait_time > 0:
                logger.warning(f"Rate limit reached, waiting {wait_time:.1f}s")
                time.sleep(wait_time)

    def get_quote(self, symbol: str) -> Optional[Quote]:
        """
        Get latest quote for a stock symbol.

        Returns:
            Quote with last = bid/ask mid (or whichever side is present),
            None if Alpaca has no quote for the symbol
        """
        self._ensure_configured()
        symbol = symbol.upper()

        request = StockLatestQuoteRequest(symbol_or_symbols=[symbol], feed=self.data_feed)
        quotes = self._retry_api_call(self.data_client.get_stock_latest_quote, request)

        quote = quotes.get(symbol) if quotes else None
        if quote is None:
            return None

        bid = float(quote.bid_price or 0)
        ask = float(quote.ask_price or 0)
        if bid > 0 and ask > 0:
            last = (bid + ask) / 2
        else:
            last = ask or bid
        if last <= 0:
            logger.warning(f"Empty quote for {symbol}")
            return None

        return Quote(
            symbol=symbol,
            last=last,
            bid=bid or None,
            ask=ask or None,
            timestamp=quote.timestamp,
        )

    def get_aggregates(self, symbol: str, timeframe_key: str, limit: int) -> List[Bar]:
        """
        Get the most recent `limit` bars.

        Args:
            symbol: Stock symbol
            timeframe_key: 'day', 'week' or minutes as a string
            limit: Maximum number of bars

        Returns:
            Bars oldest -> newest

        Raises:
            MarketDataError: On API failure or an invalid timeframe key
        """
        self._ensure_configured()
        if limit <= 0:
            return []

        try:
            unit, amount = parse_timeframe_key(timeframe_key)
        except ValueError as e:
            raise MarketDataError(str(e)) from e

        end = datetime.now(timezone.utc)
        request = StockBarsRequest(
            symbol_or_symbols=symbol.upper(),
            timeframe=to_alpaca_timeframe(unit, amount),
            start=lookback_start(unit, amount, limit, end),
            end=end,
            feed=self.data_feed,
        )

        bar_set = self._retry_api_call(self.data_client.get_stock_bars, request)
        bars = bars_from_frame(bar_set.df, limit)

        logger.debug(f"Fetched {len(bars)} {timeframe_key} bars for {symbol}")
        return bars
