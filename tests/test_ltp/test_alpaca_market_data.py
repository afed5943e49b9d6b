"""
Tests for integrations/alpaca_market_data.py

The alpaca-py StockHistoricalDataClient is replaced by a MagicMock, so no
network calls or credentials are needed.
"""

import pytest
import pandas as pd
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

from alpaca.common.exceptions import APIError
from alpaca.data.timeframe import TimeFrameUnit

from integrations.alpaca_market_data import (
    AlpacaMarketDataClient,
    bars_from_frame,
    lookback_start,
    to_alpaca_timeframe,
)
from ltp.exceptions import MarketDataError

END = datetime(2025, 3, 10, 16, 0)
NO_CREDS = {'api_key': '', 'secret_key': '', 'data_feed': 'iex'}


@pytest.fixture(autouse=True)
def no_env_credentials():
    with patch('integrations.alpaca_market_data.get_alpaca_credentials', return_value=NO_CREDS):
        yield


@pytest.fixture
def data_client():
    return MagicMock()


@pytest.fixture
def client(data_client):
    return AlpacaMarketDataClient(data_client=data_client)


def bar_frame(symbol='SPY', count=3):
    index = pd.MultiIndex.from_tuples(
        [(symbol, pd.Timestamp(2025, 3, 10, 9, 30 + 5 * i, tz='UTC')) for i in range(count)],
        names=['symbol', 'timestamp'],
    )
    return pd.DataFrame(
        {
            'open': [100.0 + i for i in range(count)],
            'high': [101.0 + i for i in range(count)],
            'low': [99.0 + i for i in range(count)],
            'close': [100.5 + i for i in range(count)],
            'volume': [1000 * (i + 1) for i in range(count)],
        },
        index=index,
    )


# =============================================================================
# Helpers
# =============================================================================

class TestHelpers:
    """Test timeframe conversion and request windows."""

    @pytest.mark.parametrize('unit,amount,expected_amount,expected_unit', [
        ('minute', 2, 2, TimeFrameUnit.Minute),
        ('minute', 15, 15, TimeFrameUnit.Minute),
        ('minute', 60, 1, TimeFrameUnit.Hour),
        ('minute', 240, 4, TimeFrameUnit.Hour),
        ('day', 1, 1, TimeFrameUnit.Day),
        ('week', 1, 1, TimeFrameUnit.Week),
    ])
    def test_to_alpaca_timeframe(self, unit, amount, expected_amount, expected_unit):
        timeframe = to_alpaca_timeframe(unit, amount)

        assert timeframe.amount_value == expected_amount
        assert timeframe.unit_value == expected_unit

    def test_lookback_covers_weekends(self):
        assert (END - lookback_start('day', 1, 60, END)).days >= 84
        assert (END - lookback_start('week', 1, 12, END)).days == 14 * 7

    def test_intraday_lookback(self):
        """78 five-minute bars is one session."""
        assert (END - lookback_start('minute', 5, 78, END)).days == 6

    def test_bars_from_frame(self):
        bars = bars_from_frame(bar_frame(count=5), limit=3)

        assert len(bars) == 3
        assert [b.close for b in bars] == [102.5, 103.5, 104.5]
        assert bars[0].volume == 3000.0
        assert isinstance(bars[0].time, datetime)

    def test_empty_frame(self):
        assert bars_from_frame(pd.DataFrame(), limit=10) == []


# =============================================================================
# Client
# =============================================================================

class TestConfiguration:
    """Test credential handling."""

    def test_unconfigured_client_raises(self):
        client = AlpacaMarketDataClient()

        assert not client.is_configured()
        with pytest.raises(MarketDataError, match='not configured'):
            client.get_quote('SPY')

    def test_injected_client_is_configured(self, client):
        assert client.is_configured()
        assert client.data_feed.value == 'iex'


class TestGetQuote:
    """Test get_quote."""

    def test_mid_price(self, client, data_client):
        data_client.get_stock_latest_quote.return_value = {
            'SPY': MagicMock(bid_price=100.0, ask_price=100.2, timestamp=END),
        }

        quote = client.get_quote('spy')

        assert quote.symbol == 'SPY'
        assert quote.last == pytest.approx(100.1)
        assert quote.bid == 100.0
        assert quote.ask == 100.2

    def test_one_sided_quote(self, client, data_client):
        data_client.get_stock_latest_quote.return_value = {
            'SPY': MagicMock(bid_price=0, ask_price=100.2, timestamp=END),
        }

        quote = client.get_quote('SPY')

        assert quote.last == 100.2
        assert quote.bid is None

    def test_missing_quote(self, client, data_client):
        data_client.get_stock_latest_quote.return_value = {}
        assert client.get_quote('SPY') is None


class TestGetAggregates:
    """Test get_aggregates."""

    def test_returns_bars(self, client, data_client):
        data_client.get_stock_bars.return_value = MagicMock(df=bar_frame(count=3))

        bars = client.get_aggregates('SPY', '5', 78)

        assert len(bars) == 3
        request = data_client.get_stock_bars.call_args.args[0]
        assert request.symbol_or_symbols == 'SPY'

    def test_request_window_ends_now_in_utc(self, client, data_client):
        data_client.get_stock_bars.return_value = MagicMock(df=bar_frame(count=3))

        with patch('integrations.alpaca_market_data.lookback_start', wraps=lookback_start) as start:
            client.get_aggregates('SPY', 'day', 250)

        end = start.call_args.args[3]
        assert end.utcoffset() == timedelta(0)
        assert abs((datetime.now(timezone.utc) - end).total_seconds()) < 5

    def test_zero_limit(self, client, data_client):
        assert client.get_aggregates('SPY', 'day', 0) == []
        data_client.get_stock_bars.assert_not_called()

    def test_invalid_timeframe(self, client):
        with pytest.raises(MarketDataError):
            client.get_aggregates('SPY', '3d', 10)


class TestRetry:
    """Test retry behaviour on APIError."""

    @patch('integrations.alpaca_market_data.time.sleep')
    def test_retryable_error_is_retried(self, mock_sleep, client, data_client):
        data_client.get_stock_bars.side_effect = [
            APIError('rate limit exceeded'),
            MagicMock(df=bar_frame(count=2)),
        ]

        bars = client.get_aggregates('SPY', 'day', 60)

        assert len(bars) == 2
        assert data_client.get_stock_bars.call_count == 2
        mock_sleep.assert_called_once_with(1)

    @patch('integrations.alpaca_market_data.time.sleep')
    def test_retries_are_exhausted(self, mock_sleep, client, data_client):
        data_client.get_stock_bars.side_effect = APIError('connection reset')

        with pytest.raises(MarketDataError):
            client.get_aggregates('SPY', 'day', 60)

        assert data_client.get_stock_bars.call_count == 3

    def test_non_retryable_error(self, client, data_client):
        data_client.get_stock_latest_quote.side_effect = APIError('forbidden')

        with pytest.raises(MarketDataError, match='forbidden'):
            client.get_quote('SPY')

        assert data_client.get_stock_latest_quote.call_count == 1
