"""
Shared fixtures for LTP tests.

Provides bar builders, an in-memory market data provider and a JSON store
rooted in tmp_path.
"""

import pytest
from datetime import datetime, timedelta

from ltp.detection.store import LTPStore
from ltp.market_data import InMemoryMarketData
from ltp.models import Bar

BASE_TIME = datetime(2025, 3, 10, 9, 30)


def _bar(close, open_=None, high=None, low=None, volume=1000.0, time=None):
    open_ = close if open_ is None else open_
    return Bar(
        time=time or BASE_TIME,
        open=open_,
        high=max(open_, close) if high is None else high,
        low=min(open_, close) if low is None else low,
        close=close,
        volume=volume,
    )


@pytest.fixture
def make_bar():
    """Factory for a single Bar (high/low default to the body)."""
    return _bar


@pytest.fixture
def trending_bars():
    """
    Factory for a steadily trending series.

    Each bar closes `step` above (or below, for negative step) the previous
    one, with highs and lows moving in the same direction.
    """
    def _make(count, start=100.0, step=0.01, volume=1000.0, interval=timedelta(minutes=5)):
        bars = []
        for i in range(count):
            close = start + step * i
            open_ = close - step / 2
            bars.append(Bar(
                time=BASE_TIME + interval * i,
                open=open_,
                high=max(open_, close) + abs(step) / 4,
                low=min(open_, close) - abs(step) / 4,
                close=close,
                volume=volume,
            ))
        return bars
    return _make


@pytest.fixture
def market_data():
    """Empty in-memory market data provider."""
    return InMemoryMarketData()


@pytest.fixture
def store(tmp_path):
    """LTP store in a temporary directory."""
    return LTPStore(str(tmp_path / 'ltp'))
