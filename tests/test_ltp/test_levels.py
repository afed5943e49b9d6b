"""
Tests for ltp/levels.py

Covers:
- Daily levels (PDH/PDL/PDC, SMA-200 only with 200+ daily bars)
- Weekly levels (previous and current week)
- Intraday levels (VWAP, ORB, HOD/LOD, EMAs)
- LevelCalculator persistence and per-source fault isolation
"""

import pytest
from datetime import datetime, timedelta
from unittest.mock import Mock

from ltp.exceptions import MarketDataError
from ltp.levels import (
    LevelCalculator,
    levels_from_daily,
    levels_from_intraday,
    levels_from_weekly,
)
from ltp.market_data import MarketDataProvider


def by_type(levels):
    return {level.level_type: level for level in levels}


# =============================================================================
# Pure level builders
# =============================================================================

class TestDailyLevels:
    """Test levels_from_daily."""

    def test_previous_day_levels(self, trending_bars):
        bars = trending_bars(60, start=100.0, step=0.5)
        levels = by_type(levels_from_daily(bars))

        prev = bars[-2]
        assert levels['pdh'].price == prev.high
        assert levels['pdl'].price == prev.low
        assert levels['pdc'].price == prev.close
        assert levels['pdh'].strength == 80
        assert levels['pdl'].strength == 80
        assert levels['pdc'].strength == 70
        assert levels['pdh'].timeframe == 'daily'

    def test_no_sma_200_without_enough_history(self, trending_bars):
        """150 daily bars: PDH/PDL/PDC only, no SMA-200 and no error."""
        levels = levels_from_daily(trending_bars(150))

        assert 'sma_200' not in by_type(levels)
        assert len(levels) == 3

    def test_sma_200_with_full_history(self, trending_bars):
        bars = trending_bars(220, start=50.0, step=0.1)
        levels = by_type(levels_from_daily(bars))

        expected = sum(b.close for b in bars[-200:]) / 200
        assert levels['sma_200'].price == pytest.approx(expected)
        assert levels['sma_200'].strength == 95

    def test_single_bar_has_no_previous_day(self, trending_bars):
        assert levels_from_daily(trending_bars(1)) == []


class TestWeeklyLevels:
    """Test levels_from_weekly."""

    def test_previous_and_current_week(self, trending_bars):
        bars = trending_bars(12, start=400.0, step=2.0)
        levels = levels_from_weekly(bars)

        assert len(levels) == 4
        prev = [lvl for lvl in levels if lvl.strength == 90]
        curr = [lvl for lvl in levels if lvl.strength == 85]

        assert {lvl.price for lvl in prev} == {bars[-2].high, bars[-2].low}
        assert {lvl.price for lvl in curr} == {bars[-1].high, bars[-1].low}
        assert all(lvl.timeframe == 'weekly' for lvl in levels)

    def test_insufficient_weeks(self, trending_bars):
        assert levels_from_weekly(trending_bars(1)) == []


class TestIntradayLevels:
    """Test levels_from_intraday."""

    def test_full_session(self, trending_bars):
        bars = trending_bars(78, start=100.0, step=0.02)
        levels = by_type(levels_from_intraday(bars))

        assert set(levels) == {'vwap', 'orb_high', 'orb_low', 'hod', 'lod', 'ema_9', 'ema_21'}
        assert levels['orb_high'].price == max(b.high for b in bars[:3])
        assert levels['orb_low'].price == min(b.low for b in bars[:3])
        assert levels['hod'].price == max(b.high for b in bars)
        assert levels['lod'].price == min(b.low for b in bars)
        assert levels['vwap'].strength == 75
        assert levels['ema_9'].strength == 65
        assert levels['ema_21'].strength == 70

    def test_no_emas_before_21_bars(self, trending_bars):
        levels = by_type(levels_from_intraday(trending_bars(10)))

        assert 'ema_9' not in levels
        assert 'ema_21' not in levels
        assert 'orb_high' in levels

    def test_no_orb_before_three_bars(self, trending_bars):
        levels = by_type(levels_from_intraday(trending_bars(2)))

        assert 'orb_high' not in levels
        assert 'hod' in levels

    def test_no_vwap_without_volume(self, trending_bars):
        levels = by_type(levels_from_intraday(trending_bars(30, volume=0)))
        assert 'vwap' not in levels

    def test_empty_session(self):
        assert levels_from_intraday([]) == []


# =============================================================================
# LevelCalculator
# =============================================================================

class TestLevelCalculator:
    """Test LevelCalculator.calculate_key_levels."""

    @pytest.fixture
    def loaded_data(self, market_data, trending_bars):
        market_data.set_bars('SPY', 'day', trending_bars(60, start=500.0, step=1.0))
        market_data.set_bars('SPY', 'week', trending_bars(12, start=480.0, step=3.0))
        market_data.set_bars('SPY', '5', trending_bars(78, start=560.0, step=0.05))
        return market_data

    def test_levels_are_stamped_and_stored(self, loaded_data, store):
        now = datetime(2025, 3, 10, 11, 0)
        calculator = LevelCalculator(loaded_data, store)

        levels = calculator.calculate_key_levels('spy', now=now)

        assert len(levels) == 14
        assert all(lvl.symbol == 'SPY' for lvl in levels)
        assert all(lvl.expires_at == now + timedelta(hours=1) for lvl in levels)
        assert len(store.get_active_levels('SPY', now)) == 14

    def test_recalculation_replaces_previous_levels(self, loaded_data, store, trending_bars):
        now = datetime(2025, 3, 10, 11, 0)
        calculator = LevelCalculator(loaded_data, store)
        calculator.calculate_key_levels('SPY', now=now)

        loaded_data.set_bars('SPY', 'week', [])
        loaded_data.set_bars('SPY', '5', [])
        calculator.calculate_key_levels('SPY', now=now)

        stored = store.get_active_levels('SPY', now)
        assert {lvl.level_type for lvl in stored} == {'pdh', 'pdl', 'pdc'}

    def test_failed_source_only_drops_its_levels(self, trending_bars):
        """A weekly fetch error keeps daily and intraday levels."""
        provider = Mock(spec=MarketDataProvider)
        daily = trending_bars(60)
        intraday = trending_bars(78)

        def aggregates(symbol, timeframe_key, limit):
            if timeframe_key == 'week':
                raise MarketDataError('upstream timeout')
            return daily if timeframe_key == 'day' else intraday

        provider.get_aggregates.side_effect = aggregates

        levels = LevelCalculator(provider).calculate_key_levels('SPY')
        types = {lvl.level_type for lvl in levels}

        assert 'weekly_high' not in types
        assert {'pdh', 'vwap', 'ema_21'} <= types

    def test_requested_lookbacks(self):
        provider = Mock(spec=MarketDataProvider)
        provider.get_aggregates.return_value = []

        LevelCalculator(provider).calculate_key_levels('SPY')

        requested = {call.args[1]: call.args[2] for call in provider.get_aggregates.call_args_list}
        assert requested == {'day': 250, 'week': 12, '5': 78}

    def test_sma_200_from_full_daily_history(self, market_data, trending_bars):
        market_data.set_bars('SPY', 'day', trending_bars(250, start=300.0, step=1.0))

        levels = by_type(LevelCalculator(market_data).calculate_key_levels('SPY'))

        assert levels['sma_200'].strength == 95
        assert levels['sma_200'].price == pytest.approx(449.5)
        assert levels['pdh'].price == pytest.approx(548.25)

    def test_without_store_returns_unstamped_levels(self, loaded_data):
        levels = LevelCalculator(loaded_data).calculate_key_levels('SPY')

        assert len(levels) == 14
        assert all(lvl.expires_at is None for lvl in levels)
