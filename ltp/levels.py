"""
Key Level Calculator

Derives support/resistance/reference levels for a symbol from daily,
weekly and intraday (5-minute) bars:

    Source                      Level type(s)            Strength
    previous daily bar          pdh / pdl / pdc          80 / 80 / 70
    previous weekly bar         weekly_high / low        90
    current (in-progress) week  weekly_high / low        85
    intraday session            vwap                     75
    first 3 intraday bars       orb_high / orb_low       85
    intraday session            hod / lod                70
    intraday closes (>= 21)     ema_9 / ema_21           65 / 70
    last 200 daily closes       sma_200                  95

Each bar series is fetched independently; a failed fetch only removes the
levels that depend on it.
"""

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, List, Optional, Sequence

from ltp.indicators import calculate_ema, calculate_sma, calculate_vwap
from ltp.market_data import MarketDataProvider
from ltp.models import Bar, KeyLevel, LevelType

if TYPE_CHECKING:
    from ltp.detection.store import LTPStore

logger = logging.getLogger(__name__)

DAILY_LOOKBACK = 250    # Enough history for the 200-day SMA
WEEKLY_LOOKBACK = 12
INTRADAY_TIMEFRAME = '5'
INTRADAY_LOOKBACK = 78   # One 6.5 hour session of 5-minute bars
ORB_BARS = 3             # First 15 minutes
EMA_MIN_BARS = 21
SMA_PERIOD = 200


def levels_from_daily(bars: Sequence[Bar]) -> List[KeyLevel]:
    levels = []
    if len(bars) >= 2:
        prev_day = bars[-2]
        levels += [
            KeyLevel(LevelType.PDH.value, prev_day.high, 'daily', 80),
            KeyLevel(LevelType.PDL.value, prev_day.low, 'daily', 80),
            KeyLevel(LevelType.PDC.value, prev_day.close, 'daily', 70),
        ]

    if len(bars) >= SMA_PERIOD:
        sma200 = calculate_sma([b.close for b in bars], SMA_PERIOD)
        levels.append(KeyLevel(LevelType.SMA_200.value, sma200, 'daily', 95))

    return levels


def levels_from_weekly(bars: Sequence[Bar]) -> List[KeyLevel]:
    if len(bars) < 2:
        return []

    prev_week = bars[-2]
    curr_week = bars[-1]
    return [
        KeyLevel(LevelType.WEEKLY_HIGH.value, prev_week.high, 'weekly', 90),
        KeyLevel(LevelType.WEEKLY_LOW.value, prev_week.low, 'weekly', 90),
        KeyLevel(LevelType.WEEKLY_HIGH.value, curr_week.high, 'weekly', 85),
        KeyLevel(LevelType.WEEKLY_LOW.value, curr_week.low, 'weekly', 85),
    ]


def levels_from_intraday(bars: Sequence[Bar]) -> List[KeyLevel]:
    if not bars:
        return []

    levels = []

    if sum(b.volume for b in bars) > 0:
        levels.append(KeyLevel(LevelType.VWAP.value, calculate_vwap(bars), 'intraday', 75))

    if len(bars) >= ORB_BARS:
        orb = bars[:ORB_BARS]
        levels += [
            KeyLevel(LevelType.ORB_HIGH.value, max(b.high for b in orb), 'intraday', 85),
            KeyLevel(LevelType.ORB_LOW.value, min(b.low for b in orb), 'intraday', 85),
        ]

    levels += [
        KeyLevel(LevelType.HOD.value, max(b.high for b in bars), 'intraday', 70),
        KeyLevel(LevelType.LOD.value, min(b.low for b in bars), 'intraday', 70),
    ]

    if len(bars) >= EMA_MIN_BARS:
        closes = [b.close for b in bars]
        levels += [
            KeyLevel(LevelType.EMA_9.value, calculate_ema(closes, 9), 'intraday', 65),
            KeyLevel(LevelType.EMA_21.value, calculate_ema(closes, 21), 'intraday', 70),
        ]

    return levels


class LevelCalculator:
    """
    Computes and persists key levels for a symbol.

    Usage:
        calculator = LevelCalculator(market_data, store)
        levels = calculator.calculate_key_levels('SPY')
    """

    def __init__(
        self,
        market_data: MarketDataProvider,
        store: Optional['LTPStore'] = None,
        ttl: timedelta = timedelta(hours=1),
    ):
        self.market_data = market_data
        self.store = store
        self.ttl = ttl

    def _fetch(self, symbol: str, timeframe_key: str, limit: int) -> List[Bar]:
        try:
            return self.market_data.get_aggregates(symbol, timeframe_key, limit) or []
        except Exception as e:
            logger.error(f"Error fetching {timeframe_key} bars for {symbol}: {e}")
            return []

    def calculate_key_levels(self, symbol: str, now: Optional[datetime] = None) -> List[KeyLevel]:
        """
        Calculate all key levels for a symbol and replace the stored set.

        Args:
            symbol: Ticker symbol
            now: Calculation time (defaults to now); expiry is now + ttl

        Returns:
            Levels computed this pass (empty if every source failed)
        """
        symbol = symbol.upper()

        daily = self._fetch(symbol, 'day', DAILY_LOOKBACK)
        weekly = self._fetch(symbol, 'week', WEEKLY_LOOKBACK)
        intraday = self._fetch(symbol, INTRADAY_TIMEFRAME, INTRADAY_LOOKBACK)

        levels = levels_from_daily(daily) + levels_from_weekly(weekly) + levels_from_intraday(intraday)

        if self.store is not None:
            levels = self.store.replace_levels(symbol, levels, ttl=self.ttl, now=now)

        logger.info(f"Calculated {len(levels)} key levels for {symbol}")
        return levels
