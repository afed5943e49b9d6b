"""
Multi-Timeframe Trend Analysis

TimeframeTrendAnalyzer classifies a single timeframe:
- Trend: bullish if close > EMA9 > EMA21, bearish if close < EMA9 < EMA21
- Structure: last 5 bars with non-decreasing highs and lows (uptrend) or
  non-increasing highs and lows (downtrend), otherwise range
- EMA position: close above/below both EMAs, otherwise mixed
- Momentum: |first-to-last close change| > 2% strong, > 1% moderate

MultiTimeframeAggregator runs the analyzer over every enabled timeframe,
votes a direction and scores how much weighted timeframe agreement exists
for that direction.
"""

import logging
from typing import TYPE_CHECKING, List, Optional, Sequence

from ltp.detection.config import DEFAULT_TIMEFRAME_BARS, TIMEFRAME_BARS, TimeframeConfig
from ltp.indicators import calculate_ema, percent_change
from ltp.market_data import MarketDataProvider
from ltp.models import (
    Bar,
    Direction,
    EmaPosition,
    Momentum,
    Structure,
    TimeframeAnalysis,
    Trend,
)

if TYPE_CHECKING:
    from ltp.detection.store import LTPStore

logger = logging.getLogger(__name__)

MIN_BARS = 21
STRUCTURE_BARS = 5


def classify_structure(bars: Sequence[Bar]) -> str:
    recent = bars[-STRUCTURE_BARS:]
    pairs = list(zip(recent, recent[1:]))

    higher_highs = all(b.high >= a.high for a, b in pairs)
    higher_lows = all(b.low >= a.low for a, b in pairs)
    lower_highs = all(b.high <= a.high for a, b in pairs)
    lower_lows = all(b.low <= a.low for a, b in pairs)

    if higher_highs and higher_lows:
        return Structure.UPTREND.value
    if lower_highs and lower_lows:
        return Structure.DOWNTREND.value
    return Structure.RANGE.value


def classify_momentum(change_pct: float) -> str:
    change = abs(change_pct)
    if change > 2:
        return Momentum.STRONG.value
    if change > 1:
        return Momentum.MODERATE.value
    return Momentum.WEAK.value


def classify_bars(symbol: str, timeframe: str, bars: Sequence[Bar]) -> TimeframeAnalysis:
    """
    Classify a bar series. Pure: the same bars always give the same result.

    Fewer than 21 bars yields the neutral/range/mixed/weak analysis.
    """
    if len(bars) < MIN_BARS:
        return TimeframeAnalysis.neutral(symbol, timeframe)

    closes = [b.close for b in bars]
    price = closes[-1]
    ema9 = calculate_ema(closes, 9)
    ema21 = calculate_ema(closes, 21)

    trend = Trend.NEUTRAL.value
    if price > ema9 > ema21:
        trend = Trend.BULLISH.value
    elif price < ema9 < ema21:
        trend = Trend.BEARISH.value

    ema_position = EmaPosition.MIXED.value
    if price > ema9 and price > ema21:
        ema_position = EmaPosition.ABOVE_ALL.value
    elif price < ema9 and price < ema21:
        ema_position = EmaPosition.BELOW_ALL.value

    return TimeframeAnalysis(
        timeframe=timeframe,
        trend=trend,
        structure=classify_structure(bars),
        ema_position=ema_position,
        momentum=classify_momentum(percent_change(closes[0], price)),
        symbol=symbol,
    )


class TimeframeTrendAnalyzer:
    """Fetches bars for one timeframe key and classifies them."""

    def __init__(self, market_data: MarketDataProvider):
        self.market_data = market_data

    def analyze(self, symbol: str, timeframe: str) -> TimeframeAnalysis:
        """
        Analyze a single timeframe.

        Args:
            symbol: Ticker symbol
            timeframe: MTF key ('2m', '5m', '15m', '1h', '4h', 'daily', 'weekly');
                unknown keys use 5-minute bars

        Returns:
            TimeframeAnalysis (neutral when history is short)

        Raises:
            MarketDataError: If the bar fetch fails
        """
        timeframe_key, lookback = TIMEFRAME_BARS.get(timeframe, DEFAULT_TIMEFRAME_BARS)
        bars = self.market_data.get_aggregates(symbol, timeframe_key, lookback) or []

        if len(bars) < MIN_BARS:
            logger.debug(f"{symbol} {timeframe}: {len(bars)} bars, returning neutral analysis")

        return classify_bars(symbol, timeframe, bars)


class MultiTimeframeAggregator:
    """
    Runs the timeframe analyzer across enabled timeframes.

    Usage:
        aggregator = MultiTimeframeAggregator(market_data, store, config.timeframes)
        analyses = aggregator.analyze('SPY')
        direction = aggregator.determine_direction(analyses)
        score = aggregator.score_alignment(analyses, direction)
    """

    def __init__(
        self,
        market_data: MarketDataProvider,
        store: Optional['LTPStore'] = None,
        timeframes: Optional[TimeframeConfig] = None,
    ):
        self.analyzer = TimeframeTrendAnalyzer(market_data)
        self.store = store
        self.timeframes = timeframes or TimeframeConfig()

    def analyze(self, symbol: str) -> List[TimeframeAnalysis]:
        """
        Analyze every enabled timeframe in order and upsert each result.

        A failure on one timeframe is logged and that timeframe is skipped.
        """
        symbol = symbol.upper()
        analyses = []

        for timeframe in self.timeframes.enabled_timeframes:
            try:
                analysis = self.analyzer.analyze(symbol, timeframe)
                if self.store is not None:
                    self.store.upsert_timeframe_analysis(analysis)
                analyses.append(analysis)
            except Exception as e:
                logger.error(f"Error analyzing {symbol} {timeframe}: {e}")

        logger.info(f"MTF analysis for {symbol}: {len(analyses)}/{len(self.timeframes.enabled_timeframes)} timeframes")
        return analyses

    @staticmethod
    def determine_direction(analyses: Sequence[TimeframeAnalysis]) -> str:
        """Majority vote of bullish vs bearish timeframes (ties are bullish)."""
        bullish = sum(1 for a in analyses if a.trend == Trend.BULLISH.value)
        bearish = sum(1 for a in analyses if a.trend == Trend.BEARISH.value)
        return Direction.BEARISH.value if bearish > bullish else Direction.BULLISH.value

    def score_alignment(self, analyses: Sequence[TimeframeAnalysis], direction: str) -> int:
        """
        Weighted agreement with `direction`, 0-100.

        Each timeframe whose trend equals the direction contributes its
        weight * 100.
        """
        score = sum(
            self.timeframes.weight_for(a.timeframe) * 100
            for a in analyses
            if a.trend == direction
        )
        return max(0, min(100, round(score)))
