"""
Patience candle detection.

A patience candle is a small-bodied bar closing right at a key level:
price pausing at the level before continuation. Two or more in the last
five bars confirm the setup.
"""

from typing import Sequence

from ltp.models import Bar, PatienceResult

MIN_BARS = 3
LOOKBACK_BARS = 5
MIN_CANDLES = 2


def body_pct(bar: Bar) -> float:
    """Candle body as % of open (0 when open is not positive)."""
    if bar.open <= 0:
        return 0.0
    return abs(bar.close - bar.open) / bar.open * 100


def level_distance_pct(close: float, level_price: float) -> float:
    """Close-to-level distance as % of level (inf when level is not positive)."""
    if level_price <= 0:
        return float('inf')
    return abs(close - level_price) / level_price * 100


def is_patience_candle(
    bar: Bar,
    level_price: float,
    max_body_pct: float = 0.5,
    proximity_pct: float = 0.3,
) -> bool:
    return body_pct(bar) < max_body_pct and level_distance_pct(bar.close, level_price) < proximity_pct


def detect_patience_candles(
    bars: Sequence[Bar],
    level_price: float,
    max_body_pct: float = 0.5,
    proximity_pct: float = 0.3,
) -> PatienceResult:
    """
    Count patience candles at a level over the last five bars.

    Args:
        bars: Recent bars, oldest first
        level_price: Key level price
        max_body_pct: Max body size (% of open)
        proximity_pct: Max close-to-level distance (% of level)

    Returns:
        PatienceResult(detected=count >= 2, count). Fewer than 3 bars
        returns an empty result.
    """
    if len(bars) < MIN_BARS:
        return PatienceResult()

    count = sum(
        1 for bar in bars[-LOOKBACK_BARS:]
        if is_patience_candle(bar, level_price, max_body_pct, proximity_pct)
    )
    return PatienceResult(detected=count >= MIN_CANDLES, count=count)
