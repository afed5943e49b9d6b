"""
Indicator helpers for LTP level and trend calculations.

Pure functions over plain sequences so the same bars always produce
the same value.
"""

from typing import Sequence

from ltp.models import Bar


def calculate_ema(values: Sequence[float], period: int) -> float:
    """
    Exponential moving average of the full series.

    Seeded with the simple average of the first `period` values, then
    smoothed forward with multiplier 2 / (period + 1).

    Args:
        values: Prices, oldest first
        period: EMA period

    Returns:
        Final EMA value. With fewer than `period` values the last value is
        returned; an empty series (or non-positive period) returns 0.0.
    """
    if not values or period <= 0:
        return 0.0
    if len(values) < period:
        return float(values[-1])

    multiplier = 2 / (period + 1)
    ema = sum(values[:period]) / period

    for value in values[period:]:
        ema = (value - ema) * multiplier + ema

    return ema


def calculate_sma(values: Sequence[float], period: int) -> float:
    """Simple average of the last `period` values (0.0 if not enough data)."""
    if period <= 0 or len(values) < period:
        return 0.0
    window = values[-period:]
    return sum(window) / period


def calculate_vwap(bars: Sequence[Bar]) -> float:
    """
    Volume-weighted average of the typical price (H+L+C)/3.

    Returns 0.0 when cumulative volume is zero.
    """
    cumulative_tpv = 0.0
    cumulative_volume = 0.0

    for bar in bars:
        cumulative_tpv += bar.typical_price * bar.volume
        cumulative_volume += bar.volume

    return cumulative_tpv / cumulative_volume if cumulative_volume > 0 else 0.0


def percent_change(first: float, last: float) -> float:
    if first == 0:
        return 0.0
    return (last - first) / first * 100
