"""
Tests for ltp/patience.py
"""

import pytest

from ltp.models import PatienceResult
from ltp.patience import body_pct, detect_patience_candles, level_distance_pct

LEVEL = 100.2


class TestDetectPatienceCandles:
    """Test detect_patience_candles."""

    def test_fewer_than_three_bars(self, make_bar):
        bars = [make_bar(100.15, open_=100.1)] * 2
        assert detect_patience_candles(bars, LEVEL) == PatienceResult(False, 0)

    def test_three_small_candles_at_level(self, make_bar):
        bars = [make_bar(100.0, open_=99.0)] * 9 + [make_bar(100.15, open_=100.1)] * 3
        result = detect_patience_candles(bars, LEVEL)

        assert result.detected is True
        assert result.count == 3

    def test_single_candle_is_not_enough(self, make_bar):
        bars = [make_bar(100.0, open_=99.0)] * 4 + [make_bar(100.15, open_=100.1)]
        result = detect_patience_candles(bars, LEVEL)

        assert result.detected is False
        assert result.count == 1

    def test_only_last_five_bars_are_scanned(self, make_bar):
        bars = [make_bar(100.15, open_=100.1)] * 6 + [make_bar(100.0, open_=99.0)] * 5
        assert detect_patience_candles(bars, LEVEL).count == 0

    def test_large_body_is_excluded(self, make_bar):
        """Close right at the level but a 1% body."""
        bars = [make_bar(100.2, open_=99.2)] * 5
        assert detect_patience_candles(bars, LEVEL).count == 0

    def test_far_from_level_is_excluded(self, make_bar):
        bars = [make_bar(101.0, open_=100.98)] * 5
        assert detect_patience_candles(bars, LEVEL).count == 0

    def test_custom_thresholds(self, make_bar):
        bars = [make_bar(100.5, open_=100.0)] * 5
        assert detect_patience_candles(bars, LEVEL).count == 0
        assert detect_patience_candles(bars, LEVEL, max_body_pct=1.0, proximity_pct=0.5).count == 5

    def test_non_positive_level_never_matches(self, make_bar):
        bars = [make_bar(0.01, open_=0.01)] * 5
        assert detect_patience_candles(bars, 0.0).count == 0


class TestCandleMeasures:
    """Test body and distance helpers."""

    def test_body_pct(self, make_bar):
        assert body_pct(make_bar(101.0, open_=100.0)) == pytest.approx(1.0)

    def test_body_pct_non_positive_open(self, make_bar):
        assert body_pct(make_bar(1.0, open_=0.0)) == 0.0

    def test_level_distance_pct(self):
        assert level_distance_pct(99.0, 100.0) == pytest.approx(1.0)
        assert level_distance_pct(99.0, 0.0) == float('inf')
