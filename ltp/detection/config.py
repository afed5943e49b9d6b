"""
LTP Detection Configuration

Configuration dataclasses for the setup detection engine.

Configuration Categories:
1. ThresholdConfig - Level/patience/confluence thresholds and freshness windows
2. TimeframeConfig - Enabled MTF timeframes and their trend weights
3. LTPConfig - Immutable scoring configuration built once at initialize()
4. DetectorConfig - Runtime settings (watchlist, interval, store, logging)

Scoring config can come from stored strategy config documents:
    ltp_detection_thresholds: {level_proximity_percent,
                               patience_candle_max_size_percent,
                               confluence_threshold}
    mtf_timeframes: {enabled_timeframes, weights}
"""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Tuple
import logging
import math
import os

from ltp.exceptions import ConfigError

logger = logging.getLogger(__name__)


# Bar granularity and lookback per MTF timeframe key
TIMEFRAME_BARS: Mapping[str, Tuple[str, int]] = MappingProxyType({
    '2m': ('2', 60),
    '5m': ('5', 48),
    '15m': ('15', 32),
    '1h': ('60', 24),
    '4h': ('240', 30),
    'daily': ('day', 50),
    'weekly': ('week', 20),
})

DEFAULT_TIMEFRAME_BARS = ('5', 48)

DEFAULT_TIMEFRAMES: Tuple[str, ...] = ('2m', '5m', '15m', '1h', '4h', 'daily', 'weekly')

DEFAULT_WEIGHTS: Mapping[str, float] = MappingProxyType({
    'weekly': 0.15,
    'daily': 0.20,
    '4h': 0.15,
    '1h': 0.20,
    '15m': 0.15,
    '5m': 0.10,
    '2m': 0.05,
})

# Weight for a timeframe that is analysed but missing from the weight map
FALLBACK_WEIGHT = 0.1

DEFAULT_WATCHLIST: List[str] = [
    'SPY', 'QQQ', 'NVDA', 'AAPL', 'TSLA', 'AMD', 'META', 'GOOGL', 'AMZN', 'MSFT',
]

THRESHOLDS_CONFIG_NAME = 'ltp_detection_thresholds'
TIMEFRAMES_CONFIG_NAME = 'mtf_timeframes'


@dataclass(frozen=True)
class ThresholdConfig:
    """
    Scoring thresholds and freshness windows.

    Attributes:
        level_proximity_pct: Max distance (% of price) for a level to score
        patience_max_body_pct: Max candle body (% of open) for a patience candle
        patience_proximity_pct: Max close-to-level distance for a patience candle
        confluence_threshold: Minimum confluence for the 'ready' stage
        min_confluence_score: Minimum confluence for a setup to be persisted
        level_ttl_seconds: Stored levels expire after this long
        analysis_max_age_seconds: Timeframe analyses older than this are stale
        patience_lookback_bars: 5-minute bars fetched for the patience scan
    """
    level_proximity_pct: float = 0.3
    patience_max_body_pct: float = 0.5
    patience_proximity_pct: float = 0.3
    confluence_threshold: int = 70
    min_confluence_score: int = 50
    level_ttl_seconds: int = 3600
    analysis_max_age_seconds: int = 1800
    patience_lookback_bars: int = 12


@dataclass(frozen=True)
class TimeframeConfig:
    """Enabled timeframes (analysis order) and their trend-alignment weights."""
    enabled_timeframes: Tuple[str, ...] = DEFAULT_TIMEFRAMES
    weights: Mapping[str, float] = field(default_factory=lambda: DEFAULT_WEIGHTS)

    def __post_init__(self):
        object.__setattr__(self, 'enabled_timeframes', tuple(self.enabled_timeframes))
        object.__setattr__(self, 'weights', MappingProxyType(dict(self.weights)))

    def weight_for(self, timeframe: str) -> float:
        return self.weights.get(timeframe, FALLBACK_WEIGHT)


@dataclass(frozen=True)
class LTPConfig:
    """
    Immutable scoring configuration.

    Built once at engine initialize() and never mutated afterwards.
    """
    thresholds: ThresholdConfig = field(default_factory=ThresholdConfig)
    timeframes: TimeframeConfig = field(default_factory=TimeframeConfig)

    @classmethod
    def from_strategy_configs(cls, configs: Mapping[str, Mapping[str, Any]]) -> 'LTPConfig':
        """
        Build from active strategy config documents (name -> config dict).

        Unknown names are ignored; missing or malformed values keep their
        defaults (logged).
        """
        thresholds = ThresholdConfig()
        timeframes = TimeframeConfig()

        raw = configs.get(THRESHOLDS_CONFIG_NAME) or {}
        updates: Dict[str, Any] = {}
        for source, target, cast in (
            ('level_proximity_percent', 'level_proximity_pct', float),
            ('patience_candle_max_size_percent', 'patience_max_body_pct', float),
            ('confluence_threshold', 'confluence_threshold', int),
            ('min_confluence_score', 'min_confluence_score', int),
        ):
            if raw.get(source) is None:
                continue
            try:
                updates[target] = cast(raw[source])
            except (TypeError, ValueError):
                logger.warning(f"Ignoring invalid {THRESHOLDS_CONFIG_NAME}.{source}: {raw[source]!r}")
        if updates:
            thresholds = replace(thresholds, **updates)

        raw = configs.get(TIMEFRAMES_CONFIG_NAME) or {}
        enabled = raw.get('enabled_timeframes')
        weights = raw.get('weights')
        if isinstance(enabled, (list, tuple)) and enabled:
            timeframes = replace(timeframes, enabled_timeframes=tuple(str(tf) for tf in enabled))
        elif enabled is not None:
            logger.warning(f"Ignoring invalid {TIMEFRAMES_CONFIG_NAME}.enabled_timeframes: {enabled!r}")
        if isinstance(weights, Mapping) and weights:
            try:
                timeframes = replace(
                    timeframes,
                    weights={str(k): float(v) for k, v in weights.items()},
                )
            except (TypeError, ValueError):
                logger.warning(f"Ignoring invalid {TIMEFRAMES_CONFIG_NAME}.weights: {weights!r}")

        return cls(thresholds=thresholds, timeframes=timeframes)

    def validate(self, strict: bool = False) -> List[str]:
        """
        Validate configuration and return list of issues.

        Args:
            strict: Raise ConfigError instead of returning issues

        Returns:
            List of validation error messages (empty if valid)
        """
        issues = []
        t = self.thresholds

        if t.level_proximity_pct <= 0:
            issues.append('level_proximity_pct must be positive')
        if t.patience_max_body_pct <= 0:
            issues.append('patience_max_body_pct must be positive')
        if t.patience_proximity_pct <= 0:
            issues.append('patience_proximity_pct must be positive')
        if not (0 <= t.min_confluence_score <= 100):
            issues.append('min_confluence_score must be between 0 and 100')
        if not (0 <= t.confluence_threshold <= 100):
            issues.append('confluence_threshold must be between 0 and 100')
        if t.level_ttl_seconds <= 0 or t.analysis_max_age_seconds <= 0:
            issues.append('Freshness windows must be positive')

        if not self.timeframes.enabled_timeframes:
            issues.append('No timeframes enabled')
        for tf in self.timeframes.enabled_timeframes:
            if tf not in TIMEFRAME_BARS:
                issues.append(f'Invalid timeframe: {tf}')

        weights = self.timeframes.weights
        if any(w < 0 for w in weights.values()):
            issues.append('Timeframe weights must be non-negative')
        total = sum(weights.values())
        if not math.isclose(total, 1.0, abs_tol=0.01):
            issues.append(f'Timeframe weights sum to {total:.2f}, expected 1.00')

        if strict and issues:
            raise ConfigError('; '.join(issues))
        return issues


@dataclass
class DetectorConfig:
    """
    Runtime settings for the detection loop.

    Attributes:
        symbols: Initial watchlist
        detection_interval_seconds: Seconds between detection cycles
        store_path: Directory for the JSON store
        timezone: Scheduler timezone
        misfire_grace_time: Seconds a late cycle may still start
        log_level: Logging level for the CLI
        data_feed: Alpaca stock data feed ('iex' or 'sip')
    """
    symbols: List[str] = field(default_factory=lambda: list(DEFAULT_WATCHLIST))
    detection_interval_seconds: int = 60
    store_path: str = 'data/ltp'
    timezone: str = 'America/New_York'
    misfire_grace_time: int = 30
    log_level: str = 'INFO'
    data_feed: str = 'iex'

    @classmethod
    def from_env(cls) -> 'DetectorConfig':
        """
        Create configuration from environment variables.

        Environment variables:
            LTP_SYMBOLS: Comma-separated watchlist
            LTP_DETECTION_INTERVAL: Seconds between cycles
            LTP_STORE_PATH: Store directory
            LTP_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
            LTP_DATA_FEED: Alpaca data feed
        """
        config = cls()

        if symbols := os.environ.get('LTP_SYMBOLS'):
            config.symbols = [s.strip().upper() for s in symbols.split(',') if s.strip()]
        if interval := os.environ.get('LTP_DETECTION_INTERVAL'):
            config.detection_interval_seconds = int(interval)

        config.store_path = os.environ.get('LTP_STORE_PATH', config.store_path)
        config.log_level = os.environ.get('LTP_LOG_LEVEL', config.log_level)
        config.data_feed = os.environ.get('LTP_DATA_FEED', config.data_feed)

        return config

    def validate(self) -> List[str]:
        issues = []
        if not self.symbols:
            issues.append('No symbols configured for detection')
        if self.detection_interval_seconds < 1:
            issues.append('detection_interval_seconds must be at least 1')
        if self.log_level.upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            issues.append(f'Invalid log level: {self.log_level}')
        return issues
