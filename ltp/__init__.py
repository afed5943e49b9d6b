"""
LTP - Level, Trend, Patience setup detection

Scores intraday trading setups on three components:
- Level: price near a key level (PDH/PDL, weekly, VWAP, ORB, EMAs, SMA-200)
- Trend: multi-timeframe trend alignment with the voted direction
- Patience: small-bodied candles holding at the level

Modules:
- models.py: Data records (KeyLevel, TimeframeAnalysis, DetectedSetup, ...)
- market_data.py: MarketDataProvider interface and in-memory provider
- indicators.py: EMA / SMA / VWAP
- levels.py: Key level calculation
- trend.py: Per-timeframe analysis and MTF aggregation
- patience.py: Patience candle detection
- confluence.py: Scoring, stage, grade, coach note, score explanation
- trade_params.py: Entry / stop / targets
- detection/: Engine, scheduler, store and configuration
"""

from ltp.exceptions import LTPError, MarketDataError, StoreError, ConfigError
from ltp.models import (
    Bar,
    Quote,
    KeyLevel,
    TimeframeAnalysis,
    PatienceResult,
    LevelResult,
    TradeParams,
    DetectedSetup,
    Direction,
    SetupStage,
    LevelType,
)
from ltp.market_data import MarketDataProvider, InMemoryMarketData
from ltp.detection import (
    LTPConfig,
    DetectorConfig,
    LTPStore,
    LTPDetectionEngine,
)

__all__ = [
    'LTPError',
    'MarketDataError',
    'StoreError',
    'ConfigError',
    'Bar',
    'Quote',
    'KeyLevel',
    'TimeframeAnalysis',
    'PatienceResult',
    'LevelResult',
    'TradeParams',
    'DetectedSetup',
    'Direction',
    'SetupStage',
    'LevelType',
    'MarketDataProvider',
    'InMemoryMarketData',
    'LTPConfig',
    'DetectorConfig',
    'LTPStore',
    'LTPDetectionEngine',
]
