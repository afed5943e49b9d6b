"""
LTP Data Models

Dataclasses shared by the level, trend, patience and confluence components
and by the detection engine's JSON store.

Records that are persisted expose to_dict()/from_dict() with datetimes
serialized as ISO strings.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional


class Direction(str, Enum):
    """Setup direction."""
    BULLISH = 'bullish'
    BEARISH = 'bearish'


class Trend(str, Enum):
    """Per-timeframe trend classification."""
    BULLISH = 'bullish'
    BEARISH = 'bearish'
    NEUTRAL = 'neutral'


class Structure(str, Enum):
    """Swing structure of the last few bars."""
    UPTREND = 'uptrend'
    DOWNTREND = 'downtrend'
    RANGE = 'range'


class EmaPosition(str, Enum):
    """Price position relative to EMA-9 and EMA-21."""
    ABOVE_ALL = 'above_all'
    BELOW_ALL = 'below_all'
    MIXED = 'mixed'


class Momentum(str, Enum):
    """Momentum bucket from first-to-last close change."""
    WEAK = 'weak'
    MODERATE = 'moderate'
    STRONG = 'strong'


class SetupStage(str, Enum):
    """Setup lifecycle stage."""
    FORMING = 'forming'
    READY = 'ready'


class LevelType(str, Enum):
    """Key level sources."""
    PDH = 'pdh'                   # Previous day high
    PDL = 'pdl'                   # Previous day low
    PDC = 'pdc'                   # Previous day close
    WEEKLY_HIGH = 'weekly_high'
    WEEKLY_LOW = 'weekly_low'
    VWAP = 'vwap'
    ORB_HIGH = 'orb_high'         # Opening range (first 15 min)
    ORB_LOW = 'orb_low'
    HOD = 'hod'                   # High of day
    LOD = 'lod'                   # Low of day
    EMA_9 = 'ema_9'
    EMA_21 = 'ema_21'
    SMA_200 = 'sma_200'


def _serialize(data: Dict[str, Any]) -> Dict[str, Any]:
    """Convert datetimes and enums in an asdict() payload to JSON-safe values."""
    for key, value in data.items():
        if isinstance(value, datetime):
            data[key] = value.isoformat()
        elif isinstance(value, Enum):
            data[key] = value.value
    return data


def _parse_datetimes(data: Dict[str, Any], *names: str) -> Dict[str, Any]:
    data = dict(data)
    for name in names:
        if isinstance(data.get(name), str):
            data[name] = datetime.fromisoformat(data[name])
    return data


@dataclass(frozen=True)
class Bar:
    """One OHLCV sample. Series are ordered oldest -> newest."""
    time: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @property
    def typical_price(self) -> float:
        return (self.high + self.low + self.close) / 3


@dataclass(frozen=True)
class Quote:
    """Most recent price snapshot for a symbol."""
    symbol: str
    last: float
    bid: Optional[float] = None
    ask: Optional[float] = None
    timestamp: Optional[datetime] = None


@dataclass
class KeyLevel:
    """
    A price reference point.

    Strength is a fixed prior per level source (0-100). Levels read back
    from the store also carry symbol, created_at and expires_at.
    """
    level_type: str
    price: float
    timeframe: str
    strength: int
    symbol: str = ''
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """A level without an expiry was never persisted and is treated as live."""
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or datetime.now())

    def with_expiry(self, symbol: str, ttl: timedelta, now: datetime) -> 'KeyLevel':
        return KeyLevel(
            level_type=self.level_type,
            price=self.price,
            timeframe=self.timeframe,
            strength=self.strength,
            symbol=symbol,
            created_at=now,
            expires_at=now + ttl,
        )

    def to_dict(self) -> Dict[str, Any]:
        return _serialize(asdict(self))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'KeyLevel':
        return cls(**_parse_datetimes(data, 'created_at', 'expires_at'))


@dataclass
class TimeframeAnalysis:
    """Trend/structure/momentum classification for one symbol and timeframe."""
    timeframe: str
    trend: str = Trend.NEUTRAL.value
    structure: str = Structure.RANGE.value
    ema_position: str = EmaPosition.MIXED.value
    momentum: str = Momentum.WEAK.value
    symbol: str = ''
    calculated_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def neutral(cls, symbol: str, timeframe: str) -> 'TimeframeAnalysis':
        """Defined result for insufficient history."""
        return cls(timeframe=timeframe, symbol=symbol)

    def is_fresh(self, max_age: timedelta, now: Optional[datetime] = None) -> bool:
        return self.calculated_at > (now or datetime.now()) - max_age

    def to_dict(self) -> Dict[str, Any]:
        return _serialize(asdict(self))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TimeframeAnalysis':
        return cls(**_parse_datetimes(data, 'calculated_at'))


@dataclass(frozen=True)
class PatienceResult:
    detected: bool = False
    count: int = 0


@dataclass(frozen=True)
class LevelResult:
    """Best-scoring level near price (level is None when nothing qualifies)."""
    score: int = 0
    level: Optional[KeyLevel] = None


@dataclass(frozen=True)
class TradeParams:
    suggested_entry: Optional[float] = None
    suggested_stop: Optional[float] = None
    target_1: Optional[float] = None
    target_2: Optional[float] = None
    target_3: Optional[float] = None
    risk_reward: Optional[float] = None


@dataclass
class DetectedSetup:
    """
    Terminal output of the engine: one scored LTP setup per symbol.

    The store keeps a single live row per symbol; each cycle replaces it.
    """
    symbol: str
    direction: str
    setup_stage: str
    confluence_score: int
    level_score: int
    trend_score: int
    patience_score: int
    mtf_score: int
    primary_level_type: Optional[str] = None
    primary_level_price: Optional[float] = None
    patience_candles: int = 0
    suggested_entry: Optional[float] = None
    suggested_stop: Optional[float] = None
    target_1: Optional[float] = None
    target_2: Optional[float] = None
    target_3: Optional[float] = None
    risk_reward: Optional[float] = None
    coach_note: str = ''
    detected_at: datetime = field(default_factory=datetime.now)
    detected_by: str = 'system'

    @property
    def is_ready(self) -> bool:
        return self.setup_stage == SetupStage.READY.value

    @property
    def grade(self) -> str:
        # Local import: confluence imports models
        from ltp.confluence import get_ltp_grade
        return get_ltp_grade(self.confluence_score)

    def to_dict(self) -> Dict[str, Any]:
        return _serialize(asdict(self))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DetectedSetup':
        return cls(**_parse_datetimes(data, 'detected_at'))
