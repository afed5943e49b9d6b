"""
LTP Confluence Scoring

Combines the three LTP components into one 0-100 confluence score:

    confluence = level * 0.35 + trend * 0.35 + patience * 0.30

- Level: best non-expired level within level_proximity_pct of price,
  scored on closeness (50 pts) and level strength (50 pts)
- Trend: weighted MTF alignment with the voted direction
- Patience: 0 without confirmation, else 40 + 20 per candle (max 100)

A setup is 'ready' only when confluence clears the threshold AND patience
is confirmed; everything else is 'forming'.

Also provides the human-facing helpers: coach note, letter grade and a
deterministic score explanation.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from ltp.detection.config import ThresholdConfig
from ltp.models import (
    KeyLevel,
    LevelResult,
    PatienceResult,
    SetupStage,
    TimeframeAnalysis,
)

LEVEL_WEIGHT = 0.35
TREND_WEIGHT = 0.35
PATIENCE_WEIGHT = 0.30


def clamp_score(score: float) -> int:
    return int(max(0, min(100, round(score))))


def score_level_proximity(
    price: float,
    levels: Sequence[KeyLevel],
    threshold_pct: float = 0.3,
    now: Optional[datetime] = None,
) -> LevelResult:
    """
    Score the best level near price.

    Args:
        price: Current price
        levels: Candidate levels (expired ones are ignored)
        threshold_pct: Max distance as % of price
        now: Reference time for expiry checks

    Returns:
        LevelResult with the rounded best score and its level, or
        LevelResult(0, None) when no level is within the threshold
    """
    if price <= 0 or threshold_pct <= 0:
        return LevelResult()

    best_score = 0.0
    best_level = None

    for level in levels:
        if level.is_expired(now):
            continue
        distance = abs(price - level.price) / price * 100
        if distance > threshold_pct:
            continue
        score = (1 - distance / threshold_pct) * 50 + (level.strength / 100) * 50
        if best_level is None or score > best_score:
            best_score = score
            best_level = level

    if best_level is None:
        return LevelResult()
    return LevelResult(score=clamp_score(best_score), level=best_level)


def score_patience_quality(patience: PatienceResult) -> int:
    if not patience.detected:
        return 0
    return 40 + min(patience.count * 20, 60)


def calculate_confluence(level_score: float, trend_score: float, patience_score: float) -> int:
    """Weighted confluence of the clamped component scores, rounded to an int."""
    return clamp_score(
        clamp_score(level_score) * LEVEL_WEIGHT
        + clamp_score(trend_score) * TREND_WEIGHT
        + clamp_score(patience_score) * PATIENCE_WEIGHT
    )


def determine_stage(confluence_score: int, patience_detected: bool, threshold: int = 70) -> str:
    if confluence_score >= threshold and patience_detected:
        return SetupStage.READY.value
    return SetupStage.FORMING.value


def get_ltp_grade(overall_score: float) -> str:
    if overall_score >= 90:
        return 'A'
    if overall_score >= 80:
        return 'B'
    if overall_score >= 70:
        return 'C'
    if overall_score >= 60:
        return 'D'
    return 'F'


def generate_coach_note(
    level_result: LevelResult,
    trend_score: int,
    patience: PatienceResult,
    direction: str,
) -> str:
    """Short plain-English summary of what the setup has and is missing."""
    notes = []
    level_type = level_result.level.level_type.upper() if level_result.level else 'LEVEL'

    if level_result.score >= 70:
        notes.append(f"Strong {level_type} level confluence.")
    elif level_result.score >= 50:
        notes.append(f"Price near {level_type}.")

    if trend_score >= 70:
        notes.append(f"MTF trend strongly {direction}.")
    elif trend_score >= 50:
        notes.append(f"Trend leaning {direction}.")

    if patience.detected:
        notes.append(f"{patience.count} patience candle(s) confirmed.")
    else:
        notes.append('Waiting for patience candle confirmation.')

    return ' '.join(notes)


@dataclass
class ScoreExplanation:
    """Deterministic breakdown of how a confluence score was reached."""
    scores: Dict[str, int]
    grade: str
    reasons: Dict[str, str]
    inputs: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'scores': dict(self.scores),
            'grade': self.grade,
            'reasons': dict(self.reasons),
            'inputs': dict(self.inputs),
        }


def generate_score_explanation(
    symbol: str,
    direction: str,
    current_price: float,
    level_result: LevelResult,
    trend_score: int,
    patience: PatienceResult,
    analyses: Sequence[TimeframeAnalysis],
    now: Optional[datetime] = None,
) -> ScoreExplanation:
    """
    Explain a score from its inputs.

    Component scores are recomputed from the same inputs the scorer used.
    """
    level_score = clamp_score(level_result.score)
    trend = clamp_score(trend_score)
    patience_score = score_patience_quality(patience)
    overall = calculate_confluence(level_score, trend, patience_score)

    level = level_result.level
    if level is not None and current_price > 0:
        distance = abs(current_price - level.price) / current_price * 100
        level_reason = (
            f"Price within {distance:.2f}% of {level.price:.2f} {level.level_type} "
            f"(strength: {level.strength})"
        )
    else:
        level_reason = "No key level nearby - price is in no-man's land"

    aligned = [a.timeframe for a in analyses if a.trend == direction]
    if aligned:
        trend_reason = f"{direction.capitalize()} trend aligned on {', '.join(aligned)} timeframes"
    else:
        trend_reason = f"Trend not aligned with {direction} direction"

    if patience.detected:
        patience_reason = f"{patience.count} patience candle(s) confirmed at level"
    else:
        patience_reason = 'No patience candles detected - waiting for confirmation'

    return ScoreExplanation(
        scores={
            'level': level_score,
            'trend': trend,
            'patience': patience_score,
            'overall': overall,
        },
        grade=get_ltp_grade(overall),
        reasons={
            'level': level_reason,
            'trend': trend_reason,
            'patience': patience_reason,
        },
        inputs={
            'symbol': symbol,
            'direction': direction,
            'current_price': current_price,
            'level_used': (
                {'type': level.level_type, 'price': level.price} if level is not None else None
            ),
            'timeframes_analyzed': [a.timeframe for a in analyses],
            'patience_candle_count': patience.count,
            'timestamp': (now or datetime.now()).isoformat(),
        },
    )


class ConfluenceScorer:
    """
    Scores a symbol's current state against the configured thresholds.

    Usage:
        scorer = ConfluenceScorer(config.thresholds)
        level_result = scorer.score_level(price, levels)
        confluence = scorer.score(level_result.score, trend_score, patience_score)
        stage = scorer.stage(confluence, patience.detected)
    """

    def __init__(self, thresholds: Optional[ThresholdConfig] = None):
        self.thresholds = thresholds or ThresholdConfig()

    def score_level(
        self,
        price: float,
        levels: Sequence[KeyLevel],
        now: Optional[datetime] = None,
    ) -> LevelResult:
        return score_level_proximity(price, levels, self.thresholds.level_proximity_pct, now)

    def score_patience(self, patience: PatienceResult) -> int:
        return score_patience_quality(patience)

    def score(self, level_score: float, trend_score: float, patience_score: float) -> int:
        return calculate_confluence(level_score, trend_score, patience_score)

    def stage(self, confluence_score: int, patience_detected: bool) -> str:
        return determine_stage(confluence_score, patience_detected, self.thresholds.confluence_threshold)
