"""
LTP Detection

Continuous LTP setup detection for a watchlist.

Components:
- config.py: Configuration dataclasses (ThresholdConfig, TimeframeConfig, LTPConfig, DetectorConfig)
- store.py: JSON persistence for levels, MTF analyses, setups and strategy configs
- scheduler.py: APScheduler interval job for detection cycles
- engine.py: LTPDetectionEngine (ensure-fresh / score phases, detection cycle)
"""

from ltp.detection.config import (
    ThresholdConfig,
    TimeframeConfig,
    LTPConfig,
    DetectorConfig,
)
from ltp.detection.store import LTPStore
from ltp.detection.scheduler import DetectionScheduler
from ltp.detection.engine import LTPDetectionEngine

__all__ = [
    'ThresholdConfig',
    'TimeframeConfig',
    'LTPConfig',
    'DetectorConfig',
    'LTPStore',
    'DetectionScheduler',
    'LTPDetectionEngine',
]
