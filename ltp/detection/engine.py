"""
LTP Detection Engine

Orchestrates setup detection for a watchlist of symbols:
- Key levels via LevelCalculator (stored with a 1 hour expiry)
- Multi-timeframe trend via MultiTimeframeAggregator (fresh for 30 minutes)
- Patience candles at the chosen level
- Confluence scoring, stage, trade parameters and coach note
- Periodic detection cycles via DetectionScheduler

analyze_symbol() works in two phases. The ensure-fresh phase recomputes
missing levels or analyses and returns None for that call; the next call
(usually the next cycle) scores against the fresh data. The score phase
never writes levels or analyses.
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

import pytz

from ltp.confluence import (
    ConfluenceScorer,
    ScoreExplanation,
    generate_coach_note,
    generate_score_explanation,
)
from ltp.detection.config import DetectorConfig, LTPConfig
from ltp.detection.scheduler import DetectionScheduler
from ltp.detection.store import LTPStore
from ltp.exceptions import StoreError
from ltp.levels import INTRADAY_TIMEFRAME, LevelCalculator
from ltp.market_data import MarketDataProvider
from ltp.models import (
    DetectedSetup,
    KeyLevel,
    LevelResult,
    PatienceResult,
    TimeframeAnalysis,
)
from ltp.patience import detect_patience_candles
from ltp.trade_params import calculate_trade_params
from ltp.trend import MultiTimeframeAggregator

logger = logging.getLogger(__name__)


@dataclass
class _Scoring:
    """Intermediate results of the score phase for one symbol."""
    symbol: str
    price: float
    direction: str
    level_result: LevelResult
    trend_score: int
    patience: PatienceResult
    patience_score: int
    confluence_score: int
    analyses: List[TimeframeAnalysis]


class LTPDetectionEngine:
    """
    LTP setup detection over a mutable watchlist.

    Usage:
        engine = LTPDetectionEngine(market_data, LTPStore('data/ltp'))
        engine.initialize()
        engine.add_symbols(['SPY', 'QQQ'])
        setups = engine.run_detection_cycle()

        engine.start_continuous_detection(interval_seconds=60)
        # ... later ...
        engine.stop_continuous_detection()
    """

    JOB_ID = 'ltp_detection'

    def __init__(
        self,
        market_data: MarketDataProvider,
        store: LTPStore,
        detector_config: Optional[DetectorConfig] = None,
        scheduler: Optional[DetectionScheduler] = None,
        config: Optional[LTPConfig] = None,
    ):
        """
        Initialize the engine.

        Args:
            market_data: Quote and bar source
            store: Persistence for levels, analyses and setups
            detector_config: Runtime settings (watchlist, interval, timezone)
            scheduler: Scheduler for continuous detection (created on start if None)
            config: Scoring configuration (replaced by initialize())
        """
        self.market_data = market_data
        self.store = store
        self.detector_config = detector_config or DetectorConfig()
        self.config = config or LTPConfig()

        self._scheduler = scheduler
        self._owns_scheduler = scheduler is None

        self._watchlist = {s.strip().upper() for s in self.detector_config.symbols if s.strip()}
        self._watchlist_lock = threading.Lock()

        # Non-blocking guard: at most one cycle (or manual analysis) at a time
        self._cycle_lock = threading.Lock()
        self._lifecycle_lock = threading.Lock()
        self._stats_lock = threading.Lock()

        self._is_running = False
        self._cycle_count = 0
        self._error_count = 0
        self._last_cycle_at: Optional[datetime] = None
        self._last_cycle_setups = 0

        self._build_components()

    def _build_components(self) -> None:
        thresholds = self.config.thresholds
        self.level_calculator = LevelCalculator(
            self.market_data,
            self.store,
            ttl=timedelta(seconds=thresholds.level_ttl_seconds),
        )
        self.aggregator = MultiTimeframeAggregator(
            self.market_data,
            self.store,
            self.config.timeframes,
        )
        self.scorer = ConfluenceScorer(thresholds)

    def initialize(self) -> LTPConfig:
        """
        Load scoring configuration from the store's active strategy configs.

        Validation issues are logged; malformed entries keep their defaults.

        Returns:
            The configuration now in use
        """
        try:
            configs = self.store.get_active_strategy_configs()
        except StoreError as e:
            logger.error(f"Error loading strategy configs, using defaults: {e}")
            configs = {}

        config = LTPConfig.from_strategy_configs(configs)
        for issue in config.validate():
            logger.warning(f"LTP config issue: {issue}")

        self.config = config
        self._build_components()
        logger.info(
            f"LTP engine initialized: {len(config.timeframes.enabled_timeframes)} timeframes, "
            f"confluence threshold {config.thresholds.confluence_threshold}"
        )
        return config

    # =========================================================================
    # Watchlist
    # =========================================================================

    def add_symbols(self, symbols: Iterable[str]) -> List[str]:
        """
        Add symbols to the watchlist.

        Returns:
            Symbols that were not already watched
        """
        cleaned = {s.strip().upper() for s in symbols if s and s.strip()}
        with self._watchlist_lock:
            added = sorted(cleaned - self._watchlist)
            self._watchlist |= cleaned
        if added:
            logger.info(f"Added to watchlist: {', '.join(added)}")
        return added

    def remove_symbols(self, symbols: Iterable[str]) -> List[str]:
        """
        Remove symbols from the watchlist.

        Returns:
            Symbols that were watched and are now removed
        """
        cleaned = {s.strip().upper() for s in symbols if s and s.strip()}
        with self._watchlist_lock:
            removed = sorted(cleaned & self._watchlist)
            self._watchlist -= cleaned
        if removed:
            logger.info(f"Removed from watchlist: {', '.join(removed)}")
        return removed

    def get_watchlist(self) -> List[str]:
        with self._watchlist_lock:
            return sorted(self._watchlist)

    # =========================================================================
    # Analysis
    # =========================================================================

    def _ensure_fresh(self, symbol: str, now: datetime):
        """
        Ensure-fresh phase.

        Returns:
            (price, levels, analyses) when everything is fresh, else None
            after recomputing whatever was missing
        """
        quote = self.market_data.get_quote(symbol)
        if quote is None or quote.last is None:
            logger.debug(f"{symbol}: no quote, skipping")
            return None

        levels = self.store.get_active_levels(symbol, now)
        if not levels:
            logger.debug(f"{symbol}: no active levels, calculating")
            self.level_calculator.calculate_key_levels(symbol, now=now)
            return None

        max_age = timedelta(seconds=self.config.thresholds.analysis_max_age_seconds)
        analyses = self.store.get_fresh_analyses(symbol, max_age, now)
        if not analyses:
            logger.debug(f"{symbol}: no fresh MTF analysis, analyzing")
            self.aggregator.analyze(symbol)
            return None

        return float(quote.last), levels, analyses

    def _score(
        self,
        symbol: str,
        price: float,
        levels: List[KeyLevel],
        analyses: List[TimeframeAnalysis],
        now: datetime,
    ) -> _Scoring:
        thresholds = self.config.thresholds
        bars = self.market_data.get_aggregates(
            symbol, INTRADAY_TIMEFRAME, thresholds.patience_lookback_bars
        ) or []

        direction = self.aggregator.determine_direction(analyses)
        level_result = self.scorer.score_level(price, levels, now)
        trend_score = self.aggregator.score_alignment(analyses, direction)

        # Patience is only measured against the chosen level
        if level_result.level is not None:
            patience = detect_patience_candles(
                bars,
                level_result.level.price,
                max_body_pct=thresholds.patience_max_body_pct,
                proximity_pct=thresholds.patience_proximity_pct,
            )
        else:
            patience = PatienceResult()

        patience_score = self.scorer.score_patience(patience)
        confluence = self.scorer.score(level_result.score, trend_score, patience_score)

        return _Scoring(
            symbol=symbol,
            price=price,
            direction=direction,
            level_result=level_result,
            trend_score=trend_score,
            patience=patience,
            patience_score=patience_score,
            confluence_score=confluence,
            analyses=list(analyses),
        )

    def _build_setup(self, scoring: _Scoring, now: datetime) -> DetectedSetup:
        level = scoring.level_result.level
        params = calculate_trade_params(scoring.price, level, scoring.direction)

        return DetectedSetup(
            symbol=scoring.symbol,
            direction=scoring.direction,
            setup_stage=self.scorer.stage(scoring.confluence_score, scoring.patience.detected),
            confluence_score=scoring.confluence_score,
            level_score=scoring.level_result.score,
            trend_score=scoring.trend_score,
            patience_score=scoring.patience_score,
            mtf_score=scoring.trend_score,
            primary_level_type=level.level_type if level else None,
            primary_level_price=level.price if level else None,
            patience_candles=scoring.patience.count,
            suggested_entry=params.suggested_entry,
            suggested_stop=params.suggested_stop,
            target_1=params.target_1,
            target_2=params.target_2,
            target_3=params.target_3,
            risk_reward=params.risk_reward,
            coach_note=generate_coach_note(
                scoring.level_result,
                scoring.trend_score,
                scoring.patience,
                scoring.direction,
            ),
            detected_at=now,
            detected_by='system',
        )

    def analyze_symbol(self, symbol: str, now: Optional[datetime] = None) -> Optional[DetectedSetup]:
        """
        Analyze one symbol for an LTP setup.

        Args:
            symbol: Ticker symbol
            now: Reference time (defaults to now)

        Returns:
            DetectedSetup, or None when data had to be refreshed, no quote is
            available, analysis failed (logged) or a detection cycle is running
        """
        if not self._cycle_lock.acquire(blocking=False):
            logger.warning(f"Detection cycle in progress, skipping analysis of {symbol}")
            return None
        try:
            return self._analyze(symbol.upper(), now or datetime.now())
        finally:
            self._cycle_lock.release()

    def _analyze(self, symbol: str, now: datetime) -> Optional[DetectedSetup]:
        try:
            fresh = self._ensure_fresh(symbol, now)
            if fresh is None:
                return None
            price, levels, analyses = fresh
            return self._build_setup(self._score(symbol, price, levels, analyses, now), now)
        except Exception as e:
            logger.error(f"Error analyzing {symbol}: {e}")
            self._record_error()
            return None

    def _record_error(self) -> None:
        with self._stats_lock:
            self._error_count += 1

    def explain_symbol(self, symbol: str, now: Optional[datetime] = None) -> Optional[ScoreExplanation]:
        """
        Score breakdown for a symbol from already-fresh data.

        Unlike analyze_symbol() this never triggers a recompute.

        Returns:
            ScoreExplanation, or None if the symbol has no quote, no active
            levels or no fresh analyses
        """
        symbol = symbol.upper()
        now = now or datetime.now()

        quote = self.market_data.get_quote(symbol)
        if quote is None:
            return None
        levels = self.store.get_active_levels(symbol, now)
        max_age = timedelta(seconds=self.config.thresholds.analysis_max_age_seconds)
        analyses = self.store.get_fresh_analyses(symbol, max_age, now)
        if not levels or not analyses:
            return None

        scoring = self._score(symbol, float(quote.last), levels, analyses, now)
        return generate_score_explanation(
            symbol,
            scoring.direction,
            scoring.price,
            scoring.level_result,
            scoring.trend_score,
            scoring.patience,
            scoring.analyses,
            now=now,
        )

    # =========================================================================
    # Detection cycle
    # =========================================================================

    def run_detection_cycle(self, now: Optional[datetime] = None) -> List[DetectedSetup]:
        """
        Analyze every watched symbol once, sequentially.

        Setups at or above min_confluence_score are persisted. A symbol whose
        setup cannot be persisted is left out of the result. A call made while
        another cycle is running returns [] without analyzing anything.

        Returns:
            Persisted setups from this cycle
        """
        if not self._cycle_lock.acquire(blocking=False):
            logger.warning("Detection cycle already in progress, skipping")
            return []
        try:
            return self._run_cycle(now)
        finally:
            self._cycle_lock.release()

    def _run_cycle(self, now: Optional[datetime]) -> List[DetectedSetup]:
        start_time = time.time()
        symbols = self.get_watchlist()
        min_score = self.config.thresholds.min_confluence_score
        with self._stats_lock:
            self._cycle_count += 1

        logger.info(f"Running detection for {len(symbols)} symbols")

        setups: List[DetectedSetup] = []
        for symbol in symbols:
            try:
                setup = self._analyze(symbol, now or datetime.now())
                if setup is None or setup.confluence_score < min_score:
                    continue
                setups.append(self.store.upsert_setup(setup))
            except StoreError as e:
                logger.error(f"Error storing setup for {symbol}: {e}")
                self._record_error()
            except Exception as e:
                logger.error(f"Error in detection for {symbol}: {e}")
                self._record_error()

        with self._stats_lock:
            self._last_cycle_at = datetime.now()
            self._last_cycle_setups = len(setups)
        duration = time.time() - start_time
        logger.info(f"Detection complete: {len(setups)} setups in {duration:.2f}s")
        return setups

    def get_detected_setups(
        self,
        symbols: Optional[Iterable[str]] = None,
        max_age: timedelta = timedelta(minutes=30),
    ) -> List[DetectedSetup]:
        """Recent setups, highest confluence first."""
        return self.store.get_detected_setups(symbols=symbols, max_age=max_age)

    # =========================================================================
    # Continuous detection
    # =========================================================================

    def start_continuous_detection(self, interval_seconds: Optional[int] = None) -> None:
        """
        Schedule a cycle to run immediately and then every interval_seconds.

        Every cycle, including the first, runs on the scheduler thread, so
        this returns without waiting for detection.

        Args:
            interval_seconds: Seconds between cycles (default from DetectorConfig)
        """
        with self._lifecycle_lock:
            if self._is_running:
                logger.warning("Continuous detection already running")
                return
            self._is_running = True

            interval = interval_seconds or self.detector_config.detection_interval_seconds
            logger.info(f"Starting continuous detection (every {interval}s)")

            if self._scheduler is None:
                self._scheduler = DetectionScheduler(
                    timezone=self.detector_config.timezone,
                    misfire_grace_time=self.detector_config.misfire_grace_time,
                )
            try:
                self._scheduler.add_interval_job(
                    self.run_detection_cycle,
                    interval_seconds=interval,
                    job_id=self.JOB_ID,
                    job_name='LTP Detection Cycle',
                    next_run_time=datetime.now(pytz.timezone(self.detector_config.timezone)),
                )
                self._scheduler.start()
            except Exception:
                self._is_running = False
                raise

    def stop_continuous_detection(self) -> None:
        """Cancel future cycles. A cycle already in progress runs to completion."""
        with self._lifecycle_lock:
            if not self._is_running:
                return

            if self._scheduler is not None:
                self._scheduler.remove_job(self.JOB_ID)
                self._scheduler.shutdown(wait=False)
                if self._owns_scheduler:
                    self._scheduler = None

            self._is_running = False
        logger.info("Continuous detection stopped")

    @property
    def is_running(self) -> bool:
        return self._is_running

    def get_status(self) -> Dict[str, Any]:
        """
        Get engine status.

        Returns:
            Status dictionary
        """
        next_run = None
        scheduler_status = None
        scheduler = self._scheduler
        if scheduler is not None and self._is_running:
            next_run = scheduler.get_next_run_time(self.JOB_ID)
            scheduler_status = scheduler.get_status()

        with self._stats_lock:
            cycle_count = self._cycle_count
            error_count = self._error_count
            last_cycle_at = self._last_cycle_at
            last_cycle_setups = self._last_cycle_setups

        return {
            'running': self._is_running,
            'watchlist': self.get_watchlist(),
            'cycle_count': cycle_count,
            'last_cycle_at': last_cycle_at.isoformat() if last_cycle_at else None,
            'setups_last_cycle': last_cycle_setups,
            'error_count': error_count,
            'next_run': str(next_run) if next_run else None,
            'scheduler': scheduler_status,
            'config': {
                'timeframes': list(self.config.timeframes.enabled_timeframes),
                'confluence_threshold': self.config.thresholds.confluence_threshold,
                'min_confluence_score': self.config.thresholds.min_confluence_score,
            },
        }
