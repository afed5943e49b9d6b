"""
LTP Store

JSON-file persistence for everything the detection engine reads and writes.

Files (under store_path):
- levels.json:           symbol -> [KeyLevel]            (replaced per symbol)
- mtf_analysis.json:     symbol -> timeframe -> analysis (upsert on symbol+timeframe)
- detected_setups.json:  symbol -> DetectedSetup         (upsert on symbol)
- strategy_configs.json: name -> {config, is_active, updated_at}

Writes go to disk before the in-memory copy is updated, so a failed write
leaves the store exactly as it was. Every failure surfaces as StoreError.
"""

from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional
import json
import logging
import threading

from ltp.exceptions import StoreError
from ltp.models import DetectedSetup, KeyLevel, TimeframeAnalysis

logger = logging.getLogger(__name__)

LEVELS_FILE = 'levels.json'
ANALYSES_FILE = 'mtf_analysis.json'
SETUPS_FILE = 'detected_setups.json'
CONFIGS_FILE = 'strategy_configs.json'

DEFAULT_SETUP_MAX_AGE = timedelta(minutes=30)


class LTPStore:
    """
    Persistent storage for levels, timeframe analyses, setups and configs.

    Usage:
        store = LTPStore('data/ltp')
        store.replace_levels('SPY', levels, ttl=timedelta(hours=1))
        active = store.get_active_levels('SPY')
        recent = store.get_detected_setups()
    """

    def __init__(self, store_path: str = 'data/ltp'):
        """
        Initialize the store.

        Args:
            store_path: Directory for store files

        Raises:
            StoreError: If the directory cannot be created
        """
        self.store_path = Path(store_path)
        try:
            self.store_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"Cannot create store directory {self.store_path}: {e}") from e

        self._lock = threading.RLock()
        self._levels: Dict[str, List[KeyLevel]] = {}
        self._analyses: Dict[str, Dict[str, TimeframeAnalysis]] = {}
        self._setups: Dict[str, DetectedSetup] = {}
        self._configs: Dict[str, Dict[str, Any]] = {}

        self._load()

    # =========================================================================
    # Disk I/O
    # =========================================================================

    def _read(self, filename: str) -> Dict[str, Any]:
        path = self.store_path / filename
        if not path.exists():
            logger.debug(f"No existing store file at {path}")
            return {}
        try:
            with open(path, 'r') as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.error(f"Error loading {path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.error(f"Ignoring {path}: expected a JSON object")
            return {}
        return data

    def _write(self, filename: str, data: Dict[str, Any]) -> None:
        path = self.store_path / filename
        tmp_path = path.with_suffix(path.suffix + '.tmp')
        try:
            with open(tmp_path, 'w') as f:
                json.dump(data, f, indent=2)
            tmp_path.replace(path)
        except (OSError, TypeError, ValueError) as e:
            raise StoreError(f"Error saving {path}: {e}") from e

    def _load(self) -> None:
        """Load all store files from disk (corrupt rows are skipped)."""
        for symbol, rows in self._read(LEVELS_FILE).items():
            try:
                self._levels[symbol] = [KeyLevel.from_dict(r) for r in rows]
            except (TypeError, ValueError) as e:
                logger.error(f"Skipping stored levels for {symbol}: {e}")

        for symbol, by_tf in self._read(ANALYSES_FILE).items():
            try:
                self._analyses[symbol] = {
                    tf: TimeframeAnalysis.from_dict(r) for tf, r in by_tf.items()
                }
            except (TypeError, ValueError, AttributeError) as e:
                logger.error(f"Skipping stored analyses for {symbol}: {e}")

        for symbol, row in self._read(SETUPS_FILE).items():
            try:
                self._setups[symbol] = DetectedSetup.from_dict(row)
            except (TypeError, ValueError) as e:
                logger.error(f"Skipping stored setup for {symbol}: {e}")

        self._configs = {
            name: row for name, row in self._read(CONFIGS_FILE).items()
            if isinstance(row, dict)
        }

        logger.info(
            f"Loaded LTP store from {self.store_path}: "
            f"{len(self._levels)} level sets, {len(self._setups)} setups"
        )

    # =========================================================================
    # Key levels
    # =========================================================================

    def replace_levels(
        self,
        symbol: str,
        levels: Iterable[KeyLevel],
        ttl: timedelta = timedelta(hours=1),
        now: Optional[datetime] = None,
    ) -> List[KeyLevel]:
        """
        Replace every stored level for a symbol.

        Args:
            symbol: Ticker symbol
            levels: New levels
            ttl: Lifetime of the new levels
            now: Creation time (defaults to now)

        Returns:
            Stored levels, stamped with symbol, created_at and expires_at

        Raises:
            StoreError: If the write fails (previous levels are kept)
        """
        symbol = symbol.upper()
        now = now or datetime.now()
        stamped = [level.with_expiry(symbol, ttl, now) for level in levels]

        with self._lock:
            updated = dict(self._levels)
            updated[symbol] = stamped
            self._write(LEVELS_FILE, {
                s: [level.to_dict() for level in rows] for s, rows in updated.items()
            })
            self._levels = updated

        logger.debug(f"Stored {len(stamped)} levels for {symbol}")
        return list(stamped)

    def get_active_levels(self, symbol: str, now: Optional[datetime] = None) -> List[KeyLevel]:
        """Non-expired levels for a symbol."""
        now = now or datetime.now()
        with self._lock:
            levels = self._levels.get(symbol.upper(), [])
            return [level for level in levels if not level.is_expired(now)]

    # =========================================================================
    # Timeframe analyses
    # =========================================================================

    def upsert_timeframe_analysis(self, analysis: TimeframeAnalysis) -> TimeframeAnalysis:
        """
        Insert or replace the analysis keyed by (symbol, timeframe).

        Raises:
            StoreError: If the write fails
        """
        symbol = analysis.symbol.upper()
        with self._lock:
            updated = {s: dict(by_tf) for s, by_tf in self._analyses.items()}
            updated.setdefault(symbol, {})[analysis.timeframe] = analysis
            self._write(ANALYSES_FILE, {
                s: {tf: a.to_dict() for tf, a in by_tf.items()}
                for s, by_tf in updated.items()
            })
            self._analyses = updated
        return analysis

    def get_fresh_analyses(
        self,
        symbol: str,
        max_age: timedelta = timedelta(minutes=30),
        now: Optional[datetime] = None,
    ) -> List[TimeframeAnalysis]:
        """Analyses for a symbol calculated within max_age."""
        now = now or datetime.now()
        with self._lock:
            by_tf = self._analyses.get(symbol.upper(), {})
            return [a for a in by_tf.values() if a.is_fresh(max_age, now)]

    # =========================================================================
    # Detected setups
    # =========================================================================

    def upsert_setup(self, setup: DetectedSetup) -> DetectedSetup:
        """
        Insert or replace the live setup for a symbol.

        Raises:
            StoreError: If the write fails (previous setup is kept)
        """
        symbol = setup.symbol.upper()
        with self._lock:
            updated = dict(self._setups)
            updated[symbol] = setup
            self._write(SETUPS_FILE, {s: row.to_dict() for s, row in updated.items()})
            self._setups = updated

        logger.debug(f"Stored {setup.setup_stage} setup for {symbol} ({setup.confluence_score})")
        return setup

    def get_setup(self, symbol: str) -> Optional[DetectedSetup]:
        with self._lock:
            return self._setups.get(symbol.upper())

    def get_detected_setups(
        self,
        symbols: Optional[Iterable[str]] = None,
        max_age: timedelta = DEFAULT_SETUP_MAX_AGE,
        now: Optional[datetime] = None,
    ) -> List[DetectedSetup]:
        """
        Setups detected within max_age, highest confluence first.

        Args:
            symbols: Restrict to these symbols (all when None)
            max_age: Maximum setup age
            now: Reference time (defaults to now)
        """
        cutoff = (now or datetime.now()) - max_age
        wanted = {s.upper() for s in symbols} if symbols is not None else None

        with self._lock:
            setups = [
                setup for symbol, setup in self._setups.items()
                if setup.detected_at >= cutoff and (wanted is None or symbol in wanted)
            ]

        return sorted(setups, key=lambda s: s.confluence_score, reverse=True)

    # =========================================================================
    # Strategy configs
    # =========================================================================

    def save_strategy_config(
        self,
        name: str,
        config: Mapping[str, Any],
        is_active: bool = True,
    ) -> None:
        """
        Store a named strategy config document.

        Raises:
            StoreError: If the write fails
        """
        with self._lock:
            updated = dict(self._configs)
            updated[name] = {
                'config': dict(config),
                'is_active': bool(is_active),
                'updated_at': datetime.now().isoformat(),
            }
            self._write(CONFIGS_FILE, updated)
            self._configs = updated
        logger.info(f"Saved strategy config '{name}' (active={is_active})")

    def get_active_strategy_configs(self) -> Dict[str, Dict[str, Any]]:
        """Active strategy configs as name -> config dict."""
        with self._lock:
            return {
                name: dict(row.get('config') or {})
                for name, row in self._configs.items()
                if row.get('is_active')
            }

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'symbols_with_levels': len(self._levels),
                'symbols_with_analyses': len(self._analyses),
                'setups': len(self._setups),
                'ready_setups': sum(1 for s in self._setups.values() if s.is_ready),
                'strategy_configs': len(self._configs),
            }
