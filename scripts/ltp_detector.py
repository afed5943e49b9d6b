#!/usr/bin/env python
"""
LTP Setup Detector - Command Line Entry Point

Detect Level / Trend / Patience setups on a watchlist.

Usage:
    # Start continuous detection (runs until Ctrl+C)
    python scripts/ltp_detector.py start

    # Start with a custom watchlist and interval
    python scripts/ltp_detector.py start --symbols SPY,QQQ --interval 120

    # Run a single detection cycle
    python scripts/ltp_detector.py scan

    # Analyze one symbol (a fresh store needs a pass for levels and one for MTF)
    python scripts/ltp_detector.py analyze NVDA --passes 3

    # Show setups from the last 30 minutes
    python scripts/ltp_detector.py setups

    # Show store status
    python scripts/ltp_detector.py status

Environment Variables:
    ALPACA_API_KEY / ALPACA_SECRET_KEY: Alpaca market data credentials
    LTP_SYMBOLS: Comma-separated watchlist (default: SPY,QQQ,NVDA,...)
    LTP_DETECTION_INTERVAL: Seconds between cycles (default: 60)
    LTP_STORE_PATH: Store directory (default: data/ltp)
    LTP_LOG_LEVEL: Log level (default: INFO)
    LTP_DATA_FEED: Alpaca data feed, iex or sip (default: iex)
"""

import argparse
import logging
import signal
import sys
from pathlib import Path
from threading import Event
from typing import List

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config.settings import load_config
from ltp.detection import DetectorConfig, LTPDetectionEngine, LTPStore
from ltp.exceptions import MarketDataError
from ltp.models import DetectedSetup

logger = logging.getLogger(__name__)


def setup_logging(level: str = 'INFO') -> None:
    """Configure logging for the detector."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )


def load_detector_config(args: argparse.Namespace) -> DetectorConfig:
    config = DetectorConfig.from_env()
    if getattr(args, 'symbols', None):
        config.symbols = [s.strip().upper() for s in args.symbols.split(',') if s.strip()]
    if getattr(args, 'interval', None):
        config.detection_interval_seconds = args.interval
    return config


def build_engine(config: DetectorConfig) -> LTPDetectionEngine:
    """Create an initialized engine backed by Alpaca market data."""
    from integrations.alpaca_market_data import AlpacaMarketDataClient

    market_data = AlpacaMarketDataClient(data_feed=config.data_feed)
    if not market_data.is_configured():
        print("Warning: Alpaca credentials missing, every symbol will be skipped")

    engine = LTPDetectionEngine(market_data, LTPStore(config.store_path), detector_config=config)
    engine.initialize()
    return engine


def print_setups(setups: List[DetectedSetup]) -> None:
    if not setups:
        print("\nNo setups found")
        return

    print(f"\nFound {len(setups)} setup(s):")
    for s in setups:
        level = (
            f"{s.primary_level_type.upper()} ${s.primary_level_price:.2f}"
            if s.primary_level_type and s.primary_level_price is not None
            else 'no level'
        )
        print(
            f"  [{s.setup_stage.upper():7}] {s.symbol:6} {s.direction:7} "
            f"LTP {s.confluence_score:3} ({s.grade}) "
            f"L{s.level_score}/T{s.trend_score}/P{s.patience_score} @ {level}"
        )
        if s.suggested_entry is not None:
            print(
                f"            entry ${s.suggested_entry:.2f} stop ${s.suggested_stop:.2f} "
                f"T1 ${s.target_1:.2f} T2 ${s.target_2:.2f} T3 ${s.target_3:.2f} "
                f"(R:R {s.risk_reward})"
            )
        if s.coach_note:
            print(f"            {s.coach_note}")


def cmd_start(args: argparse.Namespace) -> int:
    """Start continuous detection."""
    print("=" * 60)
    print("LTP Setup Detector")
    print("=" * 60)

    config = load_detector_config(args)

    issues = config.validate()
    if issues:
        print("\nConfiguration Issues:")
        for issue in issues:
            print(f"  [!] {issue}")

    print(f"\nConfiguration:")
    print(f"  Symbols: {', '.join(config.symbols)}")
    print(f"  Interval: {config.detection_interval_seconds}s")
    print(f"  Store: {config.store_path}")
    print(f"  Feed: {config.data_feed}")
    print()

    shutdown_event = Event()

    def handle_shutdown(signum, frame):
        logger.info(f"Received signal {signum}, initiating shutdown...")
        shutdown_event.set()

    signal.signal(signal.SIGINT, handle_shutdown)
    signal.signal(signal.SIGTERM, handle_shutdown)

    try:
        engine = build_engine(config)
        print("Starting detection (Ctrl+C to stop)...")
        engine.start_continuous_detection(config.detection_interval_seconds)

        while not shutdown_event.is_set():
            shutdown_event.wait(timeout=1.0)

        engine.stop_continuous_detection()

    except KeyboardInterrupt:
        print("\nShutdown requested")
        return 0

    except Exception as e:
        print(f"\nError: {e}")
        return 1

    return 0


def cmd_scan(args: argparse.Namespace) -> int:
    """Run a single detection cycle."""
    config = load_detector_config(args)
    engine = build_engine(config)

    print("Running detection cycle...")
    print(f"Symbols: {', '.join(engine.get_watchlist())}")

    print_setups(engine.run_detection_cycle())
    return 0


def cmd_analyze(args: argparse.Namespace) -> int:
    """Analyze a single symbol."""
    config = load_detector_config(args)
    engine = build_engine(config)
    symbol = args.symbol.upper()

    setup = None
    for attempt in range(1, args.passes + 1):
        setup = engine.analyze_symbol(symbol)
        if setup is not None:
            break
        print(f"Pass {attempt}: refreshed data for {symbol}")

    if setup is None:
        print(f"\nNo setup for {symbol} (no quote or data still refreshing)")
        return 1

    print_setups([setup])

    try:
        explanation = engine.explain_symbol(symbol)
    except MarketDataError as e:
        logger.error(f"Score breakdown unavailable for {symbol}: {e}")
        explanation = None

    if explanation is not None:
        print("\nScore breakdown:")
        for component, reason in explanation.reasons.items():
            print(f"  {component:8} {explanation.scores[component]:3}  {reason}")
        print(f"  {'overall':8} {explanation.scores['overall']:3}  grade {explanation.grade}")
    return 0


def cmd_setups(args: argparse.Namespace) -> int:
    """Show recent setups from the store."""
    config = load_detector_config(args)
    store = LTPStore(config.store_path)

    symbols = [s.strip().upper() for s in args.symbols.split(',')] if args.symbols else None
    print_setups(store.get_detected_setups(symbols=symbols))
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Show store status."""
    config = load_detector_config(args)
    store = LTPStore(config.store_path)

    stats = store.get_stats()

    print("LTP Store Status")
    print("=" * 40)
    print(f"Store: {config.store_path}")
    print(f"Symbols with levels: {stats['symbols_with_levels']}")
    print(f"Symbols with MTF analysis: {stats['symbols_with_analyses']}")
    print(f"Setups: {stats['setups']} ({stats['ready_setups']} ready)")
    print(f"Strategy configs: {stats['strategy_configs']}")

    active = store.get_active_strategy_configs()
    if active:
        print("\nActive Configs:")
        for name in sorted(active):
            print(f"  {name}")

    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='LTP Setup Detector',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    parser.add_argument(
        '--log-level',
        default=None,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: LTP_LOG_LEVEL or INFO)'
    )

    subparsers = parser.add_subparsers(dest='command', help='Command')

    start_parser = subparsers.add_parser('start', help='Start continuous detection')
    start_parser.add_argument('--symbols', help='Comma-separated symbols to watch')
    start_parser.add_argument('--interval', type=int, help='Seconds between cycles')

    scan_parser = subparsers.add_parser('scan', help='Run one detection cycle')
    scan_parser.add_argument('--symbols', help='Comma-separated symbols to scan')

    analyze_parser = subparsers.add_parser('analyze', help='Analyze one symbol')
    analyze_parser.add_argument('symbol', help='Ticker symbol (e.g., SPY)')
    analyze_parser.add_argument(
        '--passes', '-p',
        type=int,
        default=3,
        help='Max attempts while levels/MTF data are refreshed'
    )

    setups_parser = subparsers.add_parser('setups', help='Show recent setups')
    setups_parser.add_argument('--symbols', help='Comma-separated symbols to show')

    subparsers.add_parser('status', help='Show store status')

    args = parser.parse_args()

    load_config()
    setup_logging(args.log_level or DetectorConfig.from_env().log_level)

    if args.command == 'start':
        return cmd_start(args)
    elif args.command == 'scan':
        return cmd_scan(args)
    elif args.command == 'analyze':
        return cmd_analyze(args)
    elif args.command == 'setups':
        return cmd_setups(args)
    elif args.command == 'status':
        return cmd_status(args)
    else:
        parser.print_help()
        return 0


if __name__ == '__main__':
    sys.exit(main())
