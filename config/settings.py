"""
Centralized Configuration Loading for the LTP detector.

- Single place that reads the project root .env
- Validates market data credentials at startup (warn, or raise when strict)

Usage:
    from config.settings import load_config, get_alpaca_credentials

    # At app startup (call once)
    load_config()

    # Get credentials as needed
    creds = get_alpaca_credentials()
"""

import os
from pathlib import Path
from typing import Dict

from ltp.exceptions import ConfigError

# Flag to track if config has been loaded
_CONFIG_LOADED = False

REQUIRED_VARS = [
    'ALPACA_API_KEY',
    'ALPACA_SECRET_KEY',
]


def load_config(force_reload: bool = False, strict: bool = False) -> None:
    """
    Load environment variables from the project root .env file.

    Variables already present in the environment (containers, CI) win
    over the file, and a missing .env is not an error.

    Args:
        force_reload: If True, reload even if already loaded
        strict: Raise ConfigError when required variables are missing

    Raises:
        ConfigError: If strict=True and credentials are missing
    """
    global _CONFIG_LOADED

    if _CONFIG_LOADED and not force_reload:
        return

    from dotenv import load_dotenv

    project_root = Path(__file__).parent.parent
    env_path = project_root / '.env'

    if env_path.exists():
        load_dotenv(env_path, override=False)

    _CONFIG_LOADED = True

    _validate_required_vars(strict=strict)


def _validate_required_vars(strict: bool = False) -> None:
    """
    Validate that all required environment variables are set.

    Args:
        strict: If True, raise ConfigError on missing vars. If False, warn only.
    """
    import warnings

    missing = []
    for var in REQUIRED_VARS:
        value = os.getenv(var)
        if not value or value.strip() == '':
            missing.append(var)

    if missing:
        msg = f"Missing environment variables: {missing}. Live market data will be unavailable."
        if strict:
            raise ConfigError(msg + " Check your .env file at project root.")
        warnings.warn(msg, UserWarning)


def get_alpaca_credentials() -> Dict[str, str]:
    """
    Get Alpaca market data credentials.

    Returns:
        Dict with api_key, secret_key and data_feed ('iex' unless
        ALPACA_DATA_FEED / LTP_DATA_FEED says otherwise)
    """
    load_config()

    return {
        'api_key': os.getenv('ALPACA_API_KEY', ''),
        'secret_key': os.getenv('ALPACA_SECRET_KEY', ''),
        'data_feed': os.getenv('LTP_DATA_FEED') or os.getenv('ALPACA_DATA_FEED', 'iex'),
    }


def has_alpaca_credentials() -> bool:
    creds = get_alpaca_credentials()
    return bool(creds['api_key'] and creds['secret_key'])


def is_config_loaded() -> bool:
    """Check if configuration has been loaded."""
    return _CONFIG_LOADED
