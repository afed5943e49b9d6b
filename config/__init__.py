"""
Config package for the LTP detector.

Provides centralized configuration loading from the root .env file.
"""

from config.settings import (
    load_config,
    get_alpaca_credentials,
    has_alpaca_credentials,
    is_config_loaded,
)

__all__ = [
    'load_config',
    'get_alpaca_credentials',
    'has_alpaca_credentials',
    'is_config_loaded',
]
