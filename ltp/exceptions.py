"""Exception types raised by the LTP engine and its collaborators."""


class LTPError(Exception):
    """Base class for LTP engine errors."""


class MarketDataError(LTPError):
    """Market data provider failed to return a quote or bar series."""


class StoreError(LTPError):
    """Reading from or writing to the LTP store failed."""


class ConfigError(LTPError):
    """Configuration failed strict validation."""
