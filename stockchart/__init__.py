"""Historical stock price chart service."""

__version__ = "1.0.0"
