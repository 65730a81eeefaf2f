"""Configuration package - settings and logging."""

from .logging import configure_logging, get_logger
from .settings import Settings, StrategyMode, get_settings

__all__ = [
    "Settings",
    "StrategyMode",
    "get_settings",
    "configure_logging",
    "get_logger"
]
