"""Core module initialization."""

from .logging_config import setup_logging
from .config_manager import ConfigManager, TableCodecConfig

__all__ = [
    "ConfigManager",
    "TableCodecConfig",
    "setup_logging",
]
