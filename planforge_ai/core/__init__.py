"""Shared infrastructure: settings and logging configuration."""

from .config import EngineConfig, ReasoningConfig, Settings, settings
from .logging_config import get_logger, setup_logging

__all__ = [
    "EngineConfig",
    "ReasoningConfig",
    "Settings",
    "settings",
    "get_logger",
    "setup_logging",
]
