"""Shared utilities."""
from .logger import configure_logging, setup_logger, get_logger
from .cancellation_manager import CancellationManager, get_cancellation_manager

__all__ = [
    "configure_logging",
    "setup_logger",
    "get_logger",
    "CancellationManager",
    "get_cancellation_manager",
]
