"""Logging configuration and utilities."""
import logging
import sys
import time
from pathlib import Path
from typing import Optional

from pythonjsonlogger import jsonlogger


class LocalTimeJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that stamps records with local time."""
    
    converter = time.localtime


def _build_formatter() -> LocalTimeJsonFormatter:
    return LocalTimeJsonFormatter(
        "%(asctime)s %(name)s %(levelname)s %(message)s",
        timestamp=True,
        json_ensure_ascii=False
    )


def setup_logger(
    name: str,
    log_level: str = "INFO",
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Set up a logger with JSON formatting.
    
    Args:
        name: Logger name (empty string for root logger)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file
        
    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    level = getattr(logging, log_level.upper())
    logger.setLevel(level)
    
    # Avoid duplicate handlers
    if logger.handlers:
        return logger
    
    formatter = _build_formatter()
    
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)
    logger.addHandler(console_handler)
    
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setFormatter(formatter)
        file_handler.setLevel(level)
        logger.addHandler(file_handler)
    
    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get an existing logger or create a new one.
    
    Propagates to the root logger once it has been set up, otherwise
    attaches its own JSON console handler.
    
    Args:
        name: Logger name
        
    Returns:
        Logger instance
    """
    logger = logging.getLogger(name)
    
    if logging.root.handlers:
        logger.propagate = True
        return logger
    
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(_build_formatter())
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        logger.propagate = False
    
    return logger


# Libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "openai._base_client")


def configure_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """Configure the root logger for the service and quiet per-request library logs."""
    root = setup_logger("", log_level=log_level, log_file=log_file)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(root.level, logging.WARNING))
    return root
