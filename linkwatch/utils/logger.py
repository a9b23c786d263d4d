# Logger - Centralized Logging System
# One configured logger per component name, shared across the process

"""
Logger Module

Responsibilities:
- Setup named loggers with a singleton registry
- Configure log levels
- Configure log handlers (console, rotating file)
- Log formatting
- Prevent duplicate handler registration

Serial traffic is logged at DEBUG, so it only reaches the file handler
unless the console level is lowered as well.
"""

import logging
import sys
import atexit
from pathlib import Path
from logging.handlers import RotatingFileHandler

# Registry of loggers that already have their handlers
_configured_loggers = {}

# Applied to loggers created after configure_defaults() is called
_defaults = {"level": "INFO", "log_file": None}

def configure_defaults(level: str = "INFO", log_file: str = None):
    """
    Set the level and log file used by loggers configured from now on

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path shared by all component loggers
    """
    _defaults["level"] = level
    _defaults["log_file"] = log_file

def setup_logger(name: str = "linkwatch", level: str = None, log_file: str = None):
    """
    Setup logger with console and file handlers (singleton pattern)

    Returns the existing logger if one was already configured under this
    name, so components can call this freely from their constructors.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path

    Returns:
        Configured logger instance (existing or new)
    """
    if name in _configured_loggers:
        return _configured_loggers[name]

    logger = logging.getLogger(name)

    if logger.handlers:
        _configured_loggers[name] = logger
        return logger

    level = level or _defaults["level"]
    log_file = log_file or _defaults["log_file"]

    logger.setLevel(getattr(logging, level.upper()))
    logger.propagate = False  # Prevent propagation to root logger

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(max(logging.INFO, logger.level))
    logger.addHandler(console_handler)

    # File handler with rotation (if specified)
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10485760,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(logging.DEBUG)  # File gets all levels
        logger.addHandler(file_handler)

    def cleanup_handlers():
        """Close all handlers properly to prevent resource leaks."""
        for handler in logger.handlers[:]:
            try:
                handler.close()
                logger.removeHandler(handler)
            except Exception:
                pass  # Ignore errors during cleanup

    atexit.register(cleanup_handlers)

    _configured_loggers[name] = logger

    return logger
