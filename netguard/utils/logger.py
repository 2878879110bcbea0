"""
============================================================================
NETGUARD MONITOR - LOGGING UTILITY
============================================================================
Logging setup on top of loguru: console sink, optional rotating file
sink, separate error file and optional JSON serialization.

Components obtain a bound logger with ``get_logger("Component")`` and
prefix their messages with ``[Component]``.
============================================================================
"""

import sys
import time
from functools import wraps
from typing import Optional

from loguru import logger

from netguard.config.settings import LoggingSettings


CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[name]}:{function}:{line} - {message}"


# ============================================================================
# LOGGER CONFIGURATION
# ============================================================================

def setup_logging(config: Optional[LoggingSettings] = None) -> None:
    """
    Configure loguru sinks from the logging settings.

    Safe to call more than once: existing sinks are removed first.

    Args:
        config: Logging section of the settings (defaults from environment)
    """
    config = config or LoggingSettings()

    # Remove default loguru handler
    logger.remove()
    logger.configure(extra={"name": "netguard"})

    log_level = config.level.value

    # Console Handler
    if config.console_enabled:
        logger.add(
            sys.stderr,
            format=CONSOLE_FORMAT,
            level=log_level,
            colorize=config.console_colored,
            backtrace=True,
            diagnose=False,
        )

    # File Handler
    if config.file_enabled:
        config.file_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            config.file_path,
            format=FILE_FORMAT,
            level=log_level,
            rotation=config.file_rotation,
            retention=config.file_retention,
            compression="zip",
            serialize=config.json_enabled,
            backtrace=True,
            diagnose=False,
        )

    # Error log file (separate file for errors)
    if config.error_file_enabled:
        config.error_file_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            config.error_file_path,
            format=FILE_FORMAT,
            level="ERROR",
            rotation="1 day",
            retention="7 days",
            compression="zip",
            backtrace=True,
            diagnose=False,
        )

    log = get_logger("Logging")
    log.debug(f"[Logging] Level: {log_level}")
    log.debug(f"[Logging] Console: {config.console_enabled} | File: {config.file_enabled}")


def get_logger(name: Optional[str] = None):
    """
    Get logger instance with optional name.

    Args:
        name: Component name shown in every record

    Returns:
        Bound loguru logger
    """
    return logger.bind(name=name or "netguard")


# ============================================================================
# LOG DECORATORS
# ============================================================================

def log_execution_time(func):
    """
    Decorator to log coroutine execution time at debug level.

    Args:
        func: Coroutine function to decorate

    Returns:
        Decorated function
    """
    log = get_logger("Timing")

    @wraps(func)
    async def wrapper(*args, **kwargs):
        start_time = time.perf_counter()
        try:
            return await func(*args, **kwargs)
        finally:
            log.debug(
                f"{func.__qualname__} finished in {time.perf_counter() - start_time:.4f}s"
            )

    return wrapper
