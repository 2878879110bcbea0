"""
Utilities Package for NetGuard Monitor

Logging setup and formatting helpers.
"""

from netguard.utils.logger import setup_logging, get_logger, log_execution_time
from netguard.utils.helpers import (
    TimeHelper,
    StringHelper,
    format_speed,
    bytes_per_second_to_kbps,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "log_execution_time",
    "TimeHelper",
    "StringHelper",
    "format_speed",
    "bytes_per_second_to_kbps",
]
