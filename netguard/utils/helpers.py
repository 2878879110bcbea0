"""
============================================================================
NETGUARD MONITOR - HELPERS UTILITY
============================================================================
Formatting helpers shared by the probe, alert and bot modules.
============================================================================
"""

import re
import secrets
import time
from typing import Iterable, List, Optional, Tuple
from urllib.parse import quote


# ============================================================================
# TIME UTILITIES
# ============================================================================

class TimeHelper:
    """
    Time formatting utilities.
    """

    @staticmethod
    def seconds_to_human_readable(seconds: float) -> str:
        """
        Convert seconds to human-readable format.

        Args:
            seconds: Number of seconds

        Returns:
            Human-readable string (e.g., "2h 30m 15s")
        """
        seconds = int(seconds)
        if seconds < 0:
            return "0s"

        days, remainder = divmod(seconds, 86400)
        hours, remainder = divmod(remainder, 3600)
        minutes, secs = divmod(remainder, 60)

        parts = []
        if days > 0:
            parts.append(f"{days}d")
        if hours > 0:
            parts.append(f"{hours}h")
        if minutes > 0:
            parts.append(f"{minutes}m")
        if secs > 0 or not parts:
            parts.append(f"{secs}s")

        return " ".join(parts)

    @staticmethod
    def get_time_ago(timestamp: Optional[float], now: Optional[float] = None) -> str:
        """
        Get human-readable time ago string for an epoch timestamp.

        Args:
            timestamp: Past epoch seconds, or None
            now: Reference time (defaults to the wall clock)

        Returns:
            String like "5 minutes ago", or "never"
        """
        if timestamp is None:
            return "never"

        seconds = max(0.0, (now if now is not None else time.time()) - timestamp)

        if seconds < 60:
            return f"{int(seconds)} seconds ago"
        elif seconds < 3600:
            minutes = int(seconds / 60)
            return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
        elif seconds < 86400:
            hours = int(seconds / 3600)
            return f"{hours} hour{'s' if hours != 1 else ''} ago"
        else:
            days = int(seconds / 86400)
            return f"{days} day{'s' if days != 1 else ''} ago"


# ============================================================================
# STRING UTILITIES
# ============================================================================

class StringHelper:
    """
    String manipulation utilities for Telegram messages.
    """

    @staticmethod
    def strip_markdown(text: str) -> str:
        """
        Remove the markup characters used by legacy Markdown.

        Used for the plain-text retry after Telegram rejects a message
        it cannot parse.
        """
        return re.sub(r"[*_`]", "", text)

    @staticmethod
    def clean_node_name(name: str) -> str:
        """
        Replace characters that break legacy Markdown inside node names.

        Args:
            name: Raw node name from the panel

        Returns:
            Name safe to embed in a Markdown message
        """
        return re.sub(r"[_*`\[\]]", " ", name)

    @staticmethod
    def truncated_lines(
        lines: Iterable[str],
        limit: int,
    ) -> Tuple[List[str], int]:
        """
        Keep the first ``limit`` lines and count the rest.

        Returns:
            (kept lines, number of dropped lines)
        """
        lines = list(lines)
        return lines[:limit], max(0, len(lines) - limit)

    @staticmethod
    def cache_bust(url: str) -> str:
        """Append a random query parameter so caches cannot answer the request."""
        separator = "&" if "?" in url else "?"
        return f"{url}{separator}t={int(time.time() * 1000)}-{secrets.token_hex(4)}"

    @staticmethod
    def relay_url(prefix: str, target: str) -> str:
        """Build a relay request URL: prefix followed by the encoded target."""
        return f"{prefix}{quote(target, safe='')}"


# ============================================================================
# SPEED UTILITIES
# ============================================================================

def format_speed(kbps: float) -> str:
    """
    Format a speed for display.

    Args:
        kbps: Speed in kilobits per second

    Returns:
        "x.xx Mbps" at or above 1000 Kbps, otherwise "N Kbps"
    """
    if kbps >= 1000:
        return f"{kbps / 1000:.2f} Mbps"
    return f"{round(kbps)} Kbps"


def bytes_per_second_to_kbps(bytes_per_second: float) -> int:
    """Convert a byte rate into rounded kilobits per second."""
    return round(bytes_per_second * 8 / 1000)
