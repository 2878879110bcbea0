"""
Constants Module for NetGuard Monitor

Contains constant values, enumerations and message templates
used throughout the application.
"""

from __future__ import annotations

from enum import Enum
from typing import Final, List


class BotCommands(str, Enum):
    """
    Bot Commands Enumeration

    Defines all available bot commands with their descriptions.
    """

    START = "start"
    HELP = "help"
    SCAN = "scan"
    STATUS = "status"
    NODES = "nodes"
    PING = "ping"

    @classmethod
    def listed_commands(cls) -> List["BotCommands"]:
        """Commands shown in the help reply."""
        return [cls.SCAN, cls.STATUS, cls.NODES, cls.PING]

    @classmethod
    def get_description(cls, command: "BotCommands") -> str:
        """Get command description."""
        descriptions = {
            cls.START: "Show this command list",
            cls.HELP: "Show this command list",
            cls.SCAN: "Force immediate network scan",
            cls.STATUS: "View global system summary",
            cls.NODES: "List nodes (sorted by status)",
            cls.PING: "Check bot connectivity",
        }
        return descriptions.get(command, "No description available")

    @classmethod
    def get_emoji(cls, command: "BotCommands") -> str:
        emojis = {
            cls.SCAN: "🔍",
            cls.STATUS: "📊",
            cls.NODES: "🌐",
            cls.PING: "🏓",
        }
        return emojis.get(command, "•")


class Thresholds:
    """
    Classifier Thresholds

    Speeds are kilobits per second.
    """

    IDLE_CEILING_KBPS: Final[int] = 100
    GHOST_USER_THRESHOLD: Final[int] = 5
    THROTTLE_MIN_USERS: Final[int] = 3
    THROTTLE_KBPS_PER_USER: Final[int] = 20
    CONGESTION_MIN_USERS: Final[int] = 10
    CONGESTION_KBPS_PER_USER: Final[int] = 50

    # Node re-check feedback
    FEEDBACK_IDLE_MAX_USERS: Final[int] = 3
    FEEDBACK_IDLE_MAX_KBPS: Final[int] = 20


class StatusIcons:
    """Icons used when rendering node health in messages."""

    CRITICAL: Final[str] = "🔴"
    WARNING: Final[str] = "⚠️"
    HEALTHY: Final[str] = "🟢"


class MessageTemplates:
    """
    Message Templates

    Fixed texts for bot replies and analysis summaries.
    """

    # Fleet analysis
    GLOBAL_NOMINAL: Final[str] = "Monitoring active. All nodes are operating normally."
    GLOBAL_CRITICAL: Final[str] = (
        "Warning: {count} node(s) are likely blocked or hitting a speed limit."
    )
    GLOBAL_WARNING: Final[str] = "Some nodes show low traffic (idle mode)."
    RECOMMEND_NOMINAL: Final[str] = "No action needed."
    RECOMMEND_CRITICAL: Final[str] = "Check the offline nodes or rotate to a new port."
    RECOMMEND_WARNING: Final[str] = "Users may simply not be transferring data."

    # Node verdicts
    NODE_OFFLINE: Final[str] = "🔴 Server Offline / Unreachable"
    NODE_IDLE: Final[str] = "Idle (no users)"
    NODE_GHOST: Final[str] = "Low Data Flow ({users} users)"
    NODE_PASSIVE: Final[str] = "Passive / Idle Traffic"
    NODE_THROTTLED: Final[str] = "🚨 Speed Limit Suspected (<20Kbps/user)"
    NODE_CONGESTED: Final[str] = "High Load (Congestion Risk)"
    NODE_ACTIVE: Final[str] = "Active ({per_user} Kbps/user)"

    # Bot replies
    SCAN_STARTED: Final[str] = "🔄 *Scanning Network...*"
    SCAN_FAILED: Final[str] = "❌ Scan Failed. Check Panel URL/Token."
    NO_STATUS_DATA: Final[str] = "⚠️ No data yet. Use /scan to fetch first."
    NO_NODE_DATA: Final[str] = "⚠️ No node data yet. Use /scan first."
    PONG: Final[str] = "🏓 Pong!"
    CHAT_CONFIGURED: Final[str] = (
        "✅ *NetGuard Configured!*\n\nChat ID `{chat_id}` has been saved."
    )
    TEST_MESSAGE: Final[str] = (
        "✅ *NetGuard Test*\n\nYour Telegram configuration is working correctly."
    )

    # Notification errors
    CHAT_NOT_FOUND: Final[str] = (
        "Chat not found. Open the bot in Telegram and send /start, "
        "or use chat auto-detection."
    )
    BOT_FORBIDDEN: Final[str] = "Bot was blocked by user or kicked from group (403)."
    POLL_FORBIDDEN: Final[str] = "Access Denied (403). Bot blocked or removed."
    INVALID_TOKEN: Final[str] = "Invalid Bot Token."


class ProbeTexts:
    """Fallback texts for probe history diagnosis."""

    NOT_CONFIGURED_MESSAGE: Final[str] = (
        "AI API key not configured. Add a Gemini API key to enable diagnosis."
    )
    NOT_CONFIGURED_RECOMMENDATION: Final[str] = (
        "Use the local verdict or configure an API key."
    )
    UNAVAILABLE_MESSAGE: Final[str] = "AI analysis unavailable. Check your API key or quota."
    UNAVAILABLE_RECOMMENDATION: Final[str] = "Check your internet connection."
