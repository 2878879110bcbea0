"""
NetGuard Monitor

VPN node health monitoring with Telegram alerts and client-side
bandwidth probing.
"""

__version__ = "1.2.0"
