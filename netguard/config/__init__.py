"""
Configuration Package for NetGuard Monitor

This package contains all configuration-related modules including:
- Settings management with environment variable support
- Constants, thresholds and message templates
"""

from netguard.config.settings import (
    Settings,
    PanelSettings,
    TelegramSettings,
    ScanSettings,
    ProbeSettings,
    EnrichmentSettings,
    StorageSettings,
    LoggingSettings,
    get_settings,
)

from netguard.config.constants import (
    BotCommands,
    Thresholds,
    StatusIcons,
    MessageTemplates,
    ProbeTexts,
)

__all__ = [
    # Settings
    "Settings",
    "PanelSettings",
    "TelegramSettings",
    "ScanSettings",
    "ProbeSettings",
    "EnrichmentSettings",
    "StorageSettings",
    "LoggingSettings",
    "get_settings",

    # Constants
    "BotCommands",
    "Thresholds",
    "StatusIcons",
    "MessageTemplates",
    "ProbeTexts",
]
