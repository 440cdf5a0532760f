"""Enums for asset classes, alert kinds and notification categories."""
from enum import Enum


class AssetClass(str, Enum):
    ETF = "ETF"
    CRYPTO = "CRYPTO"


class AlertKind(str, Enum):
    NEW_CROSSING = "NEW_CROSSING"
    VARIATION = "VARIATION"
    # Marker row written when the drawdown recovers above threshold and
    # alerts.reset_on_recovery is enabled. Never notified.
    RECOVERY = "RECOVERY"


class NotificationType(str, Enum):
    DRAWDOWN = "drawdown"
    LEVELS_AVAILABLE = "levels_available"
    LEVELS_REMINDER = "levels_reminder"
    TEST = "test"
