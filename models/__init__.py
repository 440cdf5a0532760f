"""Data models."""
from models.enums import AssetClass, AlertKind, NotificationType
from models.assets import Asset, PeakRecord, PeakUpdate, PriceQuote
from models.alerts import DrawdownAlert, AlertDecision
from models.levels import LadderStep, LevelState, LevelDecision
from models.cycle import AssetOutcome, CycleSummary
