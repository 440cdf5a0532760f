"""Drawdown level ladders, one per asset class, loaded from config."""
import logging

from models.enums import AssetClass
from models.levels import LadderStep

logger = logging.getLogger("guardian.alerts.ladders")

DEFAULT_LADDERS = {
    "ETF": [
        {"level": -5, "percentage": 30},
        {"level": -10, "percentage": 20},
        {"level": -15, "percentage": 10},
        {"level": -20, "percentage": 5},
        {"level": -25, "percentage": 5},
        {"level": -30, "percentage": 10},
        {"level": -50, "percentage": 50},
    ],
    "CRYPTO": [
        {"level": -10, "percentage": 20},
        {"level": -20, "percentage": 30},
        {"level": -30, "percentage": 25},
        {"level": -40, "percentage": 15},
        {"level": -50, "percentage": 10},
    ],
}


class LadderBook:
    """Read-only, class-scoped ladders. Steps are kept ordered shallow to deep."""

    def __init__(self, raw_ladders=None):
        raw = DEFAULT_LADDERS if raw_ladders is None else raw_ladders
        self.ladders = {}
        for class_name, raw_steps in raw.items():
            try:
                asset_class = AssetClass(str(class_name).upper())
            except ValueError:
                logger.warning(f"Ignoring ladder for unknown asset class: {class_name}")
                continue
            self.ladders[asset_class] = self._parse_steps(asset_class, raw_steps or [])
        logger.debug(f"Loaded ladders for {', '.join(c.value for c in self.ladders)}")

    @staticmethod
    def _parse_steps(asset_class, raw_steps):
        steps = []
        for s in raw_steps:
            level = float(s["level"])
            percentage = float(s.get("percentage", 0))
            if level >= 0:
                logger.warning(f"{asset_class.value} ladder: level {level} must be negative, skipped")
                continue
            steps.append(LadderStep(level=level, percentage=percentage))
        steps.sort(key=lambda st: st.level, reverse=True)
        return steps

    def for_class(self, asset_class):
        return list(self.ladders.get(AssetClass(asset_class), []))

    def step(self, asset_class, level):
        for s in self.for_class(asset_class):
            if s.level == float(level):
                return s
        return None
