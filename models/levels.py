"""Dataclasses for staged investment levels."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class LadderStep:
    level: float        # negative drawdown percent, e.g. -10.0
    percentage: float   # percent of the reserve buffer to deploy


@dataclass
class LevelState:
    symbol: str
    level: float
    peak_price: float
    percentage: float
    created_at: datetime
    used: bool = False
    used_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass
class LevelDecision:
    symbol: str
    drawdown_pct: float
    peak_price: float
    newly_available: list = field(default_factory=list)
    reminders: list = field(default_factory=list)

    @property
    def has_news(self):
        return bool(self.newly_available or self.reminders)
