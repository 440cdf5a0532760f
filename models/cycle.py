"""Per-cycle outcome records."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class AssetOutcome:
    symbol: str
    ok: bool = False
    skipped: bool = False
    error: str = ""
    price: Optional[float] = None
    peak_price: Optional[float] = None
    drawdown_pct: Optional[float] = None
    peak_updated: bool = False
    alert: object = None
    newly_available: list = field(default_factory=list)
    reminders: list = field(default_factory=list)


@dataclass
class CycleSummary:
    started_at: datetime
    finished_at: Optional[datetime] = None
    outcomes: list = field(default_factory=list)

    @property
    def succeeded(self):
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self):
        return sum(1 for o in self.outcomes if not o.ok and not o.skipped)

    @property
    def skipped(self):
        return sum(1 for o in self.outcomes if o.skipped)

    @property
    def total(self):
        return len(self.outcomes)

    @property
    def alerts(self):
        return [o.alert for o in self.outcomes if o.alert is not None]

    def to_dict(self):
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "total": self.total,
            "assets": [
                {
                    "symbol": o.symbol,
                    "ok": o.ok,
                    "skipped": o.skipped,
                    "error": o.error,
                    "price": o.price,
                    "peak_price": o.peak_price,
                    "drawdown_pct": o.drawdown_pct,
                    "peak_updated": o.peak_updated,
                    "alert": o.alert.kind.value if o.alert else None,
                    "newly_available": [s.level for s in o.newly_available],
                    "reminders": [s.level for s in o.reminders],
                }
                for o in self.outcomes
            ],
        }
