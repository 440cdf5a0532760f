"""Dataclasses for drawdown alerts and alert decisions."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from models.enums import AlertKind


@dataclass
class DrawdownAlert:
    symbol: str
    drawdown_pct: float
    threshold_pct: float
    current_price: float
    peak_price: float
    kind: AlertKind = AlertKind.NEW_CROSSING
    asset_name: str = ""
    triggered_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    notified: bool = False
    id: Optional[int] = None

    @property
    def is_variation(self):
        return self.kind == AlertKind.VARIATION


@dataclass
class AlertDecision:
    """Outcome of one evaluation. ``alert`` is set only when one fired."""
    fire: bool
    kind: Optional[AlertKind] = None
    variation: Optional[float] = None
    reason: str = ""
    alert: Optional[DrawdownAlert] = None
