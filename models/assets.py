"""Dataclasses for assets, peak records and price quotes."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from models.enums import AssetClass


def _utcnow():
    return datetime.now(timezone.utc)


def parse_timestamp(value):
    """Parse an ISO timestamp from the store into an aware UTC datetime."""
    if value is None or isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(value)
    if dt is not None and dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass(frozen=True)
class Asset:
    symbol: str
    name: str = ""
    asset_class: AssetClass = AssetClass.ETF
    provider_symbol: Optional[str] = None

    @classmethod
    def from_dict(cls, d):
        return cls(
            symbol=d["symbol"].upper(),
            name=d.get("name") or d["symbol"].upper(),
            asset_class=AssetClass(str(d.get("class", d.get("asset_class", "ETF"))).upper()),
            provider_symbol=d.get("provider_symbol"),
        )


@dataclass
class PeakRecord:
    symbol: str
    peak_price: float
    peak_observed_at: datetime
    start_price: float
    start_observed_at: datetime
    alert_threshold_pct: float = 15.0
    active: bool = True
    name: str = ""
    asset_class: AssetClass = AssetClass.ETF
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row):
        d = dict(row)
        return cls(
            symbol=d["symbol"],
            name=d.get("name") or "",
            asset_class=AssetClass(d.get("asset_class") or "ETF"),
            peak_price=d["peak_price"],
            peak_observed_at=parse_timestamp(d["peak_observed_at"]),
            start_price=d["start_price"],
            start_observed_at=parse_timestamp(d["start_observed_at"]),
            alert_threshold_pct=d["alert_threshold_pct"],
            active=bool(d["active"]),
            updated_at=parse_timestamp(d.get("updated_at")),
        )


@dataclass
class PeakUpdate:
    updated: bool
    peak: PeakRecord


@dataclass
class PriceQuote:
    symbol: str
    price: float
    previous_close: Optional[float] = None
    as_of: datetime = field(default_factory=_utcnow)
    source: str = ""

    @property
    def change(self):
        if self.previous_close is None:
            return None
        return self.price - self.previous_close

    @property
    def change_pct(self):
        if not self.previous_close:
            return None
        return (self.price - self.previous_close) / self.previous_close * 100
