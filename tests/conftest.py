"""Shared test fixtures."""
import os
import sys
import pytest
import tempfile

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import datetime, timedelta, timezone

from models.database import Database
from models.assets import Asset, PriceQuote
from models.enums import AssetClass
from monitor.errors import FetchFailure

T0 = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    db = Database(db_path)
    db.connect()
    yield db
    db.close()
    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(db_path + suffix):
            os.unlink(db_path + suffix)


@pytest.fixture
def etf():
    return Asset(symbol="XYZ", name="Test ETF", asset_class=AssetClass.ETF)


@pytest.fixture
def crypto():
    return Asset(symbol="BTC", name="Bitcoin", asset_class=AssetClass.CRYPTO)


class FakeClock:
    """Callable clock that tests move forward by hand."""

    def __init__(self, start=T0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeMarketData:
    """Returns scripted prices per symbol; a symbol set to an exception raises it."""

    def __init__(self, clock, prices=None):
        self.clock = clock
        self.prices = dict(prices or {})
        self.calls = []

    def fetch_price(self, asset):
        self.calls.append(asset.symbol)
        value = self.prices.get(asset.symbol)
        if isinstance(value, Exception):
            raise value
        if value is None:
            raise FetchFailure(f"no price for {asset.symbol}", symbol=asset.symbol)
        return PriceQuote(symbol=asset.symbol, price=value, as_of=self.clock(), source="fake")


class RecordingChannel:
    """Notification channel that keeps what it was asked to send."""
    name = "recording"

    def __init__(self, ok=True, types=None):
        self.ok = ok
        self.types = set(types) if types else None
        self.sent = []

    def accepts(self, notification_type):
        return self.types is None or notification_type in self.types

    def send(self, recipients, title, body, data):
        self.sent.append({"recipients": list(recipients), "title": title, "body": body, "data": data})
        return self.ok


@pytest.fixture
def clock():
    return FakeClock()
