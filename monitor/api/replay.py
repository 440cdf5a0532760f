"""Scripted price source for offline simulation."""
from datetime import datetime, timedelta, timezone

from models.assets import PriceQuote
from monitor.errors import FetchFailure


class ReplayClock:
    """Manually advanced clock; callable like ``datetime.now(timezone.utc)``."""

    def __init__(self, start=None):
        self.now = start or datetime.now(timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, minutes):
        self.now += timedelta(minutes=minutes)
        return self.now


class ReplayProvider:
    """Serves queued prices per symbol, one per fetch, stamped by ``clock``."""

    def __init__(self, prices=None, clock=None):
        self.queues = {sym: list(values) for sym, values in (prices or {}).items()}
        self.clock = clock or ReplayClock()
        self._last = {}

    def push(self, symbol, price):
        self.queues.setdefault(symbol, []).append(price)

    def fetch_price(self, asset):
        queue = self.queues.get(asset.symbol)
        if not queue:
            raise FetchFailure(f"No replay price queued for {asset.symbol}", symbol=asset.symbol)
        price = queue.pop(0)
        quote = PriceQuote(
            symbol=asset.symbol,
            price=float(price),
            previous_close=self._last.get(asset.symbol),
            as_of=self.clock(),
            source="replay",
        )
        self._last[asset.symbol] = quote.price
        return quote
