"""CoinGecko client for crypto spot prices."""
import logging
from datetime import datetime, timezone

from models.assets import PriceQuote
from monitor.errors import FetchFailure
from utils.http_client import HTTPClient, APIError
from utils.rate_limiter import RateLimiter

logger = logging.getLogger("guardian.coingecko")

COIN_IDS = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "SOL": "solana",
}


class CoinGeckoClient:
    def __init__(self, rate_limit=30, vs_currency="usd", http=None):
        self.vs_currency = vs_currency
        self.client = http or HTTPClient(
            base_url="https://api.coingecko.com/api/v3",
            rate_limiter=RateLimiter(rate_limit),
            source="coingecko",
        )

    @staticmethod
    def coin_id(asset):
        return asset.provider_symbol or COIN_IDS.get(asset.symbol, asset.symbol.lower())

    def fetch_price(self, asset):
        coin_id = self.coin_id(asset)
        try:
            data = self.client.get("/simple/price", params={
                "ids": coin_id,
                "vs_currencies": self.vs_currency,
                "include_24hr_change": "true",
            })
        except APIError as e:
            raise FetchFailure(f"CoinGecko request for {coin_id} failed: {e}", symbol=asset.symbol) from e

        coin = data.get(coin_id) if isinstance(data, dict) else None
        price = coin.get(self.vs_currency) if coin else None
        if not price:
            raise FetchFailure(f"CoinGecko returned no {self.vs_currency} price for {coin_id}",
                               symbol=asset.symbol)

        change_24h = coin.get(f"{self.vs_currency}_24h_change")
        previous = price / (1 + change_24h / 100) if change_24h is not None else None
        return PriceQuote(
            symbol=asset.symbol,
            price=float(price),
            previous_close=previous,
            as_of=datetime.now(timezone.utc),
            source="coingecko",
        )

    def close(self):
        self.client.close()
