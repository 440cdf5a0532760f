"""Market data providers, routed by asset class."""
import logging
import time

from models.enums import AssetClass
from monitor.api.coingecko import CoinGeckoClient
from monitor.api.yfinance_client import YFinanceClient
from monitor.errors import FetchFailure

logger = logging.getLogger("guardian.api")


class PriceRegistry:
    """Implements ``fetch_price(asset) -> PriceQuote`` over per-class providers."""

    def __init__(self, config=None, providers=None):
        cfg = config or {}
        api_cfg = cfg.get("api", {})
        if providers is None:
            providers = {
                AssetClass.CRYPTO: CoinGeckoClient(
                    rate_limit=api_cfg.get("coingecko", {}).get("rate_limit", 30),
                    vs_currency=api_cfg.get("coingecko", {}).get("vs_currency", "usd"),
                ),
                AssetClass.ETF: YFinanceClient(
                    period=api_cfg.get("yfinance", {}).get("period", "5d"),
                ),
            }
        self.providers = providers

    def fetch_price(self, asset):
        provider = self.providers.get(AssetClass(asset.asset_class))
        if provider is None:
            raise FetchFailure(f"No price provider for {asset.asset_class}", symbol=asset.symbol)
        return provider.fetch_price(asset)

    def health_check(self, assets):
        """Try one fetch per asset and report reachability and latency."""
        checks = {}
        for asset in assets:
            start = time.monotonic()
            try:
                quote = self.fetch_price(asset)
                checks[asset.symbol] = {"reachable": True, "price": quote.price,
                                        "latency_ms": int((time.monotonic() - start) * 1000)}
            except FetchFailure as e:
                checks[asset.symbol] = {"reachable": False, "error": str(e),
                                        "latency_ms": int((time.monotonic() - start) * 1000)}
        return checks

    def close(self):
        for provider in self.providers.values():
            if hasattr(provider, "close"):
                provider.close()
