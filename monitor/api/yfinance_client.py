"""Yahoo Finance client for ETF prices.

Exchange-listed ETFs often need a venue suffix at Yahoo (``XDWD.MI``); set
``provider_symbol`` on the asset for those.
"""
import logging
from datetime import datetime, timezone

from models.assets import PriceQuote
from monitor.errors import FetchFailure

logger = logging.getLogger("guardian.yfinance")


class YFinanceClient:
    def __init__(self, period="5d", interval="1d"):
        self.period = period
        self.interval = interval

    @staticmethod
    def ticker_symbol(asset):
        return asset.provider_symbol or asset.symbol

    def fetch_price(self, asset):
        import yfinance as yf

        ticker = self.ticker_symbol(asset)
        try:
            df = yf.Ticker(ticker).history(period=self.period, interval=self.interval)
        except Exception as e:
            raise FetchFailure(f"yfinance fetch for {ticker} failed: {e}", symbol=asset.symbol) from e

        if df is None or df.empty:
            raise FetchFailure(f"yfinance returned no data for {ticker}", symbol=asset.symbol)

        closes = [float(c) for c in df["Close"].tolist() if c == c and c > 0]  # drop NaN
        if not closes:
            raise FetchFailure(f"yfinance returned no usable close for {ticker}", symbol=asset.symbol)

        logger.debug(f"yfinance {ticker}: {closes[-1]}")
        return PriceQuote(
            symbol=asset.symbol,
            price=closes[-1],
            previous_close=closes[-2] if len(closes) > 1 else None,
            # Bar timestamps are day-granular; stamp with fetch time so each
            # cycle keeps its own price row.
            as_of=datetime.now(timezone.utc),
            source="yfinance",
        )
