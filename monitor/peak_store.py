"""Per-asset peak tracking on top of the Database."""
import logging
from datetime import datetime, timezone

from models.assets import PeakUpdate
from models.enums import AssetClass
from monitor.errors import UnknownAsset

logger = logging.getLogger("guardian.peaks")


class PeakStore:
    """Reads and advances the historical peak of each provisioned asset."""

    def __init__(self, db, default_threshold_pct=15.0):
        self.db = db
        self.default_threshold_pct = default_threshold_pct

    def get_peak(self, symbol):
        return self.db.get_peak(symbol)

    def list_peaks(self):
        return self.db.list_peaks()

    def record_observation(self, symbol, price, observed_at=None):
        """Advance the peak if ``price`` beats it.

        Uses a compare-and-set in the store and always returns the record as
        re-read after the write, so a concurrent higher peak is never masked.
        """
        observed_at = observed_at or datetime.now(timezone.utc)
        if self.db.get_peak(symbol) is None:
            raise UnknownAsset(f"No peak record for {symbol}", symbol=symbol)

        updated = self.db.compare_and_set_peak(symbol, price, observed_at)
        peak = self.db.get_peak(symbol)
        if updated:
            logger.info(f"{symbol} new peak: {peak.peak_price}")
        return PeakUpdate(updated=updated, peak=peak)

    def provision(self, asset, start_price, observed_at=None, threshold_pct=None, active=True):
        """Create the peak record for ``asset`` seeded at ``start_price``.

        Returns the stored record; an existing record is returned unchanged.
        """
        if start_price is None or start_price <= 0:
            raise ValueError(f"start price for {asset.symbol} must be positive")
        observed_at = observed_at or datetime.now(timezone.utc)
        created = self.db.provision_asset(
            asset.symbol, asset.name, AssetClass(asset.asset_class), start_price, observed_at,
            threshold_pct if threshold_pct is not None else self.default_threshold_pct,
            active,
        )
        if created:
            logger.info(f"Provisioned {asset.symbol} at {start_price}")
        else:
            logger.debug(f"{asset.symbol} already provisioned")
        return self.db.get_peak(asset.symbol)

    def set_active(self, symbol, active):
        if not self.db.set_asset_active(symbol, active):
            raise UnknownAsset(f"No peak record for {symbol}", symbol=symbol)

    def set_threshold(self, symbol, threshold_pct):
        if threshold_pct <= 0:
            raise ValueError("threshold must be positive")
        if not self.db.set_asset_threshold(symbol, threshold_pct):
            raise UnknownAsset(f"No peak record for {symbol}", symbol=symbol)

    def reset_peak(self, symbol, price, observed_at=None):
        """Explicitly restart peak tracking from ``price``."""
        if price <= 0:
            raise ValueError("peak must be positive")
        observed_at = observed_at or datetime.now(timezone.utc)
        if not self.db.reset_peak(symbol, price, observed_at):
            raise UnknownAsset(f"No peak record for {symbol}", symbol=symbol)
        logger.warning(f"{symbol} peak reset to {price}")
        return self.db.get_peak(symbol)
