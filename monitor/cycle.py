"""Monitoring cycle: one finite pass over the configured assets."""
import logging
import threading
import time
from datetime import datetime, timezone

from alerts.messages import drawdown_message, levels_message
from models.cycle import AssetOutcome, CycleSummary
from monitor.drawdown import compute_drawdown
from monitor.errors import GuardianError, NotificationFailure, UnknownAsset

logger = logging.getLogger("guardian.cycle")


def _utcnow():
    return datetime.now(timezone.utc)


class MonitoringCycle:
    """Fetch -> save -> update peak -> decide alert -> decide levels -> notify.

    Assets are processed sequentially with a fixed delay between them. A
    failure for one asset is logged and tallied; the cycle moves on.
    """

    def __init__(self, assets, market_data, db, peak_store, alert_engine, level_engine,
                 dispatcher, devices, inter_asset_delay=1.0, sleep=time.sleep, clock=_utcnow):
        self.assets = list(assets)
        self.market_data = market_data
        self.db = db
        self.peak_store = peak_store
        self.alert_engine = alert_engine
        self.level_engine = level_engine
        self.dispatcher = dispatcher
        self.devices = devices
        self.inter_asset_delay = inter_asset_delay
        self._sleep = sleep
        self._clock = clock
        self._stop = threading.Event()

    def stop(self):
        """Ask a running cycle to stop before the next asset."""
        self._stop.set()

    def resume(self):
        """Clear a pending stop so later cycles run again."""
        self._stop.clear()

    def run_once(self):
        summary = CycleSummary(started_at=self._clock())
        logger.info(f"Starting price monitoring at {summary.started_at.isoformat()} "
                    f"({', '.join(f'{a.symbol} ({a.asset_class.value})' for a in self.assets)})")

        try:
            recipients = self.devices.recipients()
        except GuardianError as e:
            logger.warning(f"Could not load notification recipients: {e}")
            recipients = []

        for i, asset in enumerate(self.assets):
            if self._stop.is_set():
                logger.warning("Cycle stopped before processing remaining assets")
                break
            summary.outcomes.append(self.process_asset(asset, recipients))
            if i < len(self.assets) - 1 and self.inter_asset_delay > 0:
                self._sleep(self.inter_asset_delay)

        summary.finished_at = self._clock()
        logger.info(f"Monitoring completed: {summary.succeeded}/{summary.total} assets updated"
                    f" ({summary.failed} failed, {summary.skipped} skipped)")
        return summary

    def process_asset(self, asset, recipients):
        outcome = AssetOutcome(symbol=asset.symbol)
        try:
            self._process(asset, recipients, outcome)
            outcome.ok = not outcome.skipped
        except GuardianError as e:
            outcome.error = f"{type(e).__name__}: {e}"
            logger.error(f"Error processing {asset.symbol}: {outcome.error}")
        except Exception as e:
            outcome.error = f"{type(e).__name__}: {e}"
            logger.exception(f"Unexpected error processing {asset.symbol}")
        return outcome

    def _process(self, asset, recipients, outcome):
        peak = self.peak_store.get_peak(asset.symbol)
        if peak is None:
            raise UnknownAsset(f"{asset.symbol} has no peak record; provision it first",
                               symbol=asset.symbol)
        if not peak.active:
            outcome.skipped = True
            logger.info(f"{asset.symbol} inactive, skipped")
            return

        quote = self.market_data.fetch_price(asset)
        outcome.price = quote.price
        self.db.save_price(quote)
        logger.info(f"{asset.symbol}: {quote.price:,.4f}"
                    + (f" ({quote.change_pct:+.2f}%)" if quote.change_pct is not None else ""))

        now = self._clock()
        update = self.peak_store.record_observation(asset.symbol, quote.price, quote.as_of)
        peak = update.peak
        outcome.peak_updated = update.updated
        outcome.peak_price = peak.peak_price

        drawdown = compute_drawdown(quote.price, peak.peak_price)
        outcome.drawdown_pct = drawdown
        if drawdown > 0:
            logger.debug(f"{asset.symbol} positive drawdown {drawdown:.4f}% against a stale peak")

        decision = self.alert_engine.evaluate(peak, quote.price, drawdown, now)
        outcome.alert = decision.alert
        if decision.alert is not None:
            self._send(asset, drawdown_message(decision.alert), recipients, record=decision.alert)

        # Errors from here on fail the asset but leave the alert above delivered.
        levels = self.level_engine.evaluate(asset.symbol, peak.asset_class, drawdown,
                                            peak.peak_price, now)
        outcome.newly_available = levels.newly_available
        outcome.reminders = levels.reminders
        if levels.newly_available:
            self._send(asset, levels_message(peak, quote.price, levels), recipients)
        if levels.reminders:
            self._send(asset, levels_message(peak, quote.price, levels, reminder=True), recipients)

    def _send(self, asset, message, recipients, record=None):
        title, body, data = message
        try:
            self.dispatcher.notify_or_raise(recipients, title, body, data, symbol=asset.symbol)
        except NotificationFailure as e:
            logger.warning(f"{asset.symbol}: {e}")
            return
        if record is not None:
            try:
                self.db.mark_alert_notified(record.id)
                record.notified = True
            except GuardianError as e:
                logger.warning(f"{asset.symbol}: could not flag alert as notified: {e}")
