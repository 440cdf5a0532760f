"""Drawdown alert decision engine."""
import logging
from datetime import datetime, timezone

from models.alerts import AlertDecision, DrawdownAlert
from models.enums import AlertKind

logger = logging.getLogger("guardian.alerts.engine")

VARIATION_THRESHOLD = 1.0


class DrawdownAlertEngine:
    """Decides when a drawdown is worth (re)notifying.

    Decisions are made against the latest alert row stored for the symbol, so
    re-running a cycle with the same price never fires twice.
    """

    def __init__(self, db, variation_threshold=VARIATION_THRESHOLD, reset_on_recovery=False):
        self.db = db
        self.variation_threshold = variation_threshold
        self.reset_on_recovery = reset_on_recovery

    def decide(self, threshold_pct, drawdown_pct, prior_alert):
        """Pure decision for one observation. Does not touch the store."""
        if drawdown_pct > -threshold_pct:
            return AlertDecision(fire=False, reason="above threshold")

        if prior_alert is None or prior_alert.kind == AlertKind.RECOVERY:
            return AlertDecision(fire=True, kind=AlertKind.NEW_CROSSING,
                                 reason="threshold crossed")

        variation = abs(drawdown_pct - prior_alert.drawdown_pct)
        if variation >= self.variation_threshold:
            return AlertDecision(fire=True, kind=AlertKind.VARIATION, variation=variation,
                                 reason=f"moved {variation:.2f} points since last alert")
        return AlertDecision(fire=False, variation=variation,
                             reason=f"moved only {variation:.2f} points since last alert")

    def evaluate(self, peak, current_price, drawdown_pct, now=None):
        """Decide for ``peak.symbol`` and append the alert row when one fires."""
        now = now or datetime.now(timezone.utc)
        prior = self.db.get_last_drawdown_alert(peak.symbol)
        decision = self.decide(peak.alert_threshold_pct, drawdown_pct, prior)

        if not decision.fire:
            if (self.reset_on_recovery and drawdown_pct > -peak.alert_threshold_pct
                    and prior is not None and prior.kind != AlertKind.RECOVERY):
                self._record(peak, current_price, drawdown_pct, AlertKind.RECOVERY, now)
                logger.info(f"{peak.symbol} recovered to {drawdown_pct:.2f}%, alert state reset")
            return decision

        decision.alert = self._record(peak, current_price, drawdown_pct, decision.kind, now)
        if decision.kind == AlertKind.NEW_CROSSING:
            logger.info(f"{peak.symbol} threshold crossed: {drawdown_pct:.2f}% "
                        f"(threshold: {peak.alert_threshold_pct}%)")
        else:
            logger.info(f"{peak.symbol} drawdown variation: {drawdown_pct:.2f}% "
                        f"(was {prior.drawdown_pct:.2f}%, variation: {decision.variation:.2f}%)")
        return decision

    def _record(self, peak, current_price, drawdown_pct, kind, now):
        alert = DrawdownAlert(
            symbol=peak.symbol,
            asset_name=peak.name,
            drawdown_pct=drawdown_pct,
            threshold_pct=peak.alert_threshold_pct,
            current_price=current_price,
            peak_price=peak.peak_price,
            kind=kind,
            triggered_at=now,
        )
        self.db.save_drawdown_alert(alert)
        return alert

    def format_alert_summary(self, alerts):
        """Format alerts for display."""
        if not alerts:
            return "All clear - no drawdown alerts."
        lines = []
        for a in alerts:
            icon = "!!" if a.kind == AlertKind.NEW_CROSSING else "~"
            lines.append(f"[{icon}] {a.symbol} {a.drawdown_pct:.2f}% "
                         f"(threshold -{a.threshold_pct:g}%, peak {a.peak_price:,.2f})")
        return "\n".join(lines)
