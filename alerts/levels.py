"""Staged investment level engine.

Each asset class has a ladder of drawdown depths. When the drawdown reaches a
depth for the first time under the current peak, the level becomes available
and a row is stored for ``(symbol, level, peak_price)``. Rows that stay unused
for longer than the reminder interval produce a reminder every cycle until the
level is marked used. A new peak opens a fresh key scope.
"""
import logging
from datetime import datetime, timedelta, timezone

from models.levels import LevelDecision, LevelState

logger = logging.getLogger("guardian.alerts.levels")

REMINDER_INTERVAL = timedelta(hours=1)


class LevelEngine:
    def __init__(self, db, ladder_book, reminder_interval=REMINDER_INTERVAL):
        self.db = db
        self.ladder_book = ladder_book
        self.reminder_interval = reminder_interval

    def decide(self, ladder, drawdown_pct, states, now):
        """Split ``ladder`` into (newly_available, reminders). Pure."""
        by_level = {s.level: s for s in states}
        newly_available = []
        reminders = []

        for step in ladder:
            if drawdown_pct > step.level:
                continue
            state = by_level.get(step.level)
            if state is None:
                newly_available.append(step)
            elif not state.used and now - state.created_at >= self.reminder_interval:
                reminders.append(step)

        return newly_available, reminders

    def evaluate(self, symbol, asset_class, drawdown_pct, peak_price, now=None):
        """Decide for one asset and store rows for the newly available levels."""
        now = now or datetime.now(timezone.utc)
        ladder = self.ladder_book.for_class(asset_class)
        states = self.db.get_level_states(symbol, peak_price)
        newly_available, reminders = self.decide(ladder, drawdown_pct, states, now)

        if newly_available:
            self.db.insert_level_states([
                LevelState(symbol=symbol, level=step.level, peak_price=peak_price,
                           percentage=step.percentage, created_at=now)
                for step in newly_available
            ])
            logger.info(f"{symbol} levels available at {drawdown_pct:.2f}%: "
                        f"{', '.join(f'{s.level:g}%' for s in newly_available)}")
        if reminders:
            logger.info(f"{symbol} reminder for unused levels: "
                        f"{', '.join(f'{s.level:g}%' for s in reminders)}")
        if not newly_available and not reminders:
            logger.debug(f"{symbol} no new drawdown levels ({drawdown_pct:.2f}%, {len(ladder)} configured)")

        return LevelDecision(
            symbol=symbol,
            drawdown_pct=drawdown_pct,
            peak_price=peak_price,
            newly_available=newly_available,
            reminders=reminders,
        )

    def mark_used(self, symbol, asset_class, level, peak_price, now=None):
        """Record that the user acted on ``level`` for the peak ``peak_price``."""
        step = self.ladder_book.step(asset_class, level)
        if step is None:
            raise ValueError(f"{level}% is not a configured level for {asset_class}")
        now = now or datetime.now(timezone.utc)
        self.db.mark_level_used(symbol, step.level, peak_price, step.percentage, now)
        logger.info(f"{symbol} level {step.level:g}% marked used (peak {peak_price})")
        return step
