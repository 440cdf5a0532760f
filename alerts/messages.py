"""Notification texts for drawdown alerts and investment levels."""
from models.enums import AlertKind, NotificationType
from utils.formatters import format_levels, format_price

_SIREN = "\U0001f6a8"
_CHART_DOWN = "\U0001f4c9"
_TARGET = "\U0001f3af"
_CLOCK = "⏰"


def drawdown_message(alert):
    """(title, body, data) for a fired drawdown alert."""
    name = alert.asset_name or alert.symbol
    if alert.kind == AlertKind.VARIATION:
        title = f"{_CHART_DOWN} Drawdown Update"
        body = f"{name}: drawdown now {alert.drawdown_pct:.2f}%"
    else:
        title = f"{_SIREN} Drawdown Alert"
        body = f"{name}: {alert.drawdown_pct:.2f}% drawdown threshold reached"
    data = {
        "type": NotificationType.DRAWDOWN.value,
        "asset": alert.symbol,
        "drawdown": round(alert.drawdown_pct, 4),
        "currentPrice": alert.current_price,
        "peak": alert.peak_price,
        "isVariation": alert.is_variation,
    }
    return title, body, data


def levels_message(peak, current_price, decision, reminder=False):
    """(title, body, data) for newly available or reminder levels of one asset."""
    steps = decision.reminders if reminder else decision.newly_available
    header = (
        f"Asset: {peak.symbol} ({peak.asset_class.value})\n"
        f"Price: {format_price(current_price)}\n"
        f"Drawdown: {decision.drawdown_pct:.2f}%\n"
    )
    if reminder:
        title = f"{_CLOCK} Drawdown levels still available"
        body = (header + f"Available for over an hour: {format_levels(steps)}\n\n"
                "You have not invested at these levels yet.")
        kind = NotificationType.LEVELS_REMINDER
    else:
        title = f"{_TARGET} Drawdown levels available"
        body = header + f"Levels: {format_levels(steps)}\n\nOpen the app to invest manually."
        kind = NotificationType.LEVELS_AVAILABLE
    data = {
        "type": kind.value,
        "asset": peak.symbol,
        "drawdown": round(decision.drawdown_pct, 4),
        "peak": decision.peak_price,
        "levels": [{"level": s.level, "percentage": s.percentage} for s in steps],
    }
    return title, body, data


def delivery_check_message():
    return (
        "Drawdown Guardian test",
        "Notification delivery is working.",
        {"type": NotificationType.TEST.value},
    )
