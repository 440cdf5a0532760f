"""Formatting utilities for display and notification text."""
from datetime import datetime, timezone


def format_price(value, currency="$"):
    """Format a price with thousands separators.

    Sub-dollar prices keep four decimals so small-cap tokens stay readable.
    """
    if value is None:
        return "N/A"
    value = float(value)
    if abs(value) < 1:
        return f"{currency}{value:,.4f}"
    return f"{currency}{value:,.2f}"


def format_pct(value, decimals=2, with_color=False):
    """Format percentage with sign. Optionally include rich color markup."""
    if value is None:
        return "N/A"
    value = float(value)
    sign = "+" if value >= 0 else ""
    formatted = f"{sign}{value:.{decimals}f}%"
    if with_color:
        color = "green" if value >= 0 else "red"
        return f"[{color}]{formatted}[/{color}]"
    return formatted


def format_level(level, percentage):
    """'-10% (20% of buffer)'."""
    return f"{level:g}% ({percentage:g}% of buffer)"


def format_levels(steps):
    return ", ".join(format_level(s.level, s.percentage) for s in steps)


def time_ago(dt, now=None):
    """Return human-readable time since dt. E.g., '3h ago', '2d ago'."""
    if dt is None:
        return "N/A"
    now = now or datetime.now(timezone.utc)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    seconds = int((now - dt).total_seconds())

    if seconds < 60:
        return f"{seconds}s ago"
    elif seconds < 3600:
        return f"{seconds // 60}m ago"
    elif seconds < 86400:
        return f"{seconds // 3600}h ago"
    else:
        return f"{seconds // 86400}d ago"
