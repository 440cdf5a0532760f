"""Drawdown calculation."""


def compute_drawdown(current_price, peak_price):
    """Signed percent decline of ``current_price`` from ``peak_price``.

    A missing or zero peak (or a missing price) means there is nothing to
    compare against and yields 0.0. With an up-to-date peak the result is
    always <= 0.
    """
    if not peak_price or current_price is None:
        return 0.0
    return (current_price - peak_price) / peak_price * 100
