from typing import Optional

from ema_trader.utils.orders_enum import CrossSignal


def detect_crossover(
    price: float,
    previous_price: float,
    ema_fast: float,
    ema_slow: float,
    previous_ema_fast: float,
    previous_ema_slow: Optional[float] = None,
) -> CrossSignal:
    """Classify the bar-to-bar transition of price against the fast EMA.

    The fast EMA cross is an edge: the previous bar sat at or on the wrong side
    of the previous fast EMA and the current price is strictly through the
    current one. The slow EMA is only a trend filter. ``previous_ema_slow`` is
    accepted for call-site symmetry and does not take part in the decision.
    """
    if price > ema_fast and previous_price <= previous_ema_fast and price > ema_slow:
        return CrossSignal.GOLDEN_CROSS
    if price < ema_fast and previous_price >= previous_ema_fast and price < ema_slow:
        return CrossSignal.DEATH_CROSS
    return CrossSignal.NONE
