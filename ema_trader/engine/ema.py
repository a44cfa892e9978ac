import math
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from ema_trader.utils.errors import InsufficientData

DEFAULT_FACTOR = 5


def _ema_step(price: float, prev_ema: float, period: int) -> float:
    alpha = 2.0 / (period + 1)
    return (price - prev_ema) * alpha + prev_ema


def compute_ema(series: Sequence[float], period: int, factor: int = DEFAULT_FACTOR) -> float:
    """EMA of ``series`` after consuming all of it.

    Seeded with the simple average of the first ``period`` closes, then smoothed
    left-to-right over the rest. Fails with InsufficientData when the series is
    shorter than ``period * factor`` since the warm-up transient has not decayed.
    """
    if period <= 0:
        raise ValueError(f"period must be positive, got {period}")
    closes = [float(v) for v in series]
    required = period * factor
    if len(closes) < required:
        raise InsufficientData(period, required, len(closes))
    ema = math.fsum(closes[:period]) / period
    for price in closes[period:]:
        ema = _ema_step(price, ema, period)
    return ema


@dataclass(frozen=True)
class EMASnapshot:
    fast: float
    slow: float
    prev_fast: float
    prev_slow: float


class EMAEngine:
    """Windowed EMA values as of the last closed bar and the bar before it.

    Both values are full recomputations over a ``period * factor`` window; the
    previous-bar window is the same length, shifted back by one close. Results
    are memoized on the exact window contents, so a cache hit is always the
    value a fresh computation would return.
    """

    def __init__(self, factor: int = DEFAULT_FACTOR, cache_size: int = 16):
        if factor <= 0:
            raise ValueError(f"factor must be positive, got {factor}")
        self.factor = factor
        self.cache_size = cache_size
        self._cache: "OrderedDict[Tuple[int, Tuple[float, ...]], float]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def window_size(self, period: int) -> int:
        return period * self.factor

    def current(self, closes: Sequence[float], period: int) -> float:
        n = self.window_size(period)
        if len(closes) < n:
            raise InsufficientData(period, n, len(closes))
        return self._compute(tuple(float(c) for c in closes[-n:]), period)

    def previous(self, closes: Sequence[float], period: int) -> float:
        n = self.window_size(period)
        if len(closes) < n + 1:
            raise InsufficientData(period, n + 1, len(closes))
        return self._compute(tuple(float(c) for c in closes[-(n + 1):-1]), period)

    def snapshot(self, closes: Sequence[float], fast_period: int, slow_period: int) -> EMASnapshot:
        return EMASnapshot(
            fast=self.current(closes, fast_period),
            slow=self.current(closes, slow_period),
            prev_fast=self.previous(closes, fast_period),
            prev_slow=self.previous(closes, slow_period),
        )

    def _compute(self, window: Tuple[float, ...], period: int) -> float:
        key = (period, window)
        cached: Optional[float] = self._cache.get(key)
        if cached is not None:
            self.hits += 1
            self._cache.move_to_end(key)
            return cached
        self.misses += 1
        value = compute_ema(window, period, self.factor)
        self._cache[key] = value
        if len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)
        return value

    def clear(self) -> None:
        self._cache.clear()
