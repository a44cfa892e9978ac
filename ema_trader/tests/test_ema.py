import pytest

from ema_trader.engine.ema import EMAEngine, compute_ema
from ema_trader.utils.errors import InsufficientData


def test_constant_series_is_fixed_point():
    assert compute_ema([100.0] * 100, 20) == pytest.approx(100.0)


def test_integer_series_exact_seed():
    # seed = mean of first 3 = 2, then one step with alpha 0.5 toward 6
    assert compute_ema([1, 2, 3, 6], 3, factor=1) == 4.0


def test_insufficient_data():
    with pytest.raises(InsufficientData) as exc:
        compute_ema([1.0] * 99, 20)
    assert exc.value.required == 100
    assert exc.value.available == 99


def test_non_positive_period_rejected():
    with pytest.raises(ValueError):
        compute_ema([1.0] * 10, 0)


def test_previous_matches_shifted_window():
    closes = [float(100 + (i % 7) - (i % 3)) for i in range(60)]
    engine = EMAEngine(factor=5)
    assert engine.previous(closes, 10) == pytest.approx(compute_ema(closes[-51:-1], 10))
    assert engine.current(closes, 10) == pytest.approx(compute_ema(closes[-50:], 10))


def test_previous_needs_one_extra_close():
    engine = EMAEngine(factor=5)
    closes = [1.0] * 50
    engine.current(closes, 10)
    with pytest.raises(InsufficientData):
        engine.previous(closes, 10)


def test_cache_hit_equals_recomputation():
    closes = [float(i) for i in range(1, 80)]
    engine = EMAEngine(factor=5, cache_size=4)
    first = engine.current(closes, 10)
    second = engine.current(closes, 10)
    assert first == second == compute_ema(closes[-50:], 10)
    assert engine.hits == 1
    assert engine.misses == 1


def test_cache_is_bounded():
    engine = EMAEngine(factor=1, cache_size=2)
    for shift in range(5):
        engine.current([float(shift + i) for i in range(3)], 3)
    assert len(engine._cache) == 2


def test_snapshot_fields():
    closes = [100.0] * 120
    snap = EMAEngine(factor=5).snapshot(closes, 5, 20)
    assert snap.fast == pytest.approx(100.0)
    assert snap.slow == pytest.approx(100.0)
    assert snap.prev_fast == pytest.approx(100.0)
    assert snap.prev_slow == pytest.approx(100.0)
