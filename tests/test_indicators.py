import math

import pytest

from alphafx_engine.errors import InvalidParameter
from alphafx_engine.indicators import bollinger_bands, ema, rsi, sma


def test_sma_of_constant_series_is_constant():
    out = sma([1.085] * 30, 10)
    assert len(out) == 21
    assert all(v == pytest.approx(1.085) for v in out)


def test_sma_values_and_short_input():
    assert sma([1, 2, 3, 4, 5], 3) == pytest.approx([2, 3, 4])
    assert sma([1, 2], 3) == []


def test_ema_seeds_with_first_value():
    out = ema([10.0, 10.0, 10.0, 13.0], 3)
    assert out[0] == 10.0
    assert out[2] == pytest.approx(10.0)
    # alpha = 2 / (3 + 1)
    assert out[3] == pytest.approx(0.5 * 13.0 + 0.5 * 10.0)


def test_rsi_saturates_on_monotone_series():
    rising = [1.0 + i * 0.001 for i in range(20)]
    falling = [1.0 - i * 0.001 for i in range(20)]
    assert rsi(rising, 14)[-1] == pytest.approx(100.0)
    assert rsi(falling, 14)[-1] == pytest.approx(0.0)


def test_rsi_flat_series_is_neutral():
    assert rsi([1.2650] * 20, 14) == [50.0] * 6


def test_rsi_needs_period_plus_one_values():
    assert rsi([1.0] * 14, 14) == []
    assert len(rsi([1.0] * 15, 14)) == 1


def test_bollinger_uses_population_stddev():
    values = [float(i) for i in range(1, 21)]
    band = bollinger_bands(values, 20, 2.0)[-1]
    sd = math.sqrt(399.0 / 12.0)
    assert band.middle == pytest.approx(10.5)
    assert band.upper == pytest.approx(10.5 + 2 * sd)
    assert band.lower == pytest.approx(10.5 - 2 * sd)


def test_bollinger_constant_series_collapses():
    band = bollinger_bands([100.0] * 25, 20)[-1]
    assert band.upper == band.middle == band.lower == pytest.approx(100.0)


@pytest.mark.parametrize("fn", [sma, ema, rsi, bollinger_bands])
def test_non_positive_period_rejected(fn):
    with pytest.raises(InvalidParameter):
        fn([1.0, 2.0, 3.0], 0)
