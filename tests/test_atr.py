"""True range and simple-mean ATR over a short hand-checked series."""

import math

import pytest

from overnight_context.analytics.atr import average_true_range, true_range
from overnight_context.core.types import Bar


def _bar(open_: float, high: float, low: float, close: float) -> Bar:
    return Bar(start_time_ms=0, open=open_, high=high, low=low, close=close, volume=10)


BARS = [
    _bar(100.0, 101.0, 99.0, 100.0),
    _bar(100.0, 103.0, 100.0, 102.0),
    _bar(102.0, 102.0, 101.0, 101.0),
    _bar(104.0, 106.0, 104.0, 105.0),
]


def test_true_range_uses_previous_close() -> None:
    """Gaps against the previous close widen the range."""

    assert true_range(BARS, 0) == 2.0
    assert true_range(BARS, 1) == 3.0
    assert true_range(BARS, 2) == 1.0
    assert true_range(BARS, 3) == 5.0


def test_atr_is_simple_mean_of_true_ranges() -> None:
    """(3 + 1 + 5) / 3 for the last three bars."""

    assert average_true_range(BARS, 3, 3) == pytest.approx(3.0)
    assert average_true_range(BARS, 3, 1) == pytest.approx(5.0)


def test_atr_is_zero_without_enough_history() -> None:
    """index < period, a non-positive period or an out-of-range index gives 0.0."""

    assert average_true_range(BARS, 2, 3) == 0.0
    assert average_true_range(BARS, 3, 0) == 0.0
    assert average_true_range(BARS, 10, 3) == 0.0


def test_atr_ignores_non_finite_windows() -> None:
    """A NaN anywhere in the window yields 0.0 rather than a NaN ATR."""

    bars = list(BARS)
    bars[2] = _bar(102.0, math.nan, 101.0, 101.0)

    assert math.isnan(true_range(bars, 2))
    assert average_true_range(bars, 3, 3) == 0.0
