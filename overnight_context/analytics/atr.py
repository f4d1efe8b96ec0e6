"""Average true range used to normalize price distances in the scorer."""

import math
from typing import Sequence

from overnight_context.core.types import Bar


def true_range(bars: Sequence[Bar], index: int) -> float:
    bar = bars[index]
    prev_close = bars[index - 1].close if index > 0 else bar.open
    if not all(math.isfinite(value) for value in (bar.high, bar.low, prev_close)):
        return math.nan
    return max(
        bar.high - bar.low,
        abs(bar.high - prev_close),
        abs(bar.low - prev_close),
    )


def average_true_range(bars: Sequence[Bar], index: int, period: int) -> float:
    """Simple mean of the `period` true ranges ending at index; 0.0 until enough history exists."""

    if period <= 0 or index < period or index >= len(bars):
        return 0.0

    total = 0.0
    for i in range(index - period + 1, index + 1):
        total += true_range(bars, i)

    atr_value = total / float(period)
    if not math.isfinite(atr_value):
        return 0.0
    return atr_value
