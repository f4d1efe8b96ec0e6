"""Session-anchored VWAP with an O(1) incremental path, a full re-scan fallback and stddev bands."""

import math
from typing import Sequence

from overnight_context.core.types import Bar, VWAPBands, VWAPState

EMPTY_STATE = VWAPState()


def typical_price(bar: Bar) -> float | None:
    """(high + low + close) / 3 after un-inverting high/low; None for non-finite inputs."""

    if not (math.isfinite(bar.high) and math.isfinite(bar.low) and math.isfinite(bar.close)):
        return None
    high, low = bar.corrected_range()
    return (high + low + bar.close) / 3.0


def update(state: VWAPState, bar: Bar) -> VWAPState:
    """Fold one bar into the running totals; invalid bars leave the state untouched."""

    if not bar.is_valid:
        return state

    price = typical_price(bar)
    if price is None:
        return state

    return VWAPState(
        cumulative_tpv=state.cumulative_tpv + (price * bar.volume),
        cumulative_volume=state.cumulative_volume + bar.volume,
    )


def rescan(bars: Sequence[Bar], start_index: int, end_index: int) -> VWAPState:
    """Rebuild the running totals over [start_index, end_index] in bar order.

    Applies exactly the same fold as the incremental path so both agree to the bit.
    """

    state = EMPTY_STATE
    if start_index < 0 or end_index >= len(bars) or start_index > end_index:
        return state

    for i in range(start_index, end_index + 1):
        state = update(state, bars[i])
    return state


def vwap(state: VWAPState) -> float | None:
    if state.cumulative_volume <= 0:
        return None
    return state.cumulative_tpv / state.cumulative_volume


def bands(
    bars: Sequence[Bar],
    start_index: int,
    end_index: int,
    session_vwap: float | None,
    multiplier: float,
) -> VWAPBands:
    """Volume-weighted stddev of typical price around session_vwap over the range."""

    if session_vwap is None or not math.isfinite(session_vwap):
        return VWAPBands(upper=None, lower=None, stddev=None)
    if start_index < 0 or end_index >= len(bars) or start_index > end_index:
        return VWAPBands(upper=None, lower=None, stddev=None)

    sum_squared_diff = 0.0
    total_volume = 0
    for i in range(start_index, end_index + 1):
        bar = bars[i]
        if not bar.is_valid:
            continue
        price = typical_price(bar)
        if price is None:
            continue
        sum_squared_diff += ((price - session_vwap) ** 2) * bar.volume
        total_volume += bar.volume

    variance = sum_squared_diff / total_volume if total_volume > 0 else 0.0
    stddev = math.sqrt(variance)
    return VWAPBands(
        upper=session_vwap + (multiplier * stddev),
        lower=session_vwap - (multiplier * stddev),
        stddev=stddev,
    )
