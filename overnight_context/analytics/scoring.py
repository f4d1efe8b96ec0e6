"""Market context scoring: four bounded sub-scores and their weighted composite."""

import math
from datetime import datetime

from overnight_context.analytics.volume_profile import round_half_up
from overnight_context.core.types import MarketContextSnapshot, ScoringMethod, VolumeProfile

SCORE_MIN = -10
SCORE_MAX = 10


def _usable(value: float | None) -> bool:
    return value is not None and math.isfinite(value) and value != 0.0


def _clamp(score: int) -> int:
    return max(SCORE_MIN, min(SCORE_MAX, score))


def score_vwap_position(price: float, vwap: float | None, atr: float | None) -> int:
    """Distance from VWAP in ATR units, bucketed into -10..10."""

    if not (_usable(vwap) and _usable(atr)) or not math.isfinite(price):
        return 0

    atr_units = (price - vwap) / atr
    if atr_units > 2:
        return 10
    if atr_units > 1:
        return 7
    if atr_units > 0.5:
        return 4
    if atr_units > -0.5:
        return 0
    if atr_units > -1:
        return -4
    if atr_units > -2:
        return -7
    return -10


def score_value_area_position(price: float, vah: float, val: float) -> int:
    """+5..+10 above the value area, -5..-10 below, -4..4 inside it."""

    if not (_usable(vah) and _usable(val)) or not math.isfinite(price):
        return 0

    va_range = vah - val
    if va_range <= 0.0:
        # single-level value area: any excursion is maximal in range units
        if price > vah:
            return SCORE_MAX
        if price < val:
            return SCORE_MIN
        return 0

    if price > vah:
        distance = (price - vah) / va_range
        return min(SCORE_MAX, 5 + math.floor(distance * 10))
    if price < val:
        distance = (val - price) / va_range
        return max(SCORE_MIN, -5 - math.floor(distance * 10))

    va_mid = (vah + val) / 2.0
    position = (price - va_mid) / (va_range / 2.0)
    return int(position * 4)


def score_poc_proximity(price: float, poc: float, atr: float | None) -> int:
    """Neutral near the POC, rising with distance; only extreme distance carries a direction."""

    if not (_usable(poc) and _usable(atr)) or not math.isfinite(price):
        return 0

    atr_units = abs(price - poc) / atr
    if atr_units < 0.5:
        return 0
    if atr_units < 1:
        return 3
    if atr_units < 2:
        return 6
    return 9 if price > poc else -9


def score_volume_balance(balance: float) -> int:
    """Volume resting at the lows (negative balance) scores bullish."""

    if not math.isfinite(balance):
        return 0
    return _clamp(round_half_up(-balance * 10))


def composite_score(components: tuple[int, int, int, int], method: ScoringMethod) -> int:
    weighted = sum(score * weight for score, weight in zip(components, method.weights()))
    return round_half_up(weighted)


def score_context(
    *,
    timestamp: datetime,
    symbol: str,
    price: float,
    vwap: float | None,
    atr: float | None,
    profile: VolumeProfile,
    method: ScoringMethod,
) -> MarketContextSnapshot:
    """Score the current price against VWAP and the session profile."""

    vwap_score = score_vwap_position(price, vwap, atr)
    value_area_score = score_value_area_position(price, profile.vah, profile.val)
    poc_score = score_poc_proximity(price, profile.poc, atr)
    volume_score = score_volume_balance(profile.volume_balance)

    components = (vwap_score, value_area_score, poc_score, volume_score)
    return MarketContextSnapshot(
        timestamp=timestamp,
        symbol=symbol,
        vwap=vwap,
        current_price=price,
        poc=profile.poc,
        vah=profile.vah,
        val=profile.val,
        volume_balance=profile.volume_balance,
        vwap_score=vwap_score,
        value_area_score=value_area_score,
        poc_score=poc_score,
        volume_score=volume_score,
        composite_score=composite_score(components, method),
        scoring_method=method.name,
        atr=atr if atr is not None else 0.0,
        value_area_width=profile.value_area_width,
    )
