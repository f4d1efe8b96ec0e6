"""Volume-at-price profile: spreads each bar's volume over its range and derives POC and value area.

Each valid bar's volume is distributed across tick-spaced levels between its
low and high with a Gaussian kernel centred on the close (sigma = 30% of the
bar range). Per-level shares are rounded half-up and the last level takes the
remainder, so a bar's levels always sum to its volume exactly.
"""

import math
from typing import Sequence

from overnight_context.core.types import Bar, VolumeProfile

DEFAULT_VALUE_AREA_SHARE = 0.70
DEFAULT_MAX_LEVELS = 1000

_KERNEL_VARIANCE = 0.09
_PRICE_DECIMALS = 10


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def resolve_tick_size(tick_size: float | None, default: float) -> float:
    """Use the instrument tick size when it is a positive finite number, else the default."""

    if tick_size is None or not math.isfinite(tick_size) or tick_size <= 0.0:
        return default
    return tick_size


def gaussian_weight(price: float, high: float, low: float, close: float) -> float:
    price_range = high - low
    if price_range == 0.0:
        return 1.0
    distance = abs(price - close) / price_range
    return math.exp(-(distance**2) / (2.0 * _KERNEL_VARIANCE))


def expand_value_area(volumes: Sequence[int], poc_index: int, target: float) -> list[int]:
    """Grow outward from the POC, taking the heavier neighbour each step (ties go up).

    Returns level indices in acceptance order, POC first. Stops as soon as the
    accepted volume reaches target or both sides are exhausted.
    """

    accepted = [poc_index]
    accumulated = volumes[poc_index]
    lower = upper = poc_index

    while accumulated < target:
        has_upper = upper + 1 < len(volumes)
        has_lower = lower - 1 >= 0
        if has_upper and (not has_lower or volumes[upper + 1] >= volumes[lower - 1]):
            upper += 1
            accepted.append(upper)
            accumulated += volumes[upper]
        elif has_lower:
            lower -= 1
            accepted.append(lower)
            accumulated += volumes[lower]
        else:
            break

    return accepted


def is_in_value_area(price: float, vah: float, val: float) -> bool:
    if not (math.isfinite(price) and math.isfinite(vah) and math.isfinite(val)):
        return False
    return val <= price <= vah


def value_area_width(vah: float, val: float) -> float:
    if not (math.isfinite(vah) and math.isfinite(val)):
        return 0.0
    return abs(vah - val)


class VolumeProfileBuilder:
    """Builds session volume profiles at a fixed tick size."""

    def __init__(
        self,
        tick_size: float,
        value_area_share: float = DEFAULT_VALUE_AREA_SHARE,
        max_levels: int = DEFAULT_MAX_LEVELS,
    ) -> None:
        if not math.isfinite(tick_size) or tick_size <= 0.0:
            raise ValueError(f"tick_size must be positive, got {tick_size}")
        if not 0.0 < value_area_share <= 1.0:
            raise ValueError(f"value_area_share must be in (0, 1], got {value_area_share}")
        if max_levels < 2:
            raise ValueError(f"max_levels must be at least 2, got {max_levels}")
        self.tick_size = tick_size
        self.value_area_share = value_area_share
        self.max_levels = max_levels

    def level_price(self, price: float) -> float:
        """Snap a price onto the tick grid."""

        return round(round_half_up(price / self.tick_size) * self.tick_size, _PRICE_DECIMALS)

    def distribute(self, bar: Bar) -> list[tuple[float, int]]:
        """Split one bar's volume into (raw level price, volume) pairs summing to bar.volume."""

        if not bar.is_valid:
            return []

        high, low = bar.corrected_range()
        volume = bar.volume
        if high == low:
            return [(bar.close, volume)]

        spacing = self.tick_size
        level_count = round_half_up((high - low) / spacing) + 1
        if level_count > self.max_levels:
            # anomalously wide bar: widen spacing so max_levels span the range
            level_count = self.max_levels
            spacing = (high - low) / (self.max_levels - 1)

        prices = [min(low + (i * spacing), high) for i in range(level_count)]
        weights = [gaussian_weight(price, high, low, bar.close) for price in prices]
        total_weight = sum(weights)

        allocations: list[int] = []
        distributed = 0
        for weight in weights[:-1]:
            share = round_half_up(volume * (weight / total_weight))
            allocations.append(share)
            distributed += share
        allocations.append(volume - distributed)

        if allocations[-1] < 0:
            _claw_back(allocations)

        return [(price, amount) for price, amount in zip(prices, allocations) if amount > 0]

    def add_bar(self, profile: VolumeProfile, bar: Bar) -> None:
        """Merge one bar's distribution into the profile histogram."""

        for price, amount in self.distribute(bar):
            key = self.level_price(price)
            profile.levels[key] = profile.levels.get(key, 0) + amount
            profile.total_volume += amount

    def empty(self) -> VolumeProfile:
        return VolumeProfile(tick_size=self.tick_size)

    def build(self, bars: Sequence[Bar], start_index: int, end_index: int) -> VolumeProfile:
        """Build and finalize a profile over bars[start_index..end_index] inclusive."""

        profile = self.empty()
        if start_index < 0 or end_index >= len(bars) or start_index > end_index:
            return profile

        for i in range(start_index, end_index + 1):
            self.add_bar(profile, bars[i])

        return self.finalize(profile)

    def finalize(self, profile: VolumeProfile) -> VolumeProfile:
        """Derive POC, VAH/VAL and volume balance in place; empty profiles stay all-zero."""

        if not profile.levels or profile.total_volume <= 0:
            profile.poc = profile.vah = profile.val = 0.0
            profile.volume_balance = 0.0
            return profile

        ordered = profile.sorted_levels()
        prices = [price for price, _ in ordered]
        volumes = [amount for _, amount in ordered]

        # strict comparison keeps the lowest price on ties
        poc_index = 0
        for i, amount in enumerate(volumes):
            if amount > volumes[poc_index]:
                poc_index = i

        accepted = expand_value_area(volumes, poc_index, profile.total_volume * self.value_area_share)

        profile.poc = prices[poc_index]
        profile.vah = prices[max(accepted)]
        profile.val = prices[min(accepted)]
        profile.volume_balance = _volume_balance(prices, volumes, profile.total_volume)
        return profile


def _claw_back(allocations: list[int]) -> None:
    deficit = -allocations[-1]
    allocations[-1] = 0
    while deficit > 0:
        largest = max(range(len(allocations)), key=allocations.__getitem__)
        taken = min(deficit, allocations[largest])
        allocations[largest] -= taken
        deficit -= taken


def _volume_balance(prices: Sequence[float], volumes: Sequence[int], total_volume: int) -> float:
    midpoint = (prices[0] + prices[-1]) / 2.0
    upper_volume = 0
    lower_volume = 0
    for price, amount in zip(prices, volumes):
        if price > midpoint:
            upper_volume += amount
        else:
            lower_volume += amount
    return (upper_volume - lower_volume) / float(total_volume)
