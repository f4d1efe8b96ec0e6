"""Shared value objects passed between the session, VWAP, profile and scoring components."""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

_WEIGHT_TOLERANCE = 1e-9


class SessionKind(str, Enum):
    """Trading session buckets; EXTENDED is reserved and never produced by classification."""

    OVERNIGHT = "OVERNIGHT"
    RTH = "RTH"
    EXTENDED = "EXTENDED"


@dataclass(frozen=True, slots=True)
class Bar:
    """Read-only OHLCV bar keyed by its start time in epoch milliseconds."""

    start_time_ms: int
    open: float
    high: float
    low: float
    close: float
    volume: int
    symbol: str = ""

    def corrected_range(self) -> tuple[float, float]:
        """Return (high, low) with an inverted pair swapped back into order."""

        if self.high < self.low:
            return self.low, self.high
        return self.high, self.low

    @property
    def is_valid(self) -> bool:
        if not (math.isfinite(self.high) and math.isfinite(self.low) and math.isfinite(self.close)):
            return False
        return self.volume > 0


@dataclass(frozen=True, slots=True)
class SessionWindow:
    """Civil-time bounds of one session and the bar indices they resolved to."""

    start: datetime
    end: datetime
    start_index: int
    end_index: int
    kind: SessionKind = SessionKind.OVERNIGHT

    def contains(self, civil_time: datetime) -> bool:
        return self.start <= civil_time <= self.end

    @property
    def bar_count(self) -> int:
        return self.end_index - self.start_index + 1


@dataclass(frozen=True, slots=True)
class VWAPState:
    """Running typical-price x volume and volume totals for one session."""

    cumulative_tpv: float = 0.0
    cumulative_volume: int = 0


@dataclass(frozen=True, slots=True)
class VWAPBands:
    """Standard-deviation bands around VWAP; all None when VWAP is undefined."""

    upper: float | None
    lower: float | None
    stddev: float | None


@dataclass(slots=True)
class VolumeProfile:
    """Price-level volume histogram with its point of control and value area."""

    tick_size: float
    levels: dict[float, int] = field(default_factory=dict)
    total_volume: int = 0
    poc: float = 0.0
    vah: float = 0.0
    val: float = 0.0
    volume_balance: float = 0.0

    def sorted_levels(self) -> list[tuple[float, int]]:
        return sorted(self.levels.items())

    def contains(self, price: float) -> bool:
        """Return True when price sits inside the value area."""

        if self.total_volume <= 0 or not math.isfinite(price):
            return False
        return self.val <= price <= self.vah

    @property
    def value_area_width(self) -> float:
        return self.vah - self.val


@dataclass(frozen=True, slots=True)
class ScoringMethod:
    """Named weight vector for the four context sub-scores."""

    name: str
    vwap_weight: float
    value_area_weight: float
    poc_weight: float
    volume_weight: float

    def __post_init__(self) -> None:
        total = self.vwap_weight + self.value_area_weight + self.poc_weight + self.volume_weight
        if abs(total - 1.0) > _WEIGHT_TOLERANCE:
            raise ValueError(f"scoring weights for {self.name!r} sum to {total}, expected 1.0")
        if min(self.vwap_weight, self.value_area_weight, self.poc_weight, self.volume_weight) < 0.0:
            raise ValueError(f"scoring weights for {self.name!r} must be non-negative")

    def weights(self) -> tuple[float, float, float, float]:
        return (self.vwap_weight, self.value_area_weight, self.poc_weight, self.volume_weight)


BALANCED = ScoringMethod("BALANCED", 0.25, 0.25, 0.25, 0.25)
VWAP_HEAVY = ScoringMethod("VWAP_HEAVY", 0.4, 0.2, 0.2, 0.2)
VOLUME_HEAVY = ScoringMethod("VOLUME_HEAVY", 0.2, 0.3, 0.3, 0.2)

SCORING_METHODS: dict[str, ScoringMethod] = {
    method.name: method for method in (BALANCED, VWAP_HEAVY, VOLUME_HEAVY)
}


def scoring_method_from_name(name: str | None) -> ScoringMethod:
    """Resolve a preset by name, falling back to BALANCED for unknown values."""

    if not name:
        return BALANCED
    return SCORING_METHODS.get(name.strip().upper(), BALANCED)


def interpret_score(score: int) -> str:
    """Map a composite score onto its five-bucket label."""

    if score >= 8:
        return "STRONG_BULLISH"
    if score >= 4:
        return "BULLISH"
    if score >= -3:
        return "NEUTRAL"
    if score >= -7:
        return "BEARISH"
    return "STRONG_BEARISH"


@dataclass(frozen=True, slots=True)
class MarketContextSnapshot:
    """Immutable per-bar market context result."""

    timestamp: datetime
    symbol: str
    vwap: float | None
    current_price: float
    poc: float
    vah: float
    val: float
    volume_balance: float
    vwap_score: int
    value_area_score: int
    poc_score: int
    volume_score: int
    composite_score: int
    scoring_method: str
    atr: float = 0.0
    value_area_width: float = 0.0

    def __post_init__(self) -> None:
        if self.timestamp is None:
            raise ValueError("snapshot timestamp is required")
        if not self.symbol or not self.symbol.strip():
            raise ValueError("snapshot symbol is required")

    @property
    def interpretation(self) -> str:
        return interpret_score(self.composite_score)

    @property
    def vwap_deviation_pct(self) -> float | None:
        if self.vwap is None or self.vwap == 0.0 or not math.isfinite(self.current_price):
            return None
        return ((self.current_price - self.vwap) / self.vwap) * 100.0

    def component_scores(self) -> dict[str, int]:
        return {
            "vwap_score": self.vwap_score,
            "va_score": self.value_area_score,
            "poc_score": self.poc_score,
            "volume_score": self.volume_score,
        }

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-ready mapping; non-finite floats become None."""

        return {
            "timestamp": self.timestamp.isoformat(),
            "symbol": self.symbol,
            "vwap": _finite_or_none(self.vwap),
            "current_price": _finite_or_none(self.current_price),
            "poc": self.poc,
            "vah": self.vah,
            "val": self.val,
            "volume_balance": self.volume_balance,
            "components": self.component_scores(),
            "context_score": self.composite_score,
            "interpretation": self.interpretation,
            "scoring_method": self.scoring_method,
            "atr": _finite_or_none(self.atr),
            "value_area_width": self.value_area_width,
            "vwap_deviation_pct": self.vwap_deviation_pct,
        }


def _finite_or_none(value: float | None) -> float | None:
    if value is None or not math.isfinite(value):
        return None
    return value
