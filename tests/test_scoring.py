"""Sub-score thresholds, composite weighting and snapshot serialization."""

import math
import random
from datetime import datetime, timezone

import pytest

from overnight_context.analytics.scoring import (
    composite_score,
    score_context,
    score_poc_proximity,
    score_value_area_position,
    score_volume_balance,
    score_vwap_position,
)
from overnight_context.core.types import (
    BALANCED,
    SCORING_METHODS,
    VOLUME_HEAVY,
    VWAP_HEAVY,
    MarketContextSnapshot,
    ScoringMethod,
    VolumeProfile,
    interpret_score,
    scoring_method_from_name,
)

TS = datetime(2026, 1, 13, 8, 0, tzinfo=timezone.utc)


def _profile(poc: float, vah: float, val: float, balance: float) -> VolumeProfile:
    return VolumeProfile(
        tick_size=0.25,
        levels={poc: 100},
        total_volume=100,
        poc=poc,
        vah=vah,
        val=val,
        volume_balance=balance,
    )


def test_vwap_position_saturates_beyond_two_atr() -> None:
    """2.5 ATR above VWAP is the strongest bullish bucket."""

    assert score_vwap_position(4505.0, 4500.0, 2.0) == 10


@pytest.mark.parametrize(
    ("price", "expected"),
    [
        (102.5, 10),
        (102.0, 7),
        (101.5, 7),
        (100.75, 4),
        (100.25, 0),
        (99.75, 0),
        (99.25, -4),
        (98.5, -7),
        (97.0, -10),
    ],
)
def test_vwap_position_buckets(price: float, expected: int) -> None:
    """Thresholds are strict greater-than comparisons in ATR units."""

    assert score_vwap_position(price, 100.0, 1.0) == expected


def test_vwap_position_neutral_without_inputs() -> None:
    """Undefined VWAP or zero ATR cannot be scored."""

    assert score_vwap_position(105.0, None, 1.0) == 0
    assert score_vwap_position(105.0, 100.0, 0.0) == 0
    assert score_vwap_position(105.0, 100.0, None) == 0
    assert score_vwap_position(math.nan, 100.0, 1.0) == 0


@pytest.mark.parametrize(
    ("price", "expected"),
    [
        (115.0, 10),
        (112.0, 7),
        (98.0, -7),
        (105.0, 0),
        (110.0, 4),
        (100.0, -4),
        (107.5, 2),
        (130.0, 10),
        (80.0, -10),
    ],
)
def test_value_area_position(price: float, expected: int) -> None:
    """Outside scores start at +/-5; inside scales linearly to +/-4 at the edges."""

    assert score_value_area_position(price, 110.0, 100.0) == expected


def test_value_area_position_with_zero_width_area() -> None:
    """VAH == VAL saturates on either side and stays neutral on the level itself."""

    assert score_value_area_position(101.0, 100.0, 100.0) == 10
    assert score_value_area_position(99.0, 100.0, 100.0) == -10
    assert score_value_area_position(100.0, 100.0, 100.0) == 0


def test_value_area_position_neutral_for_empty_profile() -> None:
    """An all-zero profile contributes nothing."""

    assert score_value_area_position(100.0, 0.0, 0.0) == 0


@pytest.mark.parametrize(
    ("price", "expected"),
    [
        (100.5, 0),
        (101.5, 3),
        (103.0, 6),
        (97.0, 6),
        (105.0, 9),
        (95.0, -9),
    ],
)
def test_poc_proximity(price: float, expected: int) -> None:
    """Distance is unsigned until the extreme bucket."""

    assert score_poc_proximity(price, 100.0, 2.0) == expected


def test_poc_proximity_neutral_without_inputs() -> None:
    """Zero POC or ATR cannot be scored."""

    assert score_poc_proximity(105.0, 0.0, 2.0) == 0
    assert score_poc_proximity(105.0, 100.0, 0.0) == 0


@pytest.mark.parametrize(
    ("balance", "expected"),
    [
        (-0.68, 7),
        (0.5, -5),
        (-1.0, 10),
        (1.0, -10),
        (0.0, 0),
        (0.25, -2),
        (-0.25, 3),
        (-2.0, 10),
    ],
)
def test_volume_balance_rounds_half_up(balance: float, expected: int) -> None:
    """Balance is negated, scaled by ten, rounded half-up and clamped."""

    assert score_volume_balance(balance) == expected


def test_presets_are_normalized() -> None:
    """Every preset's weights sum to one."""

    for method in SCORING_METHODS.values():
        assert sum(method.weights()) == pytest.approx(1.0)
    assert VWAP_HEAVY.weights() == (0.4, 0.2, 0.2, 0.2)
    assert VOLUME_HEAVY.weights() == (0.2, 0.3, 0.3, 0.2)


def test_scoring_method_rejects_bad_weights() -> None:
    """Weights must be non-negative and sum to one."""

    with pytest.raises(ValueError):
        ScoringMethod("BROKEN", 0.5, 0.5, 0.5, 0.5)
    with pytest.raises(ValueError):
        ScoringMethod("NEGATIVE", 1.5, -0.5, 0.0, 0.0)


def test_scoring_method_from_name() -> None:
    """Lookup is case-insensitive and unknown names fall back to BALANCED."""

    assert scoring_method_from_name("vwap_heavy") is VWAP_HEAVY
    assert scoring_method_from_name(" Volume_Heavy ") is VOLUME_HEAVY
    assert scoring_method_from_name("nonsense") is BALANCED
    assert scoring_method_from_name(None) is BALANCED


def test_composite_rounds_weighted_sum() -> None:
    """Weighted sums round half-up to an integer."""

    assert composite_score((10, 10, 0, 7), BALANCED) == 7
    assert composite_score((10, 0, 0, 0), VWAP_HEAVY) == 4
    assert composite_score((-10, -10, -10, -10), VOLUME_HEAVY) == -10


def test_composite_stays_in_range_for_random_inputs() -> None:
    """Sub-scores and composite never leave [-10, 10]."""

    rng = random.Random(5)
    for _ in range(2000):
        price = rng.uniform(90.0, 110.0)
        vwap = rng.choice([None, rng.uniform(95.0, 105.0)])
        atr = rng.choice([0.0, rng.uniform(0.1, 5.0)])
        val = rng.uniform(95.0, 101.0)
        vah = val + rng.choice([0.0, rng.uniform(0.25, 6.0)])
        profile = _profile(rng.uniform(val, vah), vah, val, rng.uniform(-1.0, 1.0))
        method = rng.choice(list(SCORING_METHODS.values()))

        snapshot = score_context(
            timestamp=TS, symbol="ES", price=price, vwap=vwap, atr=atr, profile=profile, method=method
        )

        for component in snapshot.component_scores().values():
            assert -10 <= component <= 10
        assert -10 <= snapshot.composite_score <= 10


def test_score_context_passes_through_inputs() -> None:
    """Snapshot carries the caller's timestamp, symbol and profile levels."""

    profile = _profile(poc=100.0, vah=102.0, val=98.0, balance=-0.5)
    snapshot = score_context(
        timestamp=TS, symbol="NQ", price=103.0, vwap=100.0, atr=1.0, profile=profile, method=VWAP_HEAVY
    )

    assert snapshot.timestamp == TS
    assert snapshot.symbol == "NQ"
    assert snapshot.poc == 100.0
    assert snapshot.vah == 102.0
    assert snapshot.val == 98.0
    assert snapshot.scoring_method == "VWAP_HEAVY"
    assert snapshot.vwap_score == 10
    assert snapshot.value_area_score == 7
    assert snapshot.poc_score == 9
    assert snapshot.volume_score == 5
    # 0.4*10 + 0.2*7 + 0.2*9 + 0.2*5 = 8.2
    assert snapshot.composite_score == 8
    assert snapshot.interpretation == "STRONG_BULLISH"
    assert snapshot.value_area_width == 4.0
    assert snapshot.vwap_deviation_pct == pytest.approx(3.0)


@pytest.mark.parametrize(
    ("score", "label"),
    [
        (10, "STRONG_BULLISH"),
        (8, "STRONG_BULLISH"),
        (7, "BULLISH"),
        (4, "BULLISH"),
        (3, "NEUTRAL"),
        (-3, "NEUTRAL"),
        (-4, "BEARISH"),
        (-7, "BEARISH"),
        (-8, "STRONG_BEARISH"),
    ],
)
def test_interpret_score(score: int, label: str) -> None:
    """Labels follow the inclusive lower bounds of each bucket."""

    assert interpret_score(score) == label


def test_snapshot_requires_timestamp_and_symbol() -> None:
    """A snapshot without identity is a programming error."""

    profile = _profile(100.0, 101.0, 99.0, 0.0)
    with pytest.raises(ValueError):
        score_context(timestamp=TS, symbol="", price=100.0, vwap=100.0, atr=1.0, profile=profile, method=BALANCED)
    with pytest.raises(ValueError):
        score_context(timestamp=None, symbol="ES", price=100.0, vwap=100.0, atr=1.0, profile=profile, method=BALANCED)


def test_snapshot_to_dict_is_json_ready() -> None:
    """Undefined VWAP and non-finite floats serialize as None."""

    snapshot = MarketContextSnapshot(
        timestamp=TS,
        symbol="ES",
        vwap=None,
        current_price=math.nan,
        poc=0.0,
        vah=0.0,
        val=0.0,
        volume_balance=0.0,
        vwap_score=0,
        value_area_score=0,
        poc_score=0,
        volume_score=0,
        composite_score=0,
        scoring_method="BALANCED",
    )
    payload = snapshot.to_dict()

    assert payload["timestamp"] == TS.isoformat()
    assert payload["vwap"] is None
    assert payload["current_price"] is None
    assert payload["vwap_deviation_pct"] is None
    assert payload["interpretation"] == "NEUTRAL"
    assert payload["components"] == {"vwap_score": 0, "va_score": 0, "poc_score": 0, "volume_score": 0}
