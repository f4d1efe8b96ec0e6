"""Civil time conversion in the trading timezone across standard and daylight time."""

from datetime import date, datetime, timezone

from overnight_context.analytics.session import market_date
from overnight_context.core.time_utils import MarketClock, utc_now


def _utc_ms(*args: int) -> int:
    return int(datetime(*args, tzinfo=timezone.utc).timestamp() * 1000)


def test_utc_now_is_timezone_aware() -> None:
    """utc_now should carry UTC tzinfo."""

    assert utc_now().tzinfo is timezone.utc


def test_market_time_handles_standard_and_daylight_offsets() -> None:
    """14:30 UTC is 09:30 ET in January, 13:30 UTC is 09:30 ET in July."""

    clock = MarketClock("America/New_York")

    assert clock.to_market_time(_utc_ms(2026, 1, 12, 14, 30)) == datetime(2026, 1, 12, 9, 30)
    assert clock.to_market_time(_utc_ms(2026, 7, 13, 13, 30)) == datetime(2026, 7, 13, 9, 30)


def test_epoch_round_trip_for_civil_times() -> None:
    """Civil -> epoch -> civil is stable away from DST folds."""

    clock = MarketClock()
    for civil in (datetime(2026, 1, 12, 18, 0), datetime(2026, 7, 13, 3, 15)):
        assert clock.to_market_time(clock.to_epoch_ms(civil)) == civil


def test_clock_output_feeds_trading_date() -> None:
    """Evening instants in market time belong to the next trading date."""

    clock = MarketClock()
    evening = clock.to_market_time(_utc_ms(2026, 1, 13, 0, 0))
    morning = clock.to_market_time(_utc_ms(2026, 1, 12, 13, 30))

    assert evening == datetime(2026, 1, 12, 19, 0)
    assert market_date(evening) == date(2026, 1, 13)
    assert market_date(morning) == date(2026, 1, 12)
