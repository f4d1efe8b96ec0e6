"""Overnight/RTH session classification and overnight window resolution over a bar sequence."""

from datetime import date, datetime, time, timedelta
from typing import Sequence

from overnight_context.core.time_utils import MarketClock
from overnight_context.core.types import Bar, SessionKind, SessionWindow

RTH_START = time(9, 30)
RTH_END = time(16, 0)
OVERNIGHT_START = time(18, 0)


def classify(civil_time: datetime) -> SessionKind:
    """OVERNIGHT strictly after 18:00 or strictly before 09:30, otherwise RTH."""

    time_of_day = civil_time.time()
    if time_of_day > OVERNIGHT_START or time_of_day < RTH_START:
        return SessionKind.OVERNIGHT
    return SessionKind.RTH


def is_overnight(civil_time: datetime) -> bool:
    return classify(civil_time) is SessionKind.OVERNIGHT


def is_rth(civil_time: datetime) -> bool:
    """True inside the regular cash session, 09:30 through 16:00 inclusive."""

    return RTH_START <= civil_time.time() <= RTH_END


def is_boundary(previous: datetime | None, current: datetime) -> bool:
    """True when the session kind changes between two bars; the first bar always starts one."""

    if previous is None:
        return True
    return classify(previous) is not classify(current)


def next_rth_open(civil_time: datetime) -> datetime:
    rth_open = datetime.combine(civil_time.date(), RTH_START)
    if civil_time.time() < RTH_START:
        return rth_open
    return rth_open + timedelta(days=1)


def market_date(civil_time: datetime) -> date:
    """Trading date for a civil time; evening bars roll into the next date."""

    if civil_time.time() > OVERNIGHT_START:
        return civil_time.date() + timedelta(days=1)
    return civil_time.date()


def overnight_bounds(civil_time: datetime) -> tuple[datetime, datetime]:
    """Return (start, end) of the overnight window that owns, or last preceded, civil_time."""

    anchor_date = civil_time.date()
    if civil_time.time() > OVERNIGHT_START:
        start_date = anchor_date
    else:
        # morning half of the overnight, or RTH pointing at the last completed overnight
        start_date = anchor_date - timedelta(days=1)

    start = datetime.combine(start_date, OVERNIGHT_START)
    end = datetime.combine(start_date + timedelta(days=1), RTH_START)
    return start, end


def find_time_index(
    bars: Sequence[Bar],
    anchor_index: int,
    target_ms: int,
    search_limit: int | None = None,
) -> int:
    """Locate the bar for target_ms, tolerating gaps at the exact boundary.

    Searches backward from the anchor for the last bar starting at or before
    the target, then forward (up to search_limit, exclusive) for the first bar
    starting at or after it, and finally falls back to the anchor itself.
    """

    for i in range(anchor_index, -1, -1):
        if bars[i].start_time_ms <= target_ms:
            return i

    limit = len(bars) if search_limit is None else min(search_limit, len(bars))
    for i in range(anchor_index + 1, limit):
        if bars[i].start_time_ms >= target_ms:
            return i

    return anchor_index


def resolve_overnight_window(
    bars: Sequence[Bar],
    anchor_index: int,
    clock: MarketClock,
    search_limit: int | None = None,
) -> SessionWindow:
    """Resolve the overnight window for the anchor bar; never raises for sparse data."""

    anchor_time = clock.to_market_time(bars[anchor_index].start_time_ms)
    start, end = overnight_bounds(anchor_time)

    start_index = find_time_index(bars, anchor_index, clock.to_epoch_ms(start), search_limit)
    end_index = find_time_index(bars, anchor_index, clock.to_epoch_ms(end), search_limit)

    return SessionWindow(
        start=start,
        end=end,
        start_index=start_index,
        end_index=end_index,
        kind=SessionKind.OVERNIGHT,
    )
