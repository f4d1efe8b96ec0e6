"""Time helpers: UTC timestamps and conversion between epoch instants and exchange civil time."""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

_DEFAULT_TRADING_TIMEZONE = "America/New_York"


def utc_now() -> datetime:
    """Return current UTC datetime with timezone attached."""

    return datetime.now(timezone.utc)


class MarketClock:
    """Converts epoch milliseconds to naive civil time in a fixed trading timezone and back."""

    def __init__(self, tz_name: str = _DEFAULT_TRADING_TIMEZONE) -> None:
        self.tz_name = tz_name
        self._zone = ZoneInfo(tz_name)

    def to_market_time(self, epoch_ms: int) -> datetime:
        aware = datetime.fromtimestamp(epoch_ms / 1000.0, tz=timezone.utc).astimezone(self._zone)
        return aware.replace(tzinfo=None)

    def to_epoch_ms(self, civil_time: datetime) -> int:
        """Return epoch milliseconds for a naive civil datetime (first occurrence on DST folds)."""

        aware = civil_time.replace(tzinfo=self._zone)
        return int(round(aware.timestamp() * 1000.0))
