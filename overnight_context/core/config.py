"""Environment-driven settings shared by the API and replay services."""

from functools import lru_cache
from typing import Callable

from pydantic_settings import BaseSettings, SettingsConfigDict

from overnight_context.core.types import ScoringMethod, scoring_method_from_name

_FALLBACK_TICK_SIZE = 0.25
_FALLBACK_ATR_PERIOD = 14
_FALLBACK_VALUE_AREA_SHARE = 0.70
_FALLBACK_MAX_PROFILE_LEVELS = 1000


class Settings(BaseSettings):
    """Application settings loaded from environment variables or a local .env file."""

    APP_NAME: str = "Overnight Context Analyzer"
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    VERSION: str = "0.1.0"
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    SYMBOL: str = "ES"
    TRADING_TIMEZONE: str = "America/New_York"
    DEFAULT_TICK_SIZE: float = _FALLBACK_TICK_SIZE
    VWAP_BAND_MULTIPLIER: float = 2.0
    ATR_PERIOD: int = _FALLBACK_ATR_PERIOD
    SCORING_METHOD: str = "BALANCED"
    VALUE_AREA_SHARE: float = _FALLBACK_VALUE_AREA_SHARE
    MAX_PROFILE_LEVELS: int = _FALLBACK_MAX_PROFILE_LEVELS
    POC_HISTORY_BARS: int = 500
    REPLAY_BARS_PATH: str = "/app/data/bars.jsonl"
    REPLAY_SYMBOLS: str = ""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def replay_symbols(self) -> tuple[str, ...]:
        """Return normalized replay symbols, defaulting to SYMBOL."""

        symbols = self._split_csv(self.REPLAY_SYMBOLS, transform=str.upper)
        if symbols:
            return symbols

        symbol = self.SYMBOL.strip().upper()
        if symbol:
            return (symbol,)
        return ("ES",)

    def scoring_method(self) -> ScoringMethod:
        """Return the configured weight preset (BALANCED when unknown)."""

        return scoring_method_from_name(self.SCORING_METHOD)

    def tick_size(self) -> float:
        """Return a positive default tick size."""

        if self.DEFAULT_TICK_SIZE > 0.0:
            return self.DEFAULT_TICK_SIZE
        return _FALLBACK_TICK_SIZE

    def atr_period(self) -> int:
        return self.ATR_PERIOD if self.ATR_PERIOD > 0 else _FALLBACK_ATR_PERIOD

    def band_multiplier(self) -> float:
        return max(0.0, self.VWAP_BAND_MULTIPLIER)

    def value_area_share(self) -> float:
        """Return the value-area share clamped into (0, 1]."""

        if 0.0 < self.VALUE_AREA_SHARE <= 1.0:
            return self.VALUE_AREA_SHARE
        return _FALLBACK_VALUE_AREA_SHARE

    def max_profile_levels(self) -> int:
        # a single level cannot span a range
        if self.MAX_PROFILE_LEVELS >= 2:
            return self.MAX_PROFILE_LEVELS
        return _FALLBACK_MAX_PROFILE_LEVELS

    def poc_history_bars(self) -> int:
        return max(1, self.POC_HISTORY_BARS)

    @staticmethod
    def _split_csv(value: str, transform: Callable[[str], str]) -> tuple[str, ...]:
        """Split comma-separated values while removing empty entries and duplicates."""

        items: list[str] = []
        seen: set[str] = set()

        for raw in value.split(","):
            item = transform(raw.strip())
            if not item or item in seen:
                continue
            seen.add(item)
            items.append(item)

        return tuple(items)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings to avoid repeated environment parsing."""

    return Settings()
