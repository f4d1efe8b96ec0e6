"""Settings normalization for symbols, scoring presets and numeric fallbacks."""

from overnight_context.core.config import Settings, get_settings
from overnight_context.core.types import BALANCED, VOLUME_HEAVY


def test_replay_symbols_are_normalized_and_deduplicated() -> None:
    """CSV symbols are upper-cased with blanks and repeats removed."""

    settings = Settings(REPLAY_SYMBOLS=" es, nq,,ES ,cl ")
    assert settings.replay_symbols() == ("ES", "NQ", "CL")


def test_replay_symbols_fall_back_to_symbol() -> None:
    """Without REPLAY_SYMBOLS the single SYMBOL is replayed."""

    assert Settings(REPLAY_SYMBOLS="", SYMBOL="nq").replay_symbols() == ("NQ",)
    assert Settings(REPLAY_SYMBOLS="", SYMBOL=" ").replay_symbols() == ("ES",)


def test_scoring_method_resolution() -> None:
    """Known presets resolve by name; anything else is BALANCED."""

    assert Settings(SCORING_METHOD="volume_heavy").scoring_method() is VOLUME_HEAVY
    assert Settings(SCORING_METHOD="mystery").scoring_method() is BALANCED


def test_numeric_settings_fall_back_when_unusable() -> None:
    """Non-positive or out-of-range values are replaced with working defaults."""

    settings = Settings(
        DEFAULT_TICK_SIZE=0.0,
        ATR_PERIOD=0,
        VWAP_BAND_MULTIPLIER=-1.0,
        VALUE_AREA_SHARE=1.5,
        MAX_PROFILE_LEVELS=1,
        POC_HISTORY_BARS=0,
    )

    assert settings.tick_size() == 0.25
    assert settings.atr_period() == 14
    assert settings.band_multiplier() == 0.0
    assert settings.value_area_share() == 0.70
    assert settings.max_profile_levels() == 1000
    assert settings.poc_history_bars() == 1


def test_numeric_settings_pass_through_valid_values() -> None:
    """Valid overrides are kept as given."""

    settings = Settings(DEFAULT_TICK_SIZE=0.1, ATR_PERIOD=20, VALUE_AREA_SHARE=0.68, MAX_PROFILE_LEVELS=250)

    assert settings.tick_size() == 0.1
    assert settings.atr_period() == 20
    assert settings.value_area_share() == 0.68
    assert settings.max_profile_levels() == 250


def test_get_settings_is_cached() -> None:
    """Repeated calls share one parsed Settings instance."""

    assert get_settings() is get_settings()
