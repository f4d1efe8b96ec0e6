"""Per-instrument orchestration: session resets, VWAP, profile and scoring for every bar."""

import logging
from collections import deque
from dataclasses import dataclass, field, replace
from typing import Sequence

from overnight_context.analytics import vwap as vwap_calc
from overnight_context.analytics.atr import average_true_range
from overnight_context.analytics.scoring import score_context
from overnight_context.analytics.session import is_boundary, is_overnight, resolve_overnight_window
from overnight_context.analytics.volume_profile import (
    DEFAULT_MAX_LEVELS,
    DEFAULT_VALUE_AREA_SHARE,
    VolumeProfileBuilder,
    resolve_tick_size,
)
from overnight_context.core.config import Settings
from overnight_context.core.time_utils import MarketClock
from overnight_context.core.types import (
    BALANCED,
    Bar,
    MarketContextSnapshot,
    ScoringMethod,
    SessionWindow,
    VolumeProfile,
    VWAPBands,
    VWAPState,
)

logger = logging.getLogger(__name__)

_DEFAULT_TICK_SIZE = 0.25
_UNKNOWN_SYMBOL = "UNKNOWN"


@dataclass(slots=True)
class SessionState:
    """Running state owned by one instrument for its current overnight window."""

    window: SessionWindow
    vwap_state: VWAPState = field(default_factory=VWAPState)
    histogram: VolumeProfile | None = None
    last_index: int | None = None


@dataclass(frozen=True, slots=True)
class BarAnalysis:
    """Everything computed for one overnight bar."""

    index: int
    window: SessionWindow
    vwap: float | None
    bands: VWAPBands
    profile: VolumeProfile
    atr: float
    snapshot: MarketContextSnapshot


class OvernightContextAnalyzer:
    """Feeds one instrument's bars, in order, through the overnight analytics pipeline.

    State lives on the instance, so instruments processed side by side each need
    their own analyzer.
    """

    def __init__(
        self,
        symbol: str,
        *,
        clock: MarketClock | None = None,
        tick_size: float | None = None,
        default_tick_size: float = _DEFAULT_TICK_SIZE,
        band_multiplier: float = 2.0,
        atr_period: int = 14,
        method: ScoringMethod = BALANCED,
        value_area_share: float = DEFAULT_VALUE_AREA_SHARE,
        max_levels: int = DEFAULT_MAX_LEVELS,
        poc_history: int = 500,
    ) -> None:
        self.symbol = symbol.strip().upper()
        self.clock = clock or MarketClock()
        self.band_multiplier = band_multiplier
        self.atr_period = atr_period
        self.method = method
        self.builder = VolumeProfileBuilder(
            tick_size=resolve_tick_size(tick_size, default_tick_size),
            value_area_share=value_area_share,
            max_levels=max_levels,
        )
        self._state: SessionState | None = None
        self._poc_history: deque[tuple[int, float]] = deque(maxlen=max(1, poc_history))

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        symbol: str | None = None,
        tick_size: float | None = None,
    ) -> "OvernightContextAnalyzer":
        return cls(
            symbol or settings.SYMBOL,
            clock=MarketClock(settings.TRADING_TIMEZONE),
            tick_size=tick_size,
            default_tick_size=settings.tick_size(),
            band_multiplier=settings.band_multiplier(),
            atr_period=settings.atr_period(),
            method=settings.scoring_method(),
            value_area_share=settings.value_area_share(),
            max_levels=settings.max_profile_levels(),
            poc_history=settings.poc_history_bars(),
        )

    @property
    def state(self) -> SessionState | None:
        """Detached copy of the running state; later bars do not change it."""

        return _copy_state(self._state)

    def restore(self, state: SessionState | None) -> None:
        """Install previously saved session state, or None to force a re-scan."""

        self._state = _copy_state(state)

    def first_needed_index(self, index: int) -> int:
        """Oldest bar index later calls can still read once bars[index] has been processed."""

        lookback = index - max(1, self.atr_period)
        if self._state is None:
            return max(0, lookback)
        return max(0, min(self._state.window.start_index, lookback))

    def rebase(self, offset: int) -> None:
        """Shift stored bar indices after the caller drops its first `offset` bars."""

        if offset <= 0:
            return
        state = self._state
        if state is not None:
            if state.window.start_index < offset:
                raise ValueError(f"cannot drop {offset} bars, session starts at {state.window.start_index}")
            state.window = replace(
                state.window,
                start_index=state.window.start_index - offset,
                end_index=state.window.end_index - offset,
            )
            if state.last_index is not None:
                state.last_index -= offset
        self._poc_history = deque(
            ((index - offset, poc) for index, poc in self._poc_history),
            maxlen=self._poc_history.maxlen,
        )

    def on_bar(self, bars: Sequence[Bar], index: int) -> BarAnalysis | None:
        """Process bars[index]; returns None outside the overnight session."""

        bar = bars[index]
        civil_time = self.clock.to_market_time(bar.start_time_ms)
        previous_time = self.clock.to_market_time(bars[index - 1].start_time_ms) if index > 0 else None

        atr = average_true_range(bars, index, self.atr_period)

        if is_boundary(previous_time, civil_time):
            self._start_session(bars, index)

        if not is_overnight(civil_time):
            return None

        if self._state is None or not self._state.window.contains(civil_time):
            self._start_session(bars, index)

        state = self._state
        start_index = state.window.start_index

        if state.last_index is not None and state.last_index == index - 1 and state.histogram is not None:
            state.vwap_state = vwap_calc.update(state.vwap_state, bar)
            self.builder.add_bar(state.histogram, bar)
        else:
            state.vwap_state = vwap_calc.rescan(bars, start_index, index)
            state.histogram = self._rebuild_histogram(bars, start_index, index)
        state.last_index = index

        if not bar.is_valid:
            logger.debug(
                "bar_skipped_invalid",
                extra={"symbol": self.symbol, "index": index, "start_time_ms": bar.start_time_ms},
            )

        session_vwap = vwap_calc.vwap(state.vwap_state)
        bands = vwap_calc.bands(bars, start_index, index, session_vwap, self.band_multiplier)
        profile = self.builder.finalize(
            VolumeProfile(
                tick_size=self.builder.tick_size,
                levels=dict(state.histogram.levels),
                total_volume=state.histogram.total_volume,
            )
        )

        snapshot = score_context(
            timestamp=civil_time,
            symbol=self.symbol or bar.symbol or _UNKNOWN_SYMBOL,
            price=bar.close,
            vwap=session_vwap,
            atr=atr,
            profile=profile,
            method=self.method,
        )
        self._poc_history.append((index, profile.poc))

        return BarAnalysis(
            index=index,
            window=state.window,
            vwap=session_vwap,
            bands=bands,
            profile=profile,
            atr=atr,
            snapshot=snapshot,
        )

    def run(self, bars: Sequence[Bar]) -> list[BarAnalysis]:
        """Replay a whole bar sequence and collect the overnight analyses."""

        results: list[BarAnalysis] = []
        for index in range(len(bars)):
            analysis = self.on_bar(bars, index)
            if analysis is not None:
                results.append(analysis)
        return results

    def poc_migration(self, index: int, lookback: int) -> float:
        """POC change versus the analyzed bar `lookback` bars earlier; 0.0 when unknown."""

        if lookback <= 0:
            return 0.0
        recorded = dict(self._poc_history)
        current = recorded.get(index)
        previous = recorded.get(index - lookback)
        if current is None or previous is None:
            return 0.0
        return current - previous

    def _start_session(self, bars: Sequence[Bar], index: int) -> None:
        window = resolve_overnight_window(bars, index, self.clock, search_limit=index + 1)
        self._state = SessionState(window=window)
        logger.info(
            "session_boundary",
            extra={
                "symbol": self.symbol,
                "index": index,
                "session_start": window.start,
                "session_end": window.end,
                "start_index": window.start_index,
                "end_index": window.end_index,
            },
        )

    def _rebuild_histogram(self, bars: Sequence[Bar], start_index: int, end_index: int) -> VolumeProfile:
        histogram = self.builder.empty()
        if start_index < 0 or start_index > end_index:
            return histogram
        for i in range(start_index, end_index + 1):
            self.builder.add_bar(histogram, bars[i])
        return histogram


def _copy_state(state: SessionState | None) -> SessionState | None:
    if state is None:
        return None
    histogram = state.histogram
    if histogram is not None:
        histogram = replace(histogram, levels=dict(histogram.levels))
    return SessionState(
        window=state.window,
        vwap_state=state.vwap_state,
        histogram=histogram,
        last_index=state.last_index,
    )
