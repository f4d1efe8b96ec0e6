"""Replay service that tails a JSONL bar feed and logs an overnight context snapshot per bar."""

import json
import logging
import math
import signal
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from overnight_context.analytics.analyzer import BarAnalysis, OvernightContextAnalyzer
from overnight_context.core.config import Settings, get_settings
from overnight_context.core.logging import configure_logging
from overnight_context.core.types import Bar

_POLL_SLEEP_S = 0.5
_WAIT_LOG_POLL_INTERVAL = 20


@dataclass(slots=True)
class TailState:
    """Mutable file tail offset and wait-tracking state."""

    path: Path
    offset: int = 0
    wait_polls: int = 0


@dataclass(slots=True)
class SymbolFeed:
    """Bars received so far for one symbol and the analyzer that owns them."""

    analyzer: OvernightContextAnalyzer
    bars: list[Bar] = field(default_factory=list)


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_price(value: Any) -> float:
    """Prices that fail to parse become NaN so the analyzer treats the bar as bad data."""

    if value is None or isinstance(value, bool):
        return math.nan
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def _first_present(payload: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in payload:
            return payload[key]
    return None


def _normalize_symbol(value: Any) -> str:
    return str(value).upper().strip() if value is not None else ""


def parse_bar(payload: dict[str, Any]) -> Bar | None:
    """Build a Bar from a feed line; accepts long (open/high/...) or short (o/h/...) keys."""

    symbol = _normalize_symbol(payload.get("symbol"))
    start_time_ms = _as_int(_first_present(payload, "start_time_ms", "open_time_ms"))
    if not symbol or start_time_ms is None:
        return None

    volume = _as_int(_first_present(payload, "volume", "v"))
    if volume is None:
        volume_float = _as_price(_first_present(payload, "volume", "v"))
        volume = int(volume_float) if math.isfinite(volume_float) else 0

    return Bar(
        start_time_ms=start_time_ms,
        open=_as_price(_first_present(payload, "open", "o")),
        high=_as_price(_first_present(payload, "high", "h")),
        low=_as_price(_first_present(payload, "low", "l")),
        close=_as_price(_first_present(payload, "close", "c")),
        volume=max(0, volume),
        symbol=symbol,
    )


def _parse_json_line(raw_line: str, logger: logging.Logger) -> dict[str, Any] | None:
    line = raw_line.strip()
    if not line:
        return None

    try:
        payload = json.loads(line)
    except json.JSONDecodeError:
        logger.warning("replay_invalid_json")
        return None

    if not isinstance(payload, dict):
        return None
    return payload


def _read_new_lines(tail: TailState, logger: logging.Logger) -> list[str]:
    if not tail.path.exists():
        tail.wait_polls += 1
        if tail.wait_polls % _WAIT_LOG_POLL_INTERVAL == 0:
            logger.info("replay_waiting_for_file", extra={"path": str(tail.path)})
        return []

    try:
        size = tail.path.stat().st_size
    except OSError as exc:
        tail.wait_polls += 1
        logger.warning("replay_stat_failed", extra={"path": str(tail.path), "error": str(exc)})
        return []

    if size < tail.offset:
        logger.info(
            "replay_file_truncated",
            extra={"path": str(tail.path), "previous_offset": tail.offset, "size": size},
        )
        tail.offset = 0

    try:
        with tail.path.open("r", encoding="utf-8") as file_obj:
            file_obj.seek(tail.offset)
            lines = file_obj.readlines()
            tail.offset = file_obj.tell()
    except OSError as exc:
        tail.wait_polls += 1
        logger.warning("replay_read_failed", extra={"path": str(tail.path), "error": str(exc)})
        return []

    if lines:
        tail.wait_polls = 0
    else:
        tail.wait_polls += 1
    return lines


def ingest_bar(feed: SymbolFeed, bar: Bar, logger: logging.Logger) -> BarAnalysis | None:
    """Append (or replace, for a repeated start time) a bar and analyze it."""

    if feed.bars:
        last_start = feed.bars[-1].start_time_ms
        if bar.start_time_ms < last_start:
            logger.warning(
                "replay_bar_out_of_order",
                extra={
                    "symbol": bar.symbol,
                    "start_time_ms": bar.start_time_ms,
                    "last_start_time_ms": last_start,
                },
            )
            return None
        if bar.start_time_ms == last_start:
            feed.bars[-1] = bar
            return _analyze_latest(feed)

    feed.bars.append(bar)
    return _analyze_latest(feed)


def _analyze_latest(feed: SymbolFeed) -> BarAnalysis | None:
    """Analyze the newest bar, then drop bars the analyzer can no longer reach."""

    index = len(feed.bars) - 1
    analysis = feed.analyzer.on_bar(feed.bars, index)

    drop = feed.analyzer.first_needed_index(index)
    if drop > 0:
        del feed.bars[:drop]
        feed.analyzer.rebase(drop)
    return analysis


def _log_analysis(analysis: BarAnalysis, logger: logging.Logger) -> None:
    snapshot = analysis.snapshot
    logger.info(
        "context_snapshot",
        extra={
            **snapshot.to_dict(),
            "index": analysis.index,
            "vwap_upper": analysis.bands.upper,
            "vwap_lower": analysis.bands.lower,
            "session_start_index": analysis.window.start_index,
        },
    )


def _request_shutdown(shutdown_event: threading.Event, logger: logging.Logger, signal_name: str) -> None:
    if shutdown_event.is_set():
        return
    logger.info("replay_shutdown_signal", extra={"signal": signal_name})
    shutdown_event.set()


def _install_signal_handlers(shutdown_event: threading.Event, logger: logging.Logger) -> None:
    for sig in (signal.SIGINT, signal.SIGTERM):
        signal_name = sig.name
        signal.signal(
            sig,
            lambda *_args, signal_name=signal_name: _request_shutdown(
                shutdown_event,
                logger,
                signal_name,
            ),
        )


def build_feeds(settings: Settings) -> dict[str, SymbolFeed]:
    return {
        symbol: SymbolFeed(analyzer=OvernightContextAnalyzer.from_settings(settings, symbol=symbol))
        for symbol in settings.replay_symbols()
    }


def main() -> int:
    """Tail the bar feed until interrupted."""

    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    logger = logging.getLogger(__name__)
    shutdown_event = threading.Event()

    feeds = build_feeds(settings)
    if not feeds:
        logger.error("replay_invalid_symbols")
        return 1

    tail = TailState(path=Path(settings.REPLAY_BARS_PATH))
    _install_signal_handlers(shutdown_event, logger)
    logger.info(
        "replay_startup",
        extra={
            "symbols": list(feeds),
            "bars_path": settings.REPLAY_BARS_PATH,
            "timezone": settings.TRADING_TIMEZONE,
            "scoring_method": settings.scoring_method().name,
            "tick_size": settings.tick_size(),
        },
    )

    snapshot_count = 0
    while not shutdown_event.is_set():
        lines = _read_new_lines(tail, logger)
        if not lines:
            shutdown_event.wait(_POLL_SLEEP_S)
            continue

        for raw_line in lines:
            if shutdown_event.is_set():
                break

            payload = _parse_json_line(raw_line, logger)
            if payload is None:
                continue

            bar = parse_bar(payload)
            if bar is None:
                logger.warning("replay_bar_unparseable")
                continue

            feed = feeds.get(bar.symbol)
            if feed is None:
                continue

            analysis = ingest_bar(feed, bar, logger)
            if analysis is None:
                continue

            snapshot_count += 1
            _log_analysis(analysis, logger)

    logger.info("replay_shutdown", extra={"snapshots_logged": snapshot_count})
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
