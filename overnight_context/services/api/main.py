"""FastAPI service exposing health, version and stateless overnight context scoring."""

import logging
import math
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from overnight_context.analytics.analyzer import OvernightContextAnalyzer
from overnight_context.core.config import get_settings
from overnight_context.core.logging import configure_logging
from overnight_context.core.types import Bar, scoring_method_from_name

settings = get_settings()
configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


class BarPayload(BaseModel):
    """One OHLCV bar; missing prices are treated as bad data, not rejected."""

    start_time_ms: int
    open: float | None = None
    high: float | None = None
    low: float | None = None
    close: float | None = None
    volume: int = Field(default=0, ge=0)

    def to_bar(self, symbol: str) -> Bar:
        return Bar(
            start_time_ms=self.start_time_ms,
            open=_price_or_nan(self.open),
            high=_price_or_nan(self.high),
            low=_price_or_nan(self.low),
            close=_price_or_nan(self.close),
            volume=self.volume,
            symbol=symbol,
        )


class ContextRequest(BaseModel):
    """Bars for one instrument in chronological order."""

    symbol: str = Field(min_length=1)
    bars: list[BarPayload]
    tick_size: float | None = None
    scoring_method: str | None = None
    band_multiplier: float | None = Field(default=None, ge=0.0)


def _price_or_nan(value: float | None) -> float:
    return math.nan if value is None else value


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    """Log startup metadata for operational visibility."""

    logger.info(
        "api_startup",
        extra={"service": "api", "env": settings.ENV, "version": settings.VERSION},
    )
    yield


app = FastAPI(title=settings.APP_NAME, version=settings.VERSION, lifespan=lifespan)


@app.get("/health")
def health() -> dict[str, str]:
    """Return process liveness status."""

    return {"status": "ok"}


@app.get("/version")
def version() -> dict[str, str]:
    """Return application metadata from shared settings."""

    return {
        "name": settings.APP_NAME,
        "version": settings.VERSION,
        "env": settings.ENV,
    }


@app.post("/context")
def context(request: ContextRequest) -> dict[str, Any]:
    """Replay the posted bars through a fresh analyzer and return the latest context."""

    if not request.bars:
        raise HTTPException(status_code=400, detail="bars must not be empty")

    symbol = request.symbol.strip().upper()
    analyzer = OvernightContextAnalyzer.from_settings(settings, symbol=symbol, tick_size=request.tick_size)
    if request.scoring_method is not None:
        analyzer.method = scoring_method_from_name(request.scoring_method)
    if request.band_multiplier is not None:
        analyzer.band_multiplier = request.band_multiplier

    ordered = sorted(request.bars, key=lambda payload: payload.start_time_ms)
    bars = [payload.to_bar(symbol) for payload in ordered]
    analyses = analyzer.run(bars)

    latest = analyses[-1] if analyses and analyses[-1].index == len(bars) - 1 else None
    response: dict[str, Any] = {
        "symbol": symbol,
        "bars_received": len(bars),
        "overnight_bars": len(analyses),
        "scoring_method": analyzer.method.name,
        "snapshot": None,
        "bands": None,
        "session": None,
    }
    if latest is None:
        logger.info("context_not_overnight", extra={"symbol": symbol, "bars": len(bars)})
        return response

    response["snapshot"] = latest.snapshot.to_dict()
    response["bands"] = {
        "upper": latest.bands.upper,
        "lower": latest.bands.lower,
        "stddev": latest.bands.stddev,
    }
    response["session"] = {
        "start": latest.window.start.isoformat(),
        "end": latest.window.end.isoformat(),
        "start_index": latest.window.start_index,
        "end_index": latest.window.end_index,
    }
    logger.info(
        "context_scored",
        extra={
            "symbol": symbol,
            "context_score": latest.snapshot.composite_score,
            "interpretation": latest.snapshot.interpretation,
        },
    )
    return response
