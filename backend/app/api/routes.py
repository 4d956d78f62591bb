"""REST API routes consumed by the dashboard's signal widgets."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from core.models.features import FeatureSet
from core.models.signal import AiPrediction, SignalScore
from core.signal_engine import SignalEngine
from app.config import Settings, get_settings
from app.services.ai_signal import AiSignalService, build_ai_service
from app.services.feature_builder import FeatureBuilder
from app.storage import MarketDataRepository, SignalSnapshotRepository
from backtest.report import ReportFormatter
from backtest.service import BacktestService, parse_datetime

logger = logging.getLogger(__name__)

router = APIRouter()


# Response models
class SystemStatus(BaseModel):
    status: str
    version: str
    symbols: list[str]
    interval: str


class AnalyticsResponse(BaseModel):
    features: FeatureSet
    signal: SignalScore
    ai: Optional[AiPrediction] = None


class SnapshotResponse(BaseModel):
    id: str
    symbol: str
    pair: str
    interval: str
    generated_at: datetime
    price_now: Optional[float] = None
    price_future: Optional[float] = None
    signal_rule: str
    signal_score: float
    signal_confidence: float
    signal_reasons: list[str]
    ai_probability: Optional[float] = None
    ai_decision: Optional[str] = None
    label_direction: Optional[str] = None
    label_magnitude: Optional[float] = None


# Dependencies (overridable in tests)
def get_snapshot_repo() -> SignalSnapshotRepository:
    return SignalSnapshotRepository()


def get_feature_builder() -> FeatureBuilder:
    return FeatureBuilder(MarketDataRepository())


def get_signal_engine() -> SignalEngine:
    return SignalEngine()


def get_ai_service(settings: Settings = Depends(get_settings)) -> AiSignalService | None:
    return build_ai_service(settings)


@router.get("/status", response_model=SystemStatus)
async def get_status(settings: Settings = Depends(get_settings)):
    """Get system status."""
    return SystemStatus(
        status="running",
        version="0.1.0",
        symbols=settings.symbols,
        interval=settings.default_interval,
    )


@router.get("/signal/analytics", response_model=AnalyticsResponse)
async def get_signal_analytics(
    symbol: Optional[str] = Query(None, min_length=2, max_length=20),
    pair: Optional[str] = Query(None, description="Spot/perp pair, defaults to DEFAULT_PAIR or SYMBOL+USDT"),
    interval: Optional[str] = Query(None),
    settings: Settings = Depends(get_settings),
    builder: FeatureBuilder = Depends(get_feature_builder),
    engine: SignalEngine = Depends(get_signal_engine),
    ai_service: Optional[AiSignalService] = Depends(get_ai_service),
):
    """Build current features and score them."""
    symbol = (symbol or settings.default_symbol).upper()
    if not pair:
        pair = settings.default_pair if symbol == settings.default_symbol.upper() else f"{symbol}USDT"
    features = await builder.build(symbol, pair, interval or settings.default_interval)
    score = engine.score(features)
    prediction = ai_service.predict(features) if ai_service else None
    return AnalyticsResponse(features=features, signal=score, ai=prediction)


@router.get("/signal/history", response_model=list[SnapshotResponse])
async def get_signal_history(
    symbol: Optional[str] = Query(None, description="Filter by symbol"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum snapshots to return"),
    repo: SignalSnapshotRepository = Depends(get_snapshot_repo),
):
    """Get recent scored snapshots."""
    snapshots = await repo.get_recent(symbol=symbol, limit=limit)
    return [
        SnapshotResponse(
            id=s.id,
            symbol=s.symbol,
            pair=s.pair,
            interval=s.interval,
            generated_at=s.generated_at,
            price_now=s.price_now,
            price_future=s.price_future,
            signal_rule=s.signal_rule,
            signal_score=s.signal_score,
            signal_confidence=s.signal_confidence,
            signal_reasons=s.signal_reasons,
            ai_probability=s.ai_probability,
            ai_decision=s.ai_decision,
            label_direction=s.label_direction.value if s.label_direction else None,
            label_magnitude=s.label_magnitude,
        )
        for s in snapshots
    ]


@router.get("/signal/backtest")
async def get_signal_backtest(
    symbol: Optional[str] = Query(None, min_length=2, max_length=20),
    start: Optional[str] = Query(None, description="ISO start date"),
    end: Optional[str] = Query(None, description="ISO end date"),
    days: int = Query(30, ge=1, le=3650, description="Lookback days if start not provided"),
    repo: SignalSnapshotRepository = Depends(get_snapshot_repo),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """Run the rule backtest over labelled snapshots."""
    symbol = symbol or settings.default_symbol
    try:
        end_dt = parse_datetime(end) if end else datetime.now(timezone.utc)
        start_dt = parse_datetime(start) if start else end_dt - timedelta(days=days)
        result = await BacktestService(repo).run(symbol=symbol, start=start_dt, end=end_dt)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return ReportFormatter.to_dict(result)
