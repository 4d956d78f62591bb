"""Main application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager

# Configure logging FIRST, before any other imports
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)

# Reduce noise from third-party libraries (must be set before importing them)
logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("asyncio").setLevel(logging.WARNING)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from app.api import router
from app.clients import BinanceRestClient
from app.config import get_settings
from app.services import FeatureBuilder, SnapshotService, build_ai_service
from app.storage import MarketDataRepository, SignalSnapshotRepository, get_database, init_database

logger = logging.getLogger(__name__)

_capture_task: asyncio.Task | None = None


async def _periodic_capture(service: SnapshotService, symbols: list[str], interval: str, every_s: float):
    """Background task: capture + label once per tick."""
    while True:
        try:
            captured = await service.run_cycle(symbols, interval)
            logger.info(f"Capture cycle done: {captured}/{len(symbols)} symbols")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Capture cycle error: {e}")
        await asyncio.sleep(every_s)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global _capture_task

    settings = get_settings()
    logger.info("Starting signal dashboard backend...")

    await init_database()
    logger.info("Database initialized")

    price_client = BinanceRestClient(
        base_url=settings.binance_base_url,
        api_key=settings.binance_api_key,
        calls_per_minute=settings.binance_calls_per_minute,
    )

    if settings.capture_enabled:
        service = SnapshotService(
            feature_builder=FeatureBuilder(MarketDataRepository()),
            snapshot_repo=SignalSnapshotRepository(),
            price_client=price_client,
            horizon_hours=settings.label_horizon_hours,
            flat_threshold_pct=settings.label_flat_threshold_pct,
            label_batch_size=settings.label_batch_size,
            ai_service=build_ai_service(settings),
        )
        _capture_task = asyncio.create_task(
            _periodic_capture(
                service,
                settings.symbols,
                settings.default_interval,
                settings.capture_interval_minutes * 60,
            )
        )
        logger.info(
            f"Snapshot capture started: {settings.symbols} every "
            f"{settings.capture_interval_minutes}m"
        )

    yield

    # Shutdown
    logger.info("Shutting down...")

    if _capture_task:
        _capture_task.cancel()
        try:
            await _capture_task
        except asyncio.CancelledError:
            pass
        _capture_task = None

    await price_client.close()

    try:
        await get_database().close()
        logger.info("Database connections closed")
    except Exception as e:
        logger.warning(f"Error closing database: {e}")

    logger.info("Shutdown complete")


# Create FastAPI app with orjson for faster JSON serialization
app = FastAPI(
    title="Derivatives Signal Desk",
    description="Signal analytics and backtests for the derivatives dashboard",
    version="0.1.0",
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, restrict this
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include REST routes
app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Derivatives Signal Desk",
        "version": "0.1.0",
        "docs": "/docs",
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


def main():
    """Run the application."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
