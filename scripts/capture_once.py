#!/usr/bin/env python3
"""
Run a single snapshot capture + labelling cycle.

Meant for cron when the API process runs with CAPTURE_ENABLED=false.

Usage:
    python scripts/capture_once.py
    python scripts/capture_once.py --symbols BTC ETH SOL --interval 1h
    python scripts/capture_once.py --label-only
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from app.clients import BinanceRestClient
from app.config import get_settings
from app.services import FeatureBuilder, SnapshotService, build_ai_service
from app.storage import MarketDataRepository, SignalSnapshotRepository, init_database

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


async def main():
    settings = get_settings()

    parser = argparse.ArgumentParser(description="Capture and label signal snapshots once")
    parser.add_argument("--symbols", nargs="+", default=settings.symbols, help="Symbols to capture")
    parser.add_argument("--interval", default=settings.default_interval, help="Feature interval")
    parser.add_argument("--label-only", action="store_true", help="Only label matured snapshots")
    args = parser.parse_args()

    db = await init_database()
    price_client = BinanceRestClient(
        base_url=settings.binance_base_url,
        api_key=settings.binance_api_key,
        calls_per_minute=settings.binance_calls_per_minute,
    )
    service = SnapshotService(
        feature_builder=FeatureBuilder(MarketDataRepository(db)),
        snapshot_repo=SignalSnapshotRepository(db),
        price_client=price_client,
        horizon_hours=settings.label_horizon_hours,
        flat_threshold_pct=settings.label_flat_threshold_pct,
        label_batch_size=settings.label_batch_size,
        ai_service=build_ai_service(settings),
    )

    try:
        if args.label_only:
            labelled = await service.label_pending(limit=settings.label_batch_size)
            logger.info(f"Labelled {labelled} snapshots")
        else:
            captured = await service.run_cycle([s.upper() for s in args.symbols], args.interval)
            logger.info(f"Captured {captured}/{len(args.symbols)} symbols")
    finally:
        await price_client.close()
        await db.close()


if __name__ == "__main__":
    asyncio.run(main())
