"""Maintain the cg_signal_dataset table.

capture() scores the current market state and stores it; label_pending()
later fills in the forward price once the label horizon has elapsed.
The backtest reads only labelled rows.
"""

import logging
from datetime import datetime, timedelta, timezone

from core.labeling import label_outcome
from core.models.signal import SignalSnapshot
from core.signal_engine import SignalEngine
from app.clients.binance_rest import BinanceRestClient
from app.services.ai_signal import AiSignalService
from app.services.feature_builder import FeatureBuilder
from app.storage.snapshot_repo import SignalSnapshotRepository

logger = logging.getLogger(__name__)


class SnapshotService:
    """Capture scored snapshots and label them with realised returns."""

    def __init__(
        self,
        feature_builder: FeatureBuilder,
        snapshot_repo: SignalSnapshotRepository,
        engine: SignalEngine | None = None,
        ai_service: AiSignalService | None = None,
        price_client: BinanceRestClient | None = None,
        horizon_hours: int = 24,
        flat_threshold_pct: float = 0.0,
        label_batch_size: int = 500,
    ):
        self.feature_builder = feature_builder
        self.snapshot_repo = snapshot_repo
        self.engine = engine or SignalEngine()
        self.ai_service = ai_service
        self.price_client = price_client
        self.horizon_hours = horizon_hours
        self.flat_threshold_pct = flat_threshold_pct
        self.label_batch_size = label_batch_size

    async def capture(
        self,
        symbol: str,
        pair: str,
        interval: str = "1h",
        as_of: datetime | None = None,
    ) -> SignalSnapshot:
        """Build features, score them and persist the snapshot.

        Raises ValueError when there is no spot close at `as_of`: such a
        snapshot could never be labelled.
        """
        features = await self.feature_builder.build(symbol, pair, interval, as_of)
        if features.microstructure.price.last_close is None:
            raise ValueError(
                f"No spot close for {features.pair} at {features.generated_at:%Y-%m-%d %H:%M}"
            )
        score = self.engine.score(features)
        prediction = self.ai_service.predict(features) if self.ai_service else None

        snapshot = SignalSnapshot(
            symbol=features.symbol,
            pair=features.pair,
            interval=features.interval,
            generated_at=features.generated_at,
            price_now=features.microstructure.price.last_close,
            signal_rule=score.signal.value,
            signal_score=score.score,
            signal_confidence=score.confidence,
            signal_reasons=score.reasons,
            features_payload=features.model_dump(mode="json"),
            ai_probability=prediction.probability if prediction else None,
            ai_decision=prediction.decision.value if prediction else None,
        )
        await self.snapshot_repo.save(snapshot)

        logger.info(
            f"[{snapshot.symbol}] Captured snapshot {snapshot.generated_at:%Y-%m-%d %H:%M}: "
            f"{snapshot.signal_rule} score={snapshot.signal_score:+.2f}"
        )
        return snapshot

    async def run_cycle(self, symbols: list[str], interval: str = "1h") -> int:
        """Capture every symbol, then label what has matured.

        A failing symbol is logged and does not stop the others.
        Returns the number of snapshots captured.
        """
        captured = 0
        for symbol in symbols:
            try:
                await self.capture(symbol, f"{symbol.upper()}USDT", interval)
                captured += 1
            except Exception:
                logger.error(f"Snapshot capture failed: {symbol}", exc_info=True)

        if self.price_client is not None:
            await self.label_pending(limit=self.label_batch_size)
        return captured

    async def label_pending(self, now: datetime | None = None, limit: int = 500) -> int:
        """Label snapshots whose horizon has elapsed. Returns the number labelled."""
        if self.price_client is None:
            raise RuntimeError("A price client is required to label snapshots")

        now = now or datetime.now(timezone.utc)
        horizon = timedelta(hours=self.horizon_hours)
        pending = await self.snapshot_repo.get_unlabeled(before=now - horizon, limit=limit)

        labelled = 0
        for snapshot in pending:
            try:
                if await self._label(snapshot, horizon):
                    labelled += 1
            except Exception:
                logger.error(f"Failed to label snapshot {snapshot.id}", exc_info=True)

        if pending:
            logger.info(f"Labelled {labelled}/{len(pending)} pending snapshots")
        return labelled

    async def _label(self, snapshot: SignalSnapshot, horizon: timedelta) -> bool:
        if snapshot.price_now is None:
            logger.warning(f"Snapshot {snapshot.id} has no entry price, skipping")
            return False

        price_future = await self.price_client.get_price_at(
            snapshot.pair, snapshot.generated_at + horizon
        )
        if price_future is None:
            logger.warning(f"No forward price for {snapshot.pair} snapshot {snapshot.id}")
            return False

        direction, magnitude = label_outcome(
            snapshot.price_now, price_future, self.flat_threshold_pct
        )
        await self.snapshot_repo.update_label(
            snapshot.id,
            price_future=price_future,
            direction=direction,
            magnitude=magnitude,
            horizon_hours=self.horizon_hours,
        )
        return True
