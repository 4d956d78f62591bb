"""Signal and dataset snapshot models."""

import hashlib
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class SignalRule(str, Enum):
    """Rule-engine decision."""

    BUY = "BUY"
    SELL = "SELL"
    NEUTRAL = "NEUTRAL"

    @classmethod
    def parse(cls, value: str | None) -> "SignalRule | None":
        """Case-insensitive lookup. Returns None for unknown values."""
        if not value:
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None

    @property
    def is_trade(self) -> bool:
        return self in (SignalRule.BUY, SignalRule.SELL)


class LabelDirection(str, Enum):
    """Realised forward price move."""

    UP = "UP"
    DOWN = "DOWN"
    FLAT = "FLAT"


class SignalFactor(BaseModel):
    """One fired scoring rule."""

    reason: str
    weight: float
    context: dict[str, Any] = Field(default_factory=dict)


class SignalScore(BaseModel):
    """Output of the rule engine."""

    signal: SignalRule
    score: float
    confidence: float
    reasons: list[str] = Field(default_factory=list)
    factors: list[SignalFactor] = Field(default_factory=list)


class AiPrediction(BaseModel):
    """Model overlay on top of the rule engine."""

    probability: float
    decision: SignalRule


def _generate_snapshot_id(symbol: str, pair: str, interval: str, generated_at: datetime) -> str:
    """Deterministic ID so re-capturing the same instant upserts instead of duplicating."""
    if generated_at.tzinfo is not None:
        generated_at = generated_at.astimezone(timezone.utc)
    ts_str = generated_at.strftime("%Y%m%d%H%M%S%f")
    key = f"{symbol}:{pair}:{interval}:{ts_str}"
    return hashlib.sha256(key.encode()).hexdigest()[:32]


class SignalSnapshot(BaseModel):
    """A row of the cg_signal_dataset table."""

    id: str = ""  # Will be set in model_post_init
    symbol: str
    pair: str
    interval: str = "1h"
    generated_at: datetime
    price_now: float | None = None
    price_future: float | None = None
    signal_rule: str = SignalRule.NEUTRAL.value
    signal_score: float = 0.0
    signal_confidence: float = 0.0
    signal_reasons: list[str] = Field(default_factory=list)
    features_payload: dict[str, Any] = Field(default_factory=dict)
    ai_probability: float | None = None
    ai_decision: str | None = None
    label_direction: LabelDirection | None = None
    label_magnitude: float | None = None  # Percent move over the horizon
    label_horizon_hours: int | None = None

    def model_post_init(self, __context) -> None:
        if not self.id:
            object.__setattr__(
                self,
                "id",
                _generate_snapshot_id(self.symbol, self.pair, self.interval, self.generated_at),
            )

    @property
    def rule(self) -> SignalRule | None:
        return SignalRule.parse(self.signal_rule)

    @property
    def is_labeled(self) -> bool:
        return self.price_future is not None
