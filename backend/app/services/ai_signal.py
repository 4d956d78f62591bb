"""Model overlay on top of the rule engine."""

from typing import Protocol

from core.models.features import FeatureSet
from core.models.signal import AiPrediction, SignalRule
from app.config import Settings


class ProbabilityModel(Protocol):
    """Anything that maps a feature snapshot to P(price up)."""

    def predict(self, features: FeatureSet) -> float | None: ...


class AiSignalService:
    """Turn a model's up-probability into a BUY / SELL / NEUTRAL decision."""

    def __init__(
        self,
        model: ProbabilityModel,
        buy_threshold: float = 0.55,
        sell_threshold: float = 0.45,
    ):
        if sell_threshold > buy_threshold:
            raise ValueError("sell_threshold must not exceed buy_threshold")
        self.model = model
        self.buy_threshold = buy_threshold
        self.sell_threshold = sell_threshold

    def predict(self, features: FeatureSet) -> AiPrediction | None:
        """Returns None when the model has no opinion."""
        probability = self.model.predict(features)
        if probability is None:
            return None

        if probability >= self.buy_threshold:
            decision = SignalRule.BUY
        elif probability <= self.sell_threshold:
            decision = SignalRule.SELL
        else:
            decision = SignalRule.NEUTRAL

        return AiPrediction(probability=probability, decision=decision)


_model: ProbabilityModel | None = None


def register_model(model: ProbabilityModel | None) -> None:
    """Install (or clear with None) the model behind the overlay."""
    global _model
    _model = model


def build_ai_service(settings: Settings) -> AiSignalService | None:
    """Overlay using the configured thresholds; None while no model is registered."""
    if _model is None:
        return None
    return AiSignalService(
        _model,
        buy_threshold=settings.ai_buy_threshold,
        sell_threshold=settings.ai_sell_threshold,
    )
