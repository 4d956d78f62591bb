"""Business services."""

from app.services.ai_signal import (
    AiSignalService,
    ProbabilityModel,
    build_ai_service,
    register_model,
)
from app.services.feature_builder import FeatureBuilder
from app.services.snapshot_service import SnapshotService

__all__ = [
    "AiSignalService",
    "ProbabilityModel",
    "build_ai_service",
    "register_model",
    "FeatureBuilder",
    "SnapshotService",
]
