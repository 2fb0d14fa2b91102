"""AI module: data contracts, vision model abstraction and output normalization."""

from guardian.ai.factory import get_vision_model
from guardian.ai.normalizer import degraded_result, normalize
from guardian.ai.schema import (
    AnalysisRequest,
    AnalysisResult,
    CompletionOutcome,
    ModelCard,
    Verdict,
)
from guardian.ai.vision_base import BaseVisionModel, MockVisionModel

__all__ = [
    "AnalysisRequest",
    "AnalysisResult",
    "BaseVisionModel",
    "CompletionOutcome",
    "MockVisionModel",
    "ModelCard",
    "Verdict",
    "degraded_result",
    "get_vision_model",
    "normalize",
]
