"""Factory for vision models. Imports are lazy so the mock never pulls in the HTTP client."""

from guardian.ai.vision_base import BaseVisionModel
from guardian.core.config import Settings


def get_vision_model(model_name: str, settings: Settings) -> BaseVisionModel:
    """Return a vision model by name."""
    if model_name == "mock":
        from guardian.ai.vision_base import MockVisionModel

        return MockVisionModel()
    if model_name == "workers-ai":
        from guardian.ai.vision_workers_ai import WorkersAIVisionModel

        return WorkersAIVisionModel(settings)
    raise ValueError(f"Unknown vision model: {model_name}")
