"""Abstract base and mock implementation for vision-language models."""

import json
from abc import ABC, abstractmethod
from collections.abc import Iterator

from guardian.ai.schema import CompletionOutcome, ModelCard
from guardian.ai.sse import DONE_EVENT, format_event


class BaseVisionModel(ABC):
    """Abstract base for one-shot or streamed image analysis."""

    @abstractmethod
    def get_model_card(self) -> ModelCard:
        """Return model identity (name, version)."""
        ...

    @abstractmethod
    def invoke(self, prompt: str, image: str, streaming: bool) -> CompletionOutcome:
        """
        Run the model on a data-URI image.

        Non-streaming returns CompletionOutcome(payload=...); streaming returns
        CompletionOutcome(chunks=...) yielding event-stream bytes. Raises UpstreamModelError
        when the call cannot be completed; no retries.
        """
        ...


MOCK_VERDICT = {
    "verdict": "CAUTION",
    "score": 62,
    "tactic": "False Urgency",
    "explanation": "A countdown timer pressures the viewer to buy before thinking it over.",
}


class MockVisionModel(BaseVisionModel):
    """Deterministic model for tests and offline development."""

    def __init__(self, response_text: str | None = None, fragment_size: int = 16) -> None:
        self.response_text = response_text if response_text is not None else json.dumps(MOCK_VERDICT)
        self.fragment_size = max(1, fragment_size)
        self.calls: list[tuple[str, str, bool]] = []

    def get_model_card(self) -> ModelCard:
        return ModelCard(name="mock-vision", version="1.0")

    def invoke(self, prompt: str, image: str, streaming: bool) -> CompletionOutcome:
        self.calls.append((prompt, image, streaming))
        if not streaming:
            return CompletionOutcome(payload=self.response_text)
        return CompletionOutcome(chunks=self._chunks())

    def _chunks(self) -> Iterator[bytes]:
        text = self.response_text
        for i in range(0, len(text), self.fragment_size):
            yield format_event(text[i:i + self.fragment_size])
        yield DONE_EVENT
