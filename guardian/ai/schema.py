"""Pydantic data contracts for requests, verdict records and model outcomes."""

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class Verdict(str, Enum):
    SAFE = "SAFE"
    CAUTION = "CAUTION"
    DANGER = "DANGER"
    UNKNOWN = "UNKNOWN"


class ModelCard(BaseModel):
    """Metadata identifying a vision-language model."""

    name: str
    version: str


class AnalysisRequest(BaseModel):
    """Body of POST /. image is validated by the session, not here, so a missing image maps to a 400."""

    model_config = {"extra": "ignore"}

    image: Any = None
    prompt: str | None = None
    stream: bool = True


class AnalysisResult(BaseModel):
    """Verdict record. id and timestamp are assigned once, when the record is appended to history."""

    id: str | None = None
    timestamp: datetime | None = None
    verdict: Verdict
    score: int = Field(ge=0, le=100)
    tactic: str
    explanation: str
    prompt: str | None = None
    analysis: str | None = None  # full model text the verdict was derived from


@dataclass(frozen=True)
class CompletionOutcome:
    """
    Result of one model invocation: payload for one-shot calls, chunks for streamed calls.

    chunks yields raw event-stream bytes (data: {"response": ...} framing) in upstream order.
    """

    payload: Any = None
    chunks: Iterator[bytes] | None = None

    @property
    def streaming(self) -> bool:
        return self.chunks is not None
