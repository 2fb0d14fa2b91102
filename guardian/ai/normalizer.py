"""
Turn raw model output into a validated AnalysisResult.

Two explicit decode variants are tried in order:

1. structured: the model (or its JSON mode) already returned a mapping with a verdict key.
2. text: free text that contains a JSON object, possibly wrapped in markdown code fences.

Every failure path resolves to the degraded record (CAUTION / 50 / "AI Response Error"),
so normalize() never raises.
"""

import json
import logging
import math
import re
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel

from guardian.ai.schema import AnalysisResult, Verdict
from guardian.core.errors import ParseError

_log = logging.getLogger(__name__)

REQUIRED_FIELDS = ("verdict", "tactic", "explanation")
ACCEPTED_VERDICTS = frozenset({Verdict.SAFE.value, Verdict.CAUTION.value, Verdict.DANGER.value})
DEFAULT_SCORE = 50
MIN_SCORE = 0
MAX_SCORE = 100
DEGRADED_TACTIC = "AI Response Error"

_FENCE_RE = re.compile(r"```[A-Za-z0-9_+-]*")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


def degraded_result(reason: str) -> AnalysisResult:
    """The fixed fallback record; reason becomes the explanation."""
    return AnalysisResult(
        verdict=Verdict.CAUTION,
        score=DEFAULT_SCORE,
        tactic=DEGRADED_TACTIC,
        explanation=reason,
    )


def decode_structured(raw: Any) -> dict[str, Any] | None:
    """Structured variant: return the candidate dict, or None when raw is not a verdict-bearing value."""
    if isinstance(raw, BaseModel):
        raw = raw.model_dump()
    if isinstance(raw, Mapping) and "verdict" in raw:
        return dict(raw)
    return None


def output_text(raw: Any) -> str:
    """Text form of a non-structured payload (mappings without a verdict are serialized as JSON)."""
    if raw is None:
        return ""
    if isinstance(raw, str):
        return raw
    if isinstance(raw, (bytes, bytearray)):
        return bytes(raw).decode("utf-8", errors="replace")
    try:
        return json.dumps(raw)
    except (TypeError, ValueError):
        return str(raw)


def strip_code_fences(text: str) -> str:
    """Remove markdown code-fence delimiters (```json ... ```), keeping their content."""
    return _FENCE_RE.sub("", text)


def decode_text(text: str) -> dict[str, Any]:
    """
    Text variant: parse the first JSON object in text.

    Parsing starts at the first '{' and stops at the brace that closes it; anything after
    is ignored. A second attempt drops trailing commas. Raises ParseError on failure.
    """
    cleaned = strip_code_fences(text)
    start = cleaned.find("{")
    if start < 0:
        raise ParseError("Model output did not contain a JSON object.")

    decoder = json.JSONDecoder()
    try:
        value, _ = decoder.raw_decode(cleaned, start)
    except json.JSONDecodeError as first_error:
        repaired = _TRAILING_COMMA_RE.sub(r"\1", cleaned[start:])
        try:
            value, _ = decoder.raw_decode(repaired)
        except json.JSONDecodeError:
            raise ParseError(f"Model output JSON could not be parsed: {first_error.msg}.") from None

    if not isinstance(value, dict):
        raise ParseError("Model output JSON is not an object.")
    return value


def normalize_verdict(value: Any) -> Verdict:
    """Case-insensitive SAFE/CAUTION/DANGER; anything else (including UNKNOWN or None) becomes CAUTION."""
    if isinstance(value, str):
        candidate = value.strip().upper()
        if candidate in ACCEPTED_VERDICTS:
            return Verdict(candidate)
    return Verdict.CAUTION


def normalize_score(value: Any) -> int:
    """Coerce to a number, default 50 when not finite, clamp into [0, 100]."""
    if isinstance(value, bool):
        number: float = float(value)
    elif isinstance(value, int):
        return min(max(value, MIN_SCORE), MAX_SCORE)
    elif isinstance(value, float):
        number = value
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            number = math.nan
    else:
        number = math.nan
    if not math.isfinite(number):
        return DEFAULT_SCORE
    return int(round(min(max(number, MIN_SCORE), MAX_SCORE)))


def _field_text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else output_text(value).strip()


def _candidate(raw_output: Any) -> dict[str, Any]:
    candidate = decode_structured(raw_output)
    if candidate is None:
        candidate = decode_text(output_text(raw_output))
    missing = [f for f in REQUIRED_FIELDS if candidate.get(f) is None]
    if missing:
        raise ParseError(f"Model output is missing required fields: {', '.join(missing)}.")
    return candidate


def normalize(raw_output: Any) -> AnalysisResult:
    """Return a record that satisfies every AnalysisResult invariant, whatever raw_output looks like."""
    try:
        candidate = _candidate(raw_output)
        return AnalysisResult(
            verdict=normalize_verdict(candidate["verdict"]),
            score=normalize_score(candidate.get("score")),
            tactic=_field_text(candidate["tactic"]),
            explanation=_field_text(candidate["explanation"]),
        )
    except ParseError as e:
        _log.warning("Using degraded verdict: %s", e)
        return degraded_result(str(e))
    except Exception as e:  # noqa: BLE001 - normalization must never fail outward
        _log.exception("Unexpected error while normalizing model output")
        return degraded_result(f"Model output could not be interpreted: {e}")
