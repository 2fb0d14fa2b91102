"""Guardian HTTP API: analyze screenshots (one-shot or streamed) and read verdict history."""

import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any, AsyncIterator, Callable

from fastapi import Body, Depends, FastAPI, Header, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from guardian.ai.factory import get_vision_model
from guardian.ai.normalizer import degraded_result
from guardian.ai.schema import AnalysisRequest, AnalysisResult
from guardian.core.config import get_config
from guardian.core.db import make_session_factory
from guardian.core.errors import UpstreamModelError, ValidationError
from guardian.session.endpoint import SessionRegistry, StreamHandle

_log = logging.getLogger(__name__)

STREAM_HEADERS = {
    "cache-control": "no-cache",
    "connection": "keep-alive",
}


@lru_cache(maxsize=1)
def _get_session_factory() -> Callable[[], Session]:
    return make_session_factory(get_config())


@lru_cache(maxsize=1)
def _get_registry() -> SessionRegistry:
    cfg = get_config()
    model = get_vision_model(cfg.vision_model, cfg)
    return SessionRegistry(
        _get_session_factory(),
        model,
        max_history_limit=cfg.max_history_limit,
        max_sessions=cfg.max_sessions,
    )


def _session_id(x_client_id: str | None = Header(default=None)) -> str:
    if x_client_id is None or not x_client_id.strip():
        return get_config().default_session_id
    return x_client_id


@asynccontextmanager
async def _lifespan(_app: FastAPI) -> AsyncIterator[None]:
    yield
    # Only a registry that was actually built can own capture threads.
    if _get_registry.cache_info().currsize:
        registry = _get_registry()
        if not await run_in_threadpool(registry.close, get_config().shutdown_timeout_seconds):
            _log.warning("Shutdown timed out with captures still running; their records may be lost")


app = FastAPI(title="Edge Guardian", lifespan=_lifespan)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _dump(record: AnalysisResult) -> dict[str, Any]:
    return record.model_dump(mode="json", exclude_none=True)


@app.exception_handler(ValidationError)
async def _validation_error_handler(_request: Request, exc: ValidationError) -> JSONResponse:
    return _error(400, str(exc))


@app.exception_handler(RequestValidationError)
async def _request_validation_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return _error(400, f"Invalid request: {message}")


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/")
def list_history(
    limit: int | None = Query(default=None, ge=1, description="Maximum number of records (newest first)"),
    session_id: str = Depends(_session_id),
    registry: SessionRegistry = Depends(_get_registry),
) -> JSONResponse:
    cfg = get_config()
    if limit is not None and limit > cfg.max_history_limit:
        return _error(400, f"Invalid request: limit must be at most {cfg.max_history_limit}")
    effective = min(limit or cfg.history_limit, cfg.max_history_limit)
    records = registry.get(session_id).list_recent(effective)
    return JSONResponse(content=[_dump(r) for r in records])


@app.get("/captures")
def list_captures(
    session_id: str = Depends(_session_id),
    registry: SessionRegistry = Depends(_get_registry),
) -> JSONResponse:
    jobs = registry.get(session_id).recent_captures()
    return JSONResponse(content=[job.summary() for job in jobs])


@app.post("/", response_model=None)
def analyze(
    body: Any = Body(default=None),
    session_id: str = Depends(_session_id),
    registry: SessionRegistry = Depends(_get_registry),
) -> JSONResponse | StreamingResponse:
    if not isinstance(body, dict):
        return _error(400, "Request body must be a JSON object")
    try:
        analysis_request = AnalysisRequest.model_validate(body)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ()))
        return _error(400, f"Invalid field '{field}': {first.get('msg')}")

    session = registry.get(session_id)
    try:
        outcome = session.analyze(analysis_request)
    except UpstreamModelError as e:
        _log.error("Model call failed for session %s: %s", session_id, e)
        if analysis_request.stream:
            return _error(502, str(e))
        # Degraded 200 so callers render a normal result card.
        return JSONResponse(content=_dump(degraded_result(f"Analysis failed: {e}")))
    except ValidationError:
        raise
    except Exception as e:
        _log.exception("Analysis failed for session %s", session_id)
        return _error(500, str(e))

    if isinstance(outcome, StreamHandle):
        return StreamingResponse(
            iter(outcome),
            media_type="text/event-stream",
            headers=STREAM_HEADERS,
        )
    return JSONResponse(content=_dump(outcome))
