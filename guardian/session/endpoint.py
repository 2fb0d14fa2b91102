"""Session entry point: validates requests, runs the model, records verdicts, serves history."""

import logging
import threading
import time
from collections import OrderedDict, deque
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Callable

from sqlalchemy.orm import Session

from guardian.ai.normalizer import normalize, output_text
from guardian.ai.prompts import resolve_prompt
from guardian.ai.schema import AnalysisRequest, AnalysisResult
from guardian.ai.vision_base import BaseVisionModel
from guardian.core.errors import PersistenceError, ValidationError
from guardian.core.io_utils import to_data_uri
from guardian.repository.history_repo import HistoryStore, ensure_identity
from guardian.session.stream_tee import CaptureJob, StreamTee

_log = logging.getLogger(__name__)

MAX_SESSION_ID_LENGTH = 128
CAPTURE_HISTORY = 50


@dataclass
class StreamHandle:
    """Live event-stream bytes for the caller plus the background job that persists them."""

    chunks: Iterator[bytes]
    capture: CaptureJob

    def __iter__(self) -> Iterator[bytes]:
        return self.chunks


class SessionEndpoint:
    """
    One logical session: owns a HistoryStore view and serializes every history read and write
    behind a single lock, so concurrent analyses never interleave their appends.
    """

    def __init__(
        self,
        session_id: str,
        store: HistoryStore,
        model: BaseVisionModel,
        *,
        max_history_limit: int = 100,
    ) -> None:
        self.session_id = session_id
        self.store = store
        self.model = model
        self._max_history_limit = max_history_limit
        self._lock = threading.Lock()
        # Diagnostic window (bounded) and the set of unfinished jobs (unbounded, pruned on access).
        self._captures: deque[CaptureJob] = deque(maxlen=CAPTURE_HISTORY)
        self._running: set[CaptureJob] = set()
        self._capture_seq = 0

    def list_recent(self, limit: int) -> list[AnalysisResult]:
        """Up to limit most recent records, newest first. No side effects."""
        limit = min(limit, self._max_history_limit)
        with self._lock:
            return self.store.list(limit)

    def analyze(self, request: AnalysisRequest) -> AnalysisResult | StreamHandle:
        """
        Run one analysis.

        Raises ValidationError for a missing or malformed image (nothing is recorded) and
        UpstreamModelError when the model call fails. Otherwise returns the stored verdict, or a
        StreamHandle whose capture job appends the verdict once the stream is exhausted.
        """
        image = to_data_uri(request.image)
        prompt = resolve_prompt(request.prompt)
        outcome = self.model.invoke(prompt, image, streaming=request.stream)
        if outcome.streaming:
            return self._start_stream(outcome.chunks, prompt)

        result = normalize(outcome.payload).model_copy(
            update={"prompt": prompt, "analysis": output_text(outcome.payload)}
        )
        stamped = ensure_identity(result)
        try:
            self._append(stamped)
        except PersistenceError:
            _log.error("History write failed for %s; returning verdict anyway", stamped.id, exc_info=True)
        return stamped

    def recent_captures(self) -> list[CaptureJob]:
        """Capture jobs started by this session, newest first."""
        with self._lock:
            return list(reversed(self._captures))

    def has_running_captures(self) -> bool:
        with self._lock:
            self._prune_running()
            return bool(self._running)

    def wait_for_captures(self, timeout: float | None = None) -> bool:
        """
        Block until every unfinished capture job has finished, including jobs that have
        already left the recent_captures() window. timeout bounds the whole wait.
        """
        with self._lock:
            jobs = list(self._running)
        deadline = None if timeout is None else time.monotonic() + timeout
        finished = True
        for job in jobs:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            if not job.wait(remaining):
                finished = False
        with self._lock:
            self._prune_running()
        return finished

    def _prune_running(self) -> None:
        self._running = {job for job in self._running if not job.done}

    def _append(self, record: AnalysisResult) -> None:
        with self._lock:
            self.store.append(record)

    def _start_stream(self, chunks: Iterator[bytes], prompt: str) -> StreamHandle:
        def on_complete(text: str) -> str | None:
            result = normalize(text).model_copy(update={"prompt": prompt, "analysis": text})
            stamped = ensure_identity(result)
            self._append(stamped)
            return stamped.id

        with self._lock:
            self._capture_seq += 1
            name = f"{self.session_id}-capture-{self._capture_seq}"
            job = CaptureJob(on_complete, name=name)
            self._captures.append(job)
            self._prune_running()
            self._running.add(job)
        live = StreamTee(chunks, job, name=name).start()
        return StreamHandle(chunks=live, capture=job)


class SessionRegistry:
    """
    Maps caller identity to its own SessionEndpoint. Identities never share a history log.

    At most max_sessions endpoints are kept in memory. When a new identity pushes the map past
    that size, the least recently used endpoints with no running captures are dropped; their
    history stays in the database and a later request builds a fresh endpoint for it.
    Endpoints with running captures are never dropped.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        model: BaseVisionModel,
        *,
        max_history_limit: int = 100,
        max_sessions: int = 1000,
    ) -> None:
        self._session_factory = session_factory
        self._model = model
        self._max_history_limit = max_history_limit
        self._max_sessions = max_sessions
        self._sessions: OrderedDict[str, SessionEndpoint] = OrderedDict()
        self._lock = threading.Lock()

    def session_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def get(self, session_id: str) -> SessionEndpoint:
        key = (session_id or "").strip()
        if not key:
            raise ValidationError("Session id must not be empty")
        if len(key) > MAX_SESSION_ID_LENGTH:
            raise ValidationError(f"Session id longer than {MAX_SESSION_ID_LENGTH} characters")
        with self._lock:
            endpoint = self._sessions.get(key)
            if endpoint is not None:
                self._sessions.move_to_end(key)
                return endpoint
            endpoint = SessionEndpoint(
                key,
                HistoryStore(self._session_factory, key),
                self._model,
                max_history_limit=self._max_history_limit,
            )
            self._sessions[key] = endpoint
            self._evict_idle()
            return endpoint

    def _evict_idle(self) -> None:
        excess = len(self._sessions) - self._max_sessions
        if excess <= 0:
            return
        newest = next(reversed(self._sessions))
        for key in list(self._sessions):
            if excess <= 0:
                break
            if key == newest or self._sessions[key].has_running_captures():
                continue
            del self._sessions[key]
            excess -= 1
        if excess > 0:
            _log.warning(
                "Session registry holds %d endpoints (limit %d); the rest have running captures",
                len(self._sessions),
                self._max_sessions,
            )

    def close(self, timeout: float | None = 10.0) -> bool:
        """Wait (bounded) for outstanding captures in every session. Returns False if any are still running."""
        with self._lock:
            endpoints = list(self._sessions.values())
        finished = True
        for endpoint in endpoints:
            if not endpoint.wait_for_captures(timeout):
                finished = False
                _log.warning("Session %s still has running captures at shutdown", endpoint.session_id)
        return finished
