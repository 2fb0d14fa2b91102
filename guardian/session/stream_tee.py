"""
Stream duplication: one upstream model stream, two independently paced readers.

A pump thread drains the upstream iterator and copies every chunk into two unbounded
queues. The live reader (a generator handed to the HTTP response) forwards chunks
verbatim; the CaptureJob thread decodes the same chunks, concatenates the fragment text
and, once the source is exhausted, calls its completion callback (normalize + append).
Neither reader can apply backpressure to the other. If the live consumer goes away the
pump keeps running so the capture still completes.
"""

import logging
import queue
import threading
from collections.abc import Iterator
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from guardian.ai.sse import SSEFragmentDecoder

_log = logging.getLogger(__name__)

_END = object()


class CaptureStatus(str, Enum):
    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"


class CaptureJob:
    """
    Background capture of one streamed analysis.

    on_complete receives the full captured text and returns the id of the record it wrote.
    Any exception it raises marks the job failed and is logged; nothing propagates.
    """

    def __init__(self, on_complete: Callable[[str], str | None], name: str = "capture") -> None:
        self.name = name
        self.status = CaptureStatus.pending
        self.record_id: str | None = None
        self.error: str | None = None
        self.upstream_error: str | None = None
        self.captured_text = ""
        self.fragment_count = 0
        self.started_at = datetime.now(timezone.utc)
        self.finished_at: datetime | None = None
        self._on_complete = on_complete
        self._queue: queue.Queue[Any] = queue.Queue()
        self._done = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def feed(self, chunk: bytes) -> None:
        self._queue.put(chunk)

    def finish(self) -> None:
        """Signal that the source is exhausted (or failed)."""
        self._queue.put(_END)

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the job has finished; return False on timeout."""
        return self._done.wait(timeout)

    def summary(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "record_id": self.record_id,
            "error": self.error,
            "upstream_error": self.upstream_error,
            "fragments": self.fragment_count,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }

    def _run(self) -> None:
        self.status = CaptureStatus.running
        decoder = SSEFragmentDecoder()
        parts: list[str] = []
        try:
            while True:
                item = self._queue.get()
                if item is _END:
                    break
                parts.extend(decoder.feed(item))
            parts.extend(decoder.close())
            self.fragment_count = len(parts)
            self.captured_text = "".join(parts)
            self.record_id = self._on_complete(self.captured_text)
            self.status = CaptureStatus.completed
            _log.info(
                "Capture %s stored record %s (%d fragments, %d chars)",
                self.name,
                self.record_id,
                self.fragment_count,
                len(self.captured_text),
            )
        except Exception as e:
            self.status = CaptureStatus.failed
            self.error = str(e)
            _log.error("Capture %s failed", self.name, exc_info=True)
        finally:
            self.finished_at = datetime.now(timezone.utc)
            self._done.set()


class StreamTee:
    """Split one chunk iterator into a live iterator and a CaptureJob."""

    def __init__(self, source: Iterator[bytes], capture: CaptureJob, name: str = "stream") -> None:
        self.capture = capture
        self._source = source
        self._live: queue.Queue[Any] = queue.Queue()
        self._live_attached = True
        self._pump_thread = threading.Thread(target=self._pump, name=f"{name}-pump", daemon=True)
        self._started = False

    def start(self) -> Iterator[bytes]:
        """Start the pump and capture threads; return the live iterator. Call once."""
        if self._started:
            raise RuntimeError("StreamTee already started")
        self._started = True
        self.capture.start()
        self._pump_thread.start()
        return self._live_reader()

    def _pump(self) -> None:
        try:
            for chunk in self._source:
                if self._live_attached:
                    self._live.put(chunk)
                self.capture.feed(chunk)
        except Exception as e:
            self.capture.upstream_error = str(e)
            _log.error("Upstream stream for %s ended with an error: %s", self.capture.name, e)
        finally:
            self._live.put(_END)
            self.capture.finish()

    def _live_reader(self) -> Iterator[bytes]:
        finished = False
        try:
            while True:
                item = self._live.get()
                if item is _END:
                    finished = True
                    return
                yield item
        finally:
            if not finished:
                # Consumer disconnected; stop queueing for it. Capture keeps going.
                self._live_attached = False
                _log.info("Live consumer of %s detached; capture continues", self.capture.name)
