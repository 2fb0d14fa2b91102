"""StreamTee / CaptureJob: live forwarding and background capture of one upstream stream."""

import threading
import time

import pytest

from guardian.ai.sse import DONE_EVENT, decode_fragments, format_event
from guardian.session.stream_tee import CaptureJob, CaptureStatus, StreamTee

pytestmark = [pytest.mark.fast]

FRAGMENTS = ['{"verdict": ', '"DANGER", "score": 88, ', '"tactic": "Phishing", ', '"explanation": "Fake bank login."}']


def _source(fragments=FRAGMENTS, delay: float = 0.0):
    for fragment in fragments:
        if delay:
            time.sleep(delay)
        yield format_event(fragment)
    yield DONE_EVENT


def _collector():
    captured: list[str] = []

    def on_complete(text: str) -> str:
        captured.append(text)
        return "scan_test"

    return captured, on_complete


def test_live_bytes_are_forwarded_verbatim_and_capture_matches():
    captured, on_complete = _collector()
    job = CaptureJob(on_complete, name="t1")
    live = list(StreamTee(_source(), job).start())

    assert live == [format_event(f) for f in FRAGMENTS] + [DONE_EVENT]
    assert job.wait(5)
    assert job.status == CaptureStatus.completed
    assert job.record_id == "scan_test"
    assert captured == ["".join(FRAGMENTS)]
    assert "".join(decode_fragments(live)) == job.captured_text
    assert job.fragment_count == len(FRAGMENTS)


def test_capture_completes_when_live_consumer_disconnects():
    captured, on_complete = _collector()
    job = CaptureJob(on_complete, name="t2")
    live = StreamTee(_source(delay=0.01), job).start()

    first = next(live)
    assert first == format_event(FRAGMENTS[0])
    live.close()  # caller went away

    assert job.wait(5)
    assert job.status == CaptureStatus.completed
    assert captured == ["".join(FRAGMENTS)]


def test_slow_capture_does_not_block_live_reader():
    release = threading.Event()

    def slow_complete(text: str) -> str:
        release.wait(5)
        return "scan_slow"

    job = CaptureJob(slow_complete, name="t3")
    live = list(StreamTee(_source(), job).start())

    assert len(live) == len(FRAGMENTS) + 1
    assert not job.done
    release.set()
    assert job.wait(5)
    assert job.record_id == "scan_slow"


def test_completion_failure_is_recorded_not_raised():
    def failing(text: str) -> str:
        raise RuntimeError("disk full")

    job = CaptureJob(failing, name="t4")
    live = list(StreamTee(_source(), job).start())

    assert len(live) == len(FRAGMENTS) + 1
    assert job.wait(5)
    assert job.status == CaptureStatus.failed
    assert job.error == "disk full"
    assert job.summary()["status"] == "failed"


def test_upstream_error_ends_both_readers_and_keeps_partial_text():
    def broken():
        yield format_event("partial ")
        raise ConnectionError("reset by peer")

    captured, on_complete = _collector()
    job = CaptureJob(on_complete, name="t5")
    live = list(StreamTee(broken(), job).start())

    assert live == [format_event("partial ")]
    assert job.wait(5)
    assert job.upstream_error == "reset by peer"
    assert captured == ["partial "]


def test_start_twice_raises():
    job = CaptureJob(lambda text: None, name="t6")
    tee = StreamTee(_source(), job)
    list(tee.start())
    with pytest.raises(RuntimeError):
        tee.start()
    assert job.wait(5)
