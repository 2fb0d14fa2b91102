"""Session layer: per-caller endpoints and stream capture."""

from guardian.session.endpoint import SessionEndpoint, SessionRegistry, StreamHandle
from guardian.session.stream_tee import CaptureJob, CaptureStatus, StreamTee

__all__ = [
    "CaptureJob",
    "CaptureStatus",
    "SessionEndpoint",
    "SessionRegistry",
    "StreamHandle",
    "StreamTee",
]
