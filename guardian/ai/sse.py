"""Event-stream framing used by the model stream: data: {"response": "<fragment>"} lines and a [DONE] sentinel."""

import codecs
import json
import logging
from collections.abc import Iterable

_log = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_MARKER = "[DONE]"
DONE_EVENT = b"data: [DONE]\n\n"


def format_event(fragment: str) -> bytes:
    """Frame one text fragment as an event-stream event."""
    return f"data: {json.dumps({'response': fragment})}\n\n".encode()


class SSEFragmentDecoder:
    """
    Incremental decoder: feed raw byte chunks, get back the response text of each complete event.

    Chunk boundaries may split lines or UTF-8 sequences anywhere; only complete lines are
    decoded, the remainder waits for the next feed() or close().
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    def feed(self, chunk: bytes) -> list[str]:
        self._pending += self._decoder.decode(chunk)
        *lines, self._pending = self._pending.split("\n")
        return self._fragments(lines)

    def close(self) -> list[str]:
        """Flush the trailing partial line (a stream may end without a final newline)."""
        tail = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        return self._fragments(tail.split("\n"))

    def _fragments(self, lines: list[str]) -> list[str]:
        out: list[str] = []
        for raw in lines:
            line = raw.rstrip("\r")
            if not line.startswith(DATA_PREFIX):
                continue
            body = line[len(DATA_PREFIX):].strip()
            if not body or body == DONE_MARKER:
                continue
            try:
                event = json.loads(body)
            except json.JSONDecodeError:
                _log.debug("Skipping malformed event: %r", body[:200])
                continue
            if isinstance(event, dict):
                text = event.get("response")
                if isinstance(text, str) and text:
                    out.append(text)
        return out


def decode_fragments(chunks: Iterable[bytes]) -> list[str]:
    """Decode a complete sequence of chunks into fragments (used by tests and the CLI)."""
    decoder = SSEFragmentDecoder()
    out: list[str] = []
    for chunk in chunks:
        out.extend(decoder.feed(chunk))
    out.extend(decoder.close())
    return out
