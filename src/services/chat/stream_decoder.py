"""
Incremental decoding of a ``text/event-stream`` chat response.

Network chunk boundaries align neither with line boundaries nor with UTF-8
character boundaries, so the decoder keeps a stateful UTF-8 decoder plus a
carry-over buffer holding the trailing incomplete line between calls.
"""
import codecs
import json
from typing import Iterator, List

from .parsed_event import StreamEvent
from ...core.logging import logger

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


class StreamDecoder:
    """
    Turns raw byte chunks into StreamEvents, one decoder per stream.

    Only complete lines are ever parsed. Lines without the ``data:`` marker
    (comments, blank keep-alive lines, ``event:``/``id:`` fields) are dropped;
    a payload that is not a JSON object is logged and skipped. The ``[DONE]``
    sentinel yields a final done event and stops all further decoding.
    """

    def __init__(self, request_id: str = "unknown", max_buffer_size: int = 1024 * 1024):
        """
        Args:
            request_id: Identifier used in log records
            max_buffer_size: Longest line accepted, in characters; longer lines are
                dropped whole however the stream was chunked
        """
        self.request_id = request_id
        self.max_buffer_size = max_buffer_size
        self.utf8_decoder = codecs.getincrementaldecoder('utf-8')(errors='replace')
        self.buffer = ""
        self.discarding = False
        self.is_done = False
        self.lines_seen = 0
        self.events_emitted = 0
        self.malformed_lines = 0

    def decode(self, chunk: bytes) -> Iterator[StreamEvent]:
        """
        Feed one network chunk and lazily yield the events it completes.

        The chunk is split into lines eagerly, so the carry-over buffer is
        already consistent when the first event is yielded.
        """
        if self.is_done:
            return iter(())
        return self._emit(self._split_lines(self.utf8_decoder.decode(chunk, final=False)))

    def flush(self) -> Iterator[StreamEvent]:
        """
        Signal end-of-stream: the remaining fragment is treated as a final line.
        """
        if self.is_done:
            return iter(())
        text = self.utf8_decoder.decode(b"", final=True)
        lines = self._split_lines(text)
        if self.buffer and not self.discarding:
            lines.append(self.buffer.rstrip("\r"))
        self.buffer = ""
        self.discarding = False
        return self._emit(lines)

    def _split_lines(self, text: str) -> List[str]:
        if not text:
            return []

        self.buffer += text
        *complete, self.buffer = self.buffer.split("\n")

        lines = []
        for line in complete:
            line = line.rstrip("\r")
            if self.discarding:
                # Tail of a line already dropped for its size
                self.discarding = False
                continue
            if len(line) > self.max_buffer_size:
                self._log_oversized(len(line))
                continue
            lines.append(line)

        if len(self.buffer.rstrip("\r")) > self.max_buffer_size:
            self._log_oversized(len(self.buffer))
            self.buffer = ""
            self.discarding = True
        return lines

    def _log_oversized(self, size: int):
        logger.warning(
            "Stream line exceeds buffer limit, dropping it",
            request_id=self.request_id,
            line_size=size,
            max_buffer_size=self.max_buffer_size
        )

    def _emit(self, lines: List[str]) -> Iterator[StreamEvent]:
        for line in lines:
            if self.is_done:
                return
            self.lines_seen += 1
            event = self._parse_line(line)
            if event is None:
                continue
            self.events_emitted += 1
            yield event

    def _parse_line(self, line: str):
        if not line.startswith(DATA_PREFIX):
            return None

        payload = line[len(DATA_PREFIX):].strip()
        if not payload:
            return None

        if payload == DONE_SENTINEL:
            self.is_done = True
            self.buffer = ""
            logger.debug("Stream sentinel received", request_id=self.request_id,
                         lines_seen=self.lines_seen, events_emitted=self.events_emitted)
            return StreamEvent.done()

        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            self._log_malformed(payload, f"JSON parse error: {e}")
            return None

        if not isinstance(data, dict):
            self._log_malformed(payload, f"Unexpected payload type: {type(data).__name__}")
            return None

        return StreamEvent.from_payload(data)

    def _log_malformed(self, payload: str, reason: str):
        self.malformed_lines += 1
        logger.warning(
            "Skipping malformed stream payload",
            request_id=self.request_id,
            reason=reason,
            payload_preview=payload[:100] + "..." if len(payload) > 100 else payload
        )
