"""
Stream Processor Module

Relays the upstream event stream to the client byte for byte. Nothing is
parsed or re-encoded on the way; the only bytes the proxy ever adds are a
final SSE error event when the upstream connection breaks mid-stream.
"""

import time
from typing import AsyncIterator

import httpx

from ...core.logging import logger
from ..chat.error_handler import StreamingErrorHandler


class StreamProcessor:
    """Transparent relay for upstream streams."""

    def __init__(self):
        self.error_handler = StreamingErrorHandler()

    async def process_stream(
        self,
        upstream_response: httpx.Response,
        model_id: str,
        request_id: str,
        client_id: str = "anonymous"
    ) -> AsyncIterator[bytes]:
        """
        Yield upstream chunks unchanged, closing the upstream response at the end.

        Args:
            upstream_response: Open streaming response from the provider
            model_id: Requested model, for logging
            request_id: Request id, for logging
            client_id: Authenticated client, for logging

        If the upstream breaks off in the middle of a line, the error event is
        preceded by a line break so it is never glued onto the partial line.
        """
        start_time = time.time()
        chunk_count = 0
        bytes_relayed = 0
        line_open = False

        logger.info("Starting transparent stream relay", request_id=request_id,
                    client_id=client_id, model_id=model_id)

        try:
            async for chunk in upstream_response.aiter_bytes():
                if not chunk:
                    continue
                chunk_count += 1
                bytes_relayed += len(chunk)
                line_open = not chunk.endswith(b"\n")
                yield chunk

            duration = time.time() - start_time
            logger.info(
                "Stream relay completed successfully",
                request_id=request_id,
                client_id=client_id,
                model_id=model_id,
                duration_seconds=round(duration, 3),
                total_chunks=chunk_count,
                bytes_relayed=bytes_relayed,
                bytes_per_second=round(bytes_relayed / duration) if duration > 0 else 0
            )
        except (httpx.HTTPError, httpx.StreamError) as e:
            logger.error(
                f"Stream relay failed: {e}",
                request_id=request_id,
                client_id=client_id,
                model_id=model_id,
                chunks_relayed=chunk_count,
                bytes_relayed=bytes_relayed,
                error_type=type(e).__name__
            )
            error_event = self.error_handler.format_streaming_error(e)
            yield b"\n" + error_event if line_open else error_event
        finally:
            await upstream_response.aclose()
