"""
SSE error formatting for failures after a stream has started.

Once the first byte has been relayed the HTTP status can no longer change, so
the proxy reports late failures as a final ``data: {"error": ...}`` event.
"""
import json

import httpx

from ...core.exceptions import TransportError, UpstreamStreamError


class StreamingErrorHandler:
    """Formats streaming errors; logging is left to the caller."""

    def format_sse_error(self, message: str, code: str, error_type: str = "api_error") -> bytes:
        error_payload = {
            "error": {
                "message": message,
                "type": error_type,
                "code": code,
                "param": None
            }
        }
        return f"data: {json.dumps(error_payload, ensure_ascii=False)}\n\n".encode('utf-8')

    def format_streaming_error(self, error: Exception) -> bytes:
        if isinstance(error, UpstreamStreamError):
            return self.format_sse_error(error.message, error.error_code)
        if isinstance(error, (httpx.RequestError, httpx.StreamError)):
            return self.format_sse_error(
                f"Network error communicating with upstream: {error}",
                "upstream_network_error"
            )
        if isinstance(error, TransportError):
            return self.format_sse_error(error.message, "upstream_stream_error")
        return self.format_sse_error(
            f"An unexpected error occurred during streaming: {error}",
            "upstream_stream_error"
        )
