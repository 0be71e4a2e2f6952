from typing import Optional

from .logging import logger


class TransportError(Exception):
    """Base class for failures talking to the chat proxy."""
    def __init__(self, message: str, original_exception: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.original_exception = original_exception


class UpstreamHTTPError(TransportError):
    """The proxy (or the model API behind it) answered with a non-2xx status."""
    def __init__(self, message: str, status_code: int, response_text: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_text = response_text

        logger.error(f"Upstream HTTP error: {message}", exc_info=False, exception={
            "type": "UpstreamHTTPError",
            "status_code": status_code,
            "response_preview": response_text[:200] + "..." if response_text and len(response_text) > 200 else response_text
        })


class UpstreamNetworkError(TransportError):
    """Network or connection failure before or during a response."""
    def __init__(self, message: str, original_exception: Optional[Exception] = None):
        super().__init__(message, original_exception)

        logger.error(f"Upstream network error: {message}", exc_info=False, exception={
            "type": "UpstreamNetworkError",
            "original_exception_type": type(original_exception).__name__ if original_exception else None
        })


class UpstreamStreamError(TransportError):
    """An explicit error event was received inside an otherwise healthy stream."""
    def __init__(self, message: str, error_code: str = "upstream_stream_error"):
        super().__init__(message)
        self.error_code = error_code

        logger.error(f"Upstream stream error: {message}", exc_info=False, exception={
            "type": "UpstreamStreamError",
            "error_code": error_code
        })


class RequestCancelledError(TransportError):
    """The request was cancelled through its cancellation token."""
    def __init__(self, reason: str = "cancelled"):
        super().__init__(f"Request cancelled: {reason}")
        self.reason = reason


class ConversationBusyError(Exception):
    """An operation needs the conversation to be idle, but a response is still streaming."""
    def __init__(self, message: str, state: str):
        super().__init__(message)
        self.message = message
        self.state = state
