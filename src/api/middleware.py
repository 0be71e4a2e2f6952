import time
import os
from fastapi import Request, HTTPException, status
from starlette.middleware.base import BaseHTTPMiddleware
from ..core.logging import logger

REQUEST_ID_HEADER = "X-Request-ID"


def _error_summary(exception: HTTPException):
    detail = exception.detail if isinstance(exception.detail, dict) else {}
    error = detail.get("error") if isinstance(detail.get("error"), dict) else {}
    return error.get("message", str(exception.detail)), error.get("code", "unknown_error")


class RequestLoggerMiddleware(BaseHTTPMiddleware):
    """
    Tags every request with an id and logs one line in and one line out.

    A client-supplied ``X-Request-ID`` is kept so client and proxy logs of
    the same chat turn share an id; otherwise a random one is generated.
    """

    async def dispatch(self, request: Request, call_next):
        started = time.time()
        request_id = request.headers.get(REQUEST_ID_HEADER) or os.urandom(8).hex()
        request.state.request_id = request_id

        logger.request(operation="Incoming Request", request_id=request_id,
                       method=request.method, url=str(request.url))

        try:
            response = await call_next(request)
        except HTTPException as e:
            message, code = _error_summary(e)
            logger.error(f"HTTP Exception: {message}", exc_info=False, request_id=request_id,
                         status_code=e.status_code, error_code=code)
            raise
        except Exception as e:
            logger.error(f"Unexpected error: {e}", request_id=request_id,
                         status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
            raise

        elapsed = time.time() - started
        response.headers["X-Process-Time"] = f"{elapsed:.6f}"
        response.headers[REQUEST_ID_HEADER] = request_id

        logger.response(
            operation="Outgoing Response",
            request_id=request_id,
            client_id=getattr(request.state, "client_id", "anonymous"),
            status_code=response.status_code,
            processing_time_ms=round(elapsed * 1000)
        )
        return response
