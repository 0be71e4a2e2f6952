"""
Proxy error factory.

Every failure the proxy reports to a client goes through ``ErrorHandler``:
it logs once and hands back an ``HTTPException`` whose detail is
``{"error": {"message": ..., "code": ...}}``. Callers ``raise`` the result.
"""

from typing import Optional
from fastapi import HTTPException
import httpx

from .error_types import ErrorType, ErrorContext
from .error_logger import ErrorLogger

_AUTH_ERROR_TYPES = {
    "missing_api_key": ErrorType.MISSING_API_KEY,
    "invalid_api_key": ErrorType.INVALID_API_KEY,
}


def _read_error_body(response: httpx.Response) -> str:
    try:
        return response.text
    except httpx.ResponseNotRead:
        return "Unable to read error response from upstream"


class ErrorHandler:
    """Static factories for the proxy's HTTP errors."""

    @staticmethod
    def create_http_exception(
        error_type: ErrorType,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
        log_error: bool = True,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        **format_kwargs
    ) -> HTTPException:
        """
        Build (and by default log) the HTTPException for ``error_type``.

        Args:
            error_type: Which error to report
            context: Request identifiers, also usable as message placeholders
            original_exception: Underlying cause, logged with its traceback
            log_error: False when the caller has already logged the failure
            status_code: Replaces the status of error types without a fixed one
            error_code: Replaces the error type's code in the detail
            **format_kwargs: Values for the message template

        An upstream HTTP error takes its status from the upstream response and
        reports the code ``upstream_http_error_<status>``.
        """
        context = context or ErrorContext()
        detail = error_type.create_error_detail(**{**context.format_fields(), **format_kwargs})

        upstream_response = getattr(original_exception, "response", None)
        if error_type is ErrorType.UPSTREAM_HTTP_ERROR and upstream_response is not None:
            status_code = upstream_response.status_code
            error_code = error_code or f"upstream_http_error_{status_code}"

        if error_code:
            detail["error"]["code"] = error_code
        status_code = status_code or error_type.status_code or 500

        if log_error:
            ErrorLogger.log_error(
                error_type=error_type,
                context=context,
                original_exception=original_exception,
                additional_data={"error_detail": detail, "http_status_code": status_code},
                message=detail["error"]["message"]
            )

        return HTTPException(status_code=status_code, detail=detail)

    # Request shape

    @staticmethod
    def handle_missing_field(field_name: str, context: ErrorContext) -> HTTPException:
        return ErrorHandler.create_http_exception(ErrorType.MISSING_REQUIRED_FIELD, context, field_name=field_name)

    @staticmethod
    def handle_invalid_request(error_details: str, context: ErrorContext) -> HTTPException:
        return ErrorHandler.create_http_exception(ErrorType.INVALID_REQUEST_FORMAT, context, error_details=error_details)

    @staticmethod
    def handle_auth_errors(
        auth_type: str,
        context: ErrorContext,
        original_exception: Optional[Exception] = None
    ) -> HTTPException:
        """401 for a missing or unknown client key; anything else is an internal error."""
        error_type = _AUTH_ERROR_TYPES.get(auth_type)
        if error_type is None:
            return ErrorHandler.handle_internal_server_error(
                f"Authentication error: {auth_type}", context, original_exception
            )
        return ErrorHandler.create_http_exception(error_type, context, original_exception)

    # Upstream

    @staticmethod
    def handle_upstream_config_error(
        error_details: str,
        context: ErrorContext,
        original_exception: Optional[Exception] = None
    ) -> HTTPException:
        return ErrorHandler.create_http_exception(
            ErrorType.UPSTREAM_CONFIG_ERROR, context, original_exception, error_details=error_details
        )

    @staticmethod
    def handle_upstream_http_error(
        original_exception: httpx.HTTPStatusError,
        context: ErrorContext,
        upstream_name: Optional[str] = None
    ) -> HTTPException:
        """
        Mirror a non-2xx upstream answer.

        429 becomes ``rate_limit_exceeded``; any other status is passed through
        with the upstream body as the message.
        """
        if upstream_name:
            context.upstream_name = upstream_name

        response = original_exception.response
        if response.status_code == 429:
            return ErrorHandler.create_http_exception(
                ErrorType.UPSTREAM_RATE_LIMIT_ERROR, context, original_exception
            )

        error_details = _read_error_body(response)
        ErrorLogger.log_upstream_error(
            upstream_name=upstream_name or "unknown",
            error_details=error_details,
            status_code=response.status_code,
            context=context,
            original_exception=original_exception
        )
        return ErrorHandler.create_http_exception(
            ErrorType.UPSTREAM_HTTP_ERROR,
            context,
            original_exception,
            log_error=False,
            error_details=error_details
        )

    @staticmethod
    def handle_upstream_network_error(
        original_exception: httpx.RequestError,
        context: ErrorContext,
        upstream_name: Optional[str] = None
    ) -> HTTPException:
        if upstream_name:
            context.upstream_name = upstream_name
        return ErrorHandler.create_http_exception(
            ErrorType.UPSTREAM_NETWORK_ERROR, context, original_exception,
            error_details=str(original_exception) or type(original_exception).__name__
        )

    @staticmethod
    def handle_upstream_stream_error(
        error_details: str,
        context: ErrorContext,
        status_code: int,
        error_code: Optional[str] = None,
        original_exception: Optional[Exception] = None
    ) -> HTTPException:
        """Failure detected while opening a stream or reading an upstream answer."""
        return ErrorHandler.create_http_exception(
            ErrorType.UPSTREAM_STREAM_ERROR,
            context,
            original_exception,
            status_code=status_code,
            error_code=error_code,
            error_details=error_details
        )

    @staticmethod
    def handle_internal_server_error(
        error_details: str,
        context: ErrorContext,
        original_exception: Optional[Exception] = None
    ) -> HTTPException:
        return ErrorHandler.create_http_exception(
            ErrorType.INTERNAL_SERVER_ERROR, context, original_exception, error_details=error_details
        )
