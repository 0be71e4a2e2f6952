"""
Error records for proxy failures, written through the shared project logger.
"""

from typing import Dict, Any, Optional

from .error_types import ErrorType, ErrorContext
from ..logging import logger
from ..logging.config import decode_unicode_escapes


class ErrorLogger:

    @staticmethod
    def _exception_fields(original_exception: Optional[Exception]) -> Dict[str, Any]:
        if original_exception is None:
            return {}
        return {
            "original_exception": str(original_exception),
            "original_exception_type": type(original_exception).__name__,
        }

    @staticmethod
    def log_error(
        error_type: ErrorType,
        context: ErrorContext,
        original_exception: Optional[Exception] = None,
        additional_data: Optional[Dict[str, Any]] = None,
        message: Optional[str] = None
    ):
        """One ERROR record per reported error, with the context as extra fields."""
        fields = context.to_log_extra()
        fields.update(error_code=error_type.code, http_status_code=error_type.status_code)
        fields.update(additional_data or {})
        fields.update(ErrorLogger._exception_fields(original_exception))

        logger.error(
            message or error_type.format_message(**context.format_fields()),
            exc_info=original_exception is not None,
            **fields
        )

    @staticmethod
    def log_upstream_error(
        upstream_name: str,
        error_details: str,
        status_code: int,
        context: ErrorContext,
        original_exception: Optional[Exception] = None
    ):
        """Record the body of an error answer from the upstream model API."""
        details = decode_unicode_escapes(error_details)

        fields = context.to_log_extra()
        fields.update(
            upstream_name=upstream_name,
            upstream_error_details=details,
            upstream_status_code=status_code,
            error_code="upstream_error",
        )
        fields.update(ErrorLogger._exception_fields(original_exception))

        logger.error(
            f"Upstream '{upstream_name}' returned error {status_code}: {details}",
            exc_info=original_exception is not None,
            **fields
        )
