"""
Error catalogue of the proxy and the context attached to error records.
"""

from enum import Enum
from typing import Dict, Any, Optional
from fastapi import status


class _KeepMissing(dict):
    """Leaves unknown ``{placeholders}`` in place instead of failing."""

    def __missing__(self, key):
        return "{" + key + "}"


class ErrorType(Enum):
    """(code, HTTP status, message template) for each error the proxy reports."""

    # 400
    INVALID_REQUEST_FORMAT = ("invalid_request_format", status.HTTP_400_BAD_REQUEST, "Invalid request format: {error_details}")
    MISSING_REQUIRED_FIELD = ("missing_required_field", status.HTTP_400_BAD_REQUEST, "Missing required field: {field_name}")

    # 401
    MISSING_API_KEY = ("missing_api_key", status.HTTP_401_UNAUTHORIZED, "API key missing")
    INVALID_API_KEY = ("invalid_api_key", status.HTTP_401_UNAUTHORIZED, "Invalid API key")

    # 500
    UPSTREAM_CONFIG_ERROR = ("upstream_config_error", status.HTTP_500_INTERNAL_SERVER_ERROR, "Upstream configuration error: {error_details}")
    INTERNAL_SERVER_ERROR = ("internal_server_error", status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error: {error_details}")

    # Upstream failures; None means the status comes from the upstream answer
    UPSTREAM_HTTP_ERROR = ("upstream_http_error", None, "Upstream error: {error_details}")
    UPSTREAM_NETWORK_ERROR = ("upstream_network_error", status.HTTP_502_BAD_GATEWAY, "Network error communicating with upstream: {error_details}")
    UPSTREAM_RATE_LIMIT_ERROR = ("rate_limit_exceeded", status.HTTP_429_TOO_MANY_REQUESTS, "Upstream rate limit exceeded (429 Too Many Requests). Please retry after a delay.")
    UPSTREAM_STREAM_ERROR = ("upstream_stream_error", None, "Upstream streaming error: {error_details}")

    def __init__(self, code: str, status_code: Optional[int], message_template: str):
        self.code = code
        self.status_code = status_code
        self.message_template = message_template

    def format_message(self, **kwargs) -> str:
        """Fill the template; placeholders without a value are left as written."""
        return self.message_template.format_map(_KeepMissing(kwargs))

    def create_error_detail(self, **kwargs) -> Dict[str, Any]:
        return {"error": {"message": self.format_message(**kwargs), "code": self.code}}


class ErrorContext:
    """
    Identifiers of the failing request.

    Extra keyword arguments are kept in ``additional_context`` and end up in
    the error log record next to the named fields.
    """

    FIELDS = ("request_id", "client_id", "model_id", "endpoint_path", "upstream_name")

    def __init__(
        self,
        request_id: Optional[str] = None,
        client_id: Optional[str] = None,
        model_id: Optional[str] = None,
        endpoint_path: Optional[str] = None,
        upstream_name: Optional[str] = None,
        **additional_context
    ):
        self.request_id = request_id
        self.client_id = client_id
        self.model_id = model_id
        self.endpoint_path = endpoint_path
        self.upstream_name = upstream_name
        self.additional_context = additional_context

    def format_fields(self) -> Dict[str, Any]:
        fields = {name: getattr(self, name) for name in self.FIELDS}
        fields.update(self.additional_context)
        return fields

    def to_log_extra(self) -> Dict[str, Any]:
        """Non-empty fields plus the additional context, tagged ``log_type=error``."""
        extra = {"log_type": "error"}
        extra.update({name: value for name, value in self.format_fields().items() if value})
        return extra
