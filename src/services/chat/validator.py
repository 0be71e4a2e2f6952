"""
Validation of incoming /chat and /image request bodies.
"""
from numbers import Real
from typing import Any, Dict

from ...core.error_handling import ErrorHandler, ErrorContext

MESSAGE_ROLES = ("system", "user", "assistant", "tool")
IMAGE_FORMATS = ("webp", "png", "jpeg")


class ChatRequestValidator:
    """Checks request shapes before anything is sent upstream."""

    @staticmethod
    def validate_chat_request(request_body: Any, context: ErrorContext) -> Dict[str, Any]:
        if not isinstance(request_body, dict):
            raise ErrorHandler.handle_invalid_request("request body must be a JSON object", context)

        model = request_body.get("model")
        if not model:
            raise ErrorHandler.handle_missing_field("model", context)
        if not isinstance(model, str):
            raise ErrorHandler.handle_invalid_request("'model' must be a string", context)
        context.model_id = model

        messages = request_body.get("messages")
        if messages is None:
            raise ErrorHandler.handle_missing_field("messages", context)
        if not isinstance(messages, list) or not messages:
            raise ErrorHandler.handle_invalid_request("'messages' must be a non-empty list", context)

        for index, message in enumerate(messages):
            if not isinstance(message, dict):
                raise ErrorHandler.handle_invalid_request(f"messages[{index}] must be an object", context)
            if message.get("role") not in MESSAGE_ROLES:
                raise ErrorHandler.handle_invalid_request(
                    f"messages[{index}].role must be one of {', '.join(MESSAGE_ROLES)}", context
                )
            if not isinstance(message.get("content"), (str, list)):
                raise ErrorHandler.handle_invalid_request(f"messages[{index}].content must be a string", context)

        if "stream" in request_body and not isinstance(request_body["stream"], bool):
            raise ErrorHandler.handle_invalid_request("'stream' must be a boolean", context)

        for field in ("temperature", "top_p", "min_p", "max_completion_tokens", "top_k", "repetition_penalty"):
            value = request_body.get(field)
            if value is not None and (isinstance(value, bool) or not isinstance(value, Real)):
                raise ErrorHandler.handle_invalid_request(f"'{field}' must be a number", context)

        venice_parameters = request_body.get("venice_parameters")
        if venice_parameters is not None and not isinstance(venice_parameters, dict):
            raise ErrorHandler.handle_invalid_request("'venice_parameters' must be an object", context)

        return request_body

    @staticmethod
    def validate_image_request(request_body: Any, context: ErrorContext) -> Dict[str, Any]:
        if not isinstance(request_body, dict):
            raise ErrorHandler.handle_invalid_request("request body must be a JSON object", context)

        for field in ("model", "prompt"):
            value = request_body.get(field)
            if not value:
                raise ErrorHandler.handle_missing_field(field, context)
            if not isinstance(value, str):
                raise ErrorHandler.handle_invalid_request(f"'{field}' must be a string", context)
        context.model_id = request_body["model"]

        for field in ("width", "height", "steps"):
            value = request_body.get(field)
            if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value <= 0):
                raise ErrorHandler.handle_invalid_request(f"'{field}' must be a positive integer", context)

        cfg_scale = request_body.get("cfg_scale")
        if cfg_scale is not None and (isinstance(cfg_scale, bool) or not isinstance(cfg_scale, Real)):
            raise ErrorHandler.handle_invalid_request("'cfg_scale' must be a number", context)

        image_format = request_body.get("format")
        if image_format is not None and image_format not in IMAGE_FORMATS:
            raise ErrorHandler.handle_invalid_request(
                f"'format' must be one of {', '.join(IMAGE_FORMATS)}", context
            )

        return request_body
