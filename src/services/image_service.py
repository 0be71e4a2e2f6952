import httpx
from typing import Dict, Any, Optional

from fastapi import Request

from ..core.config_manager import ConfigManager
from ..core.logging import logger
from ..core.error_handling import ErrorHandler, ErrorContext
from ..providers import get_provider_instance
from .chat.validator import ChatRequestValidator


class ImageService:
    """Forwards image generation requests and normalizes the answer to ``{"images": [...]}``."""

    def __init__(self, config_manager: ConfigManager, httpx_client: httpx.AsyncClient):
        self.config_manager = config_manager
        self.httpx_client = httpx_client

    async def generate_image(self, request: Request, client_id: Optional[str]) -> Dict[str, Any]:
        request_id = getattr(request.state, "request_id", "unknown")
        context = ErrorContext(request_id=request_id, client_id=client_id or "anonymous", endpoint_path="/image")

        try:
            request_body = await request.json()
        except ValueError as e:
            raise ErrorHandler.handle_invalid_request(f"body is not valid JSON: {e}", context)

        ChatRequestValidator.validate_image_request(request_body, context)

        logger.request(
            operation="Image Generation Request",
            request_id=request_id,
            client_id=client_id or "anonymous",
            model_id=request_body["model"],
            width=request_body.get("width"),
            height=request_body.get("height")
        )

        provider = get_provider_instance(
            self.config_manager.upstream_config, self.httpx_client, api_key=self.config_manager.upstream_api_key
        )
        context.upstream_name = provider.name

        with logger.request_context(operation="Image Generation", request_id=request_id,
                                    model_id=request_body["model"]):
            upstream_response = await provider.generate_image(request_body, request_id)

        images = upstream_response.get("images") if isinstance(upstream_response, dict) else None
        if not isinstance(images, list):
            raise ErrorHandler.handle_upstream_stream_error(
                error_details="upstream answer contains no images",
                context=context,
                status_code=502
            )

        logger.info("Images generated", request_id=request_id, images_count=len(images))
        return {"images": images}
