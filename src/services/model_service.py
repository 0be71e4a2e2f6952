import httpx
from typing import Dict, Any, Optional

from ..core.config_manager import ConfigManager
from ..core.logging import logger
from ..core.error_handling import ErrorContext
from ..providers import get_provider_instance

MODEL_TYPES = ("text", "image", "embedding", "tts", "upscale", "all")


class ModelService:
    """Forwards model listings from the upstream API."""

    def __init__(self, config_manager: ConfigManager, httpx_client: httpx.AsyncClient):
        self.config_manager = config_manager
        self.httpx_client = httpx_client

    async def list_models(self, model_type: Optional[str], request_id: str, client_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Return the upstream model list as ``{"data": [...]}``.

        Upstream answers keyed ``models`` are accepted too; anything without a
        list is treated as an empty catalog.
        """
        context = ErrorContext(request_id=request_id, client_id=client_id, endpoint_path="/models")
        upstream_config = self.config_manager.upstream_config
        provider = get_provider_instance(upstream_config, self.httpx_client, api_key=self.config_manager.upstream_api_key)
        context.upstream_name = provider.name

        if model_type and model_type not in MODEL_TYPES:
            logger.warning("Unknown model type requested, forwarding anyway", request_id=request_id, model_type=model_type)

        upstream_response = await provider.list_models(model_type, request_id)

        models = None
        if isinstance(upstream_response, dict):
            models = upstream_response.get("data")
            if not isinstance(models, list):
                models = upstream_response.get("models")
        if not isinstance(models, list):
            logger.warning("Upstream model listing had no model list", request_id=request_id,
                           response_type=type(upstream_response).__name__)
            models = []

        logger.info("Model listing forwarded", request_id=request_id, model_type=model_type or "text",
                    models_count=len(models))
        return {"object": "list", "data": models}
