import copy
import httpx
from typing import Dict, Any, Optional, Union

from .base import BaseProvider
from ..utils.deep_merge import deep_merge
from ..core.logging import logger

CHAT_COMPLETIONS_PATH = "/chat/completions"
MODELS_PATH = "/models"
IMAGE_GENERATE_PATH = "/image/generate"


class VeniceProvider(BaseProvider):
    """Venice AI (OpenAI-compatible chat with ``venice_parameters``)."""

    def _with_defaults(self, request_body: Dict[str, Any]) -> Dict[str, Any]:
        # Client values override configured defaults, nested dicts included
        if not self.request_defaults:
            return request_body
        return deep_merge(copy.deepcopy(self.request_defaults), request_body)

    async def chat_completions(self, request_body: Dict[str, Any], request_id: str) -> Union[httpx.Response, Dict[str, Any]]:
        """
        Forward a chat completion.

        Returns the open upstream response for streaming requests and the
        parsed JSON answer otherwise.
        """
        request_body = self._with_defaults(request_body)

        logger.debug_data(
            title="Venice Chat Request",
            data=request_body,
            request_id=request_id,
            component="venice_provider",
            data_flow="to_upstream"
        )

        if request_body.get("stream", False):
            return await self._stream_request(CHAT_COMPLETIONS_PATH, request_body, request_id)
        return await self.post_json(CHAT_COMPLETIONS_PATH, request_body, request_id, read_timeout=120.0)

    async def list_models(self, model_type: Optional[str], request_id: str) -> Any:
        params = {"type": model_type} if model_type else None
        return await self.get_json(MODELS_PATH, request_id, params=params)

    async def generate_image(self, request_body: Dict[str, Any], request_id: str) -> Any:
        # Image generation easily takes minutes on large sizes
        return await self.post_json(IMAGE_GENERATE_PATH, request_body, request_id, read_timeout=300.0)
