"""
Transport Layer

HTTP client for the chat proxy: model listing, streaming chat completions
and image generation. Authentication towards the proxy is an optional
bearer key; the upstream model API key stays on the proxy.
"""

import json
import time
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from .cancellation import CancellationToken
from ..core.exceptions import UpstreamHTTPError, UpstreamNetworkError
from ..core.logging import logger
from ..services.chat.parsed_event import StreamEvent
from ..services.chat.stream_decoder import StreamDecoder

MODELS_PATH = "/models"
CHAT_PATH = "/chat"
IMAGE_PATH = "/image"


class ProxyClient:
    """
    Async client for the proxy HTTP surface.

    No read timeout is applied to streams by default: a response may idle
    between chunks for as long as the model needs, and dead connections are
    left to the socket layer.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[httpx.Timeout] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient()
        self.timeout = timeout or httpx.Timeout(connect=10.0, read=None, write=10.0, pool=10.0)

    async def aclose(self):
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    def _headers(self, request_id: Optional[str] = None) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        if request_id:
            headers["X-Request-ID"] = request_id
        return headers

    @staticmethod
    def _raise_for_status(response: httpx.Response, operation: str):
        if response.status_code < 400:
            return
        try:
            response_text = response.text
        except httpx.ResponseNotRead:
            response_text = None

        message = f"{operation} failed with status {response.status_code}"
        try:
            error_json = response.json()
            error = error_json.get("error") if isinstance(error_json, dict) else None
            if isinstance(error, dict) and error.get("message"):
                message = f"{message}: {error['message']}"
            elif isinstance(error_json, dict) and isinstance(error_json.get("detail"), dict):
                detail_error = error_json["detail"].get("error", {})
                if detail_error.get("message"):
                    message = f"{message}: {detail_error['message']}"
        except (json.JSONDecodeError, ValueError, httpx.ResponseNotRead):
            pass

        raise UpstreamHTTPError(message, status_code=response.status_code, response_text=response_text)

    @staticmethod
    def _json_body(response: httpx.Response, operation: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamHTTPError(
                f"{operation} returned a body that is not valid JSON: {e}",
                status_code=response.status_code,
                response_text=response.text[:500]
            ) from e

    async def list_models(self, model_type: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Fetch the model catalog.

        The proxy answers with either ``{"data": [...]}`` or ``{"models": [...]}``.
        """
        params = {"type": model_type} if model_type else None
        try:
            response = await self.client.get(
                f"{self.base_url}{MODELS_PATH}", headers=self._headers(), params=params, timeout=self.timeout
            )
        except httpx.RequestError as e:
            raise UpstreamNetworkError(str(e) or type(e).__name__, e) from e

        self._raise_for_status(response, "Model listing")
        payload = self._json_body(response, "Model listing")
        if isinstance(payload, dict):
            models = payload.get("data")
            if not isinstance(models, list):
                models = payload.get("models")
            if isinstance(models, list):
                return models
        logger.warning("Model listing returned no model list", payload_type=type(payload).__name__)
        return []

    async def stream_chat(
        self,
        request_body: Dict[str, Any],
        token: Optional[CancellationToken] = None,
        request_id: Optional[str] = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        POST the chat request and yield decoded events in arrival order.

        A JSON (non-streaming) answer becomes one full-content event followed
        by a done event. The final event is always a done event unless the
        stream was cut off. Cancelling ``token`` stops before the next chunk.
        """
        decoder = StreamDecoder(request_id=request_id or "unknown")
        start_time = time.time()
        chunk_count = 0

        logger.request(
            operation="Chat Stream",
            request_id=request_id,
            model_id=request_body.get("model"),
            messages_count=len(request_body.get("messages", []))
        )
        logger.debug_data(title="Chat Request JSON", data=request_body, request_id=request_id,
                          component="proxy_client", data_flow="outgoing")

        try:
            async with self.client.stream(
                "POST", f"{self.base_url}{CHAT_PATH}",
                headers=self._headers(request_id), json=request_body, timeout=self.timeout
            ) as response:
                if response.status_code >= 400:
                    await response.aread()
                    self._raise_for_status(response, "Chat request")

                content_type = response.headers.get("content-type", "")
                if "application/json" in content_type:
                    await response.aread()
                    payload = self._json_body(response, "Chat request")
                    if isinstance(payload, dict):
                        yield StreamEvent.from_payload(payload)
                    yield StreamEvent.done()
                    return

                async for chunk in response.aiter_bytes():
                    if token is not None:
                        token.raise_if_cancelled()
                    chunk_count += 1
                    for event in decoder.decode(chunk):
                        yield event
                        if event.is_done:
                            return

                for event in decoder.flush():
                    yield event
                    if event.is_done:
                        return
                yield StreamEvent.done()
        except httpx.RequestError as e:
            raise UpstreamNetworkError(str(e) or type(e).__name__, e) from e
        finally:
            logger.performance(
                "Chat Stream",
                start_time=start_time,
                request_id=request_id,
                chunks_received=chunk_count,
                events_emitted=decoder.events_emitted,
                malformed_lines=decoder.malformed_lines
            )

    async def generate_image(
        self,
        request_body: Dict[str, Any],
        token: Optional[CancellationToken] = None,
        request_id: Optional[str] = None,
    ) -> List[str]:
        """Request image generation; returns the base64-encoded images."""
        if token is not None:
            token.raise_if_cancelled()

        logger.request(operation="Image Generation", request_id=request_id, model_id=request_body.get("model"))
        try:
            response = await self.client.post(
                f"{self.base_url}{IMAGE_PATH}",
                headers=self._headers(request_id),
                json=request_body,
                timeout=httpx.Timeout(connect=10.0, read=300.0, write=10.0, pool=10.0)
            )
        except httpx.RequestError as e:
            raise UpstreamNetworkError(str(e) or type(e).__name__, e) from e

        if token is not None:
            token.raise_if_cancelled()

        self._raise_for_status(response, "Image generation")
        payload = self._json_body(response, "Image generation")
        images = payload.get("images") if isinstance(payload, dict) else None
        if not isinstance(images, list):
            return []
        return [image for image in images if isinstance(image, str)]
