"""
Chat Service Module

Coordinates /chat requests: validation, upstream selection, and forwarding of
either the streaming or the single-JSON answer.

The upstream API key is injected by the provider; the client only ever sees
the upstream's own bytes (streaming) or JSON body (non-streaming).
"""

import httpx
from typing import Any, Optional
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse

from ...core.config_manager import ConfigManager
from ...providers import get_provider_instance, BaseProvider
from ...core.logging import logger
from ...core.error_handling import ErrorHandler, ErrorContext
from ..chat.validator import ChatRequestValidator
from .stream_processor import StreamProcessor


class ChatService:
    """
    Facade for chat completion forwarding.

    Attributes:
        config_manager: Source of the upstream configuration
        httpx_client: Shared client for upstream calls
        stream_processor: Relay used for streaming answers
    """

    def __init__(self, config_manager: ConfigManager, httpx_client: httpx.AsyncClient):
        self.config_manager = config_manager
        self.httpx_client = httpx_client
        self.stream_processor = StreamProcessor()

    def get_provider(self, context: ErrorContext) -> BaseProvider:
        """Build the upstream provider from the current (possibly reloaded) config."""
        upstream_config = self.config_manager.upstream_config
        context.upstream_name = upstream_config.get("type")
        return get_provider_instance(upstream_config, self.httpx_client, api_key=self.config_manager.upstream_api_key)

    async def chat_completions(self, request: Request, client_id: Optional[str]) -> Any:
        """
        Forward one chat completion request.

        Returns:
            StreamingResponse relaying the upstream event stream when ``stream``
            is true, JSONResponse with the upstream answer otherwise.

        Raises:
            HTTPException: 400 on a malformed body, 500 on upstream
                misconfiguration, upstream status (or 502) on upstream failure
        """
        request_id = getattr(request.state, "request_id", "unknown")
        client_id = client_id or "anonymous"
        context = ErrorContext(request_id=request_id, client_id=client_id, endpoint_path="/chat")

        try:
            request_body = await request.json()
        except ValueError as e:
            raise ErrorHandler.handle_invalid_request(f"body is not valid JSON: {e}", context)

        ChatRequestValidator.validate_chat_request(request_body, context)
        requested_model = request_body["model"]

        logger.request(
            operation="Chat Completion Request",
            request_id=request_id,
            client_id=client_id,
            model_id=requested_model,
            stream=request_body.get("stream", False),
            messages_count=len(request_body["messages"])
        )

        provider = self.get_provider(context)

        try:
            with logger.request_context(
                operation="Chat Completion",
                request_id=request_id,
                client_id=client_id,
                model_id=requested_model,
                upstream_name=provider.name
            ):
                response_data = await provider.chat_completions(request_body, request_id)

                if isinstance(response_data, httpx.Response):
                    return StreamingResponse(
                        self.stream_processor.process_stream(response_data, requested_model, request_id, client_id),
                        media_type=response_data.headers.get("content-type", "text/event-stream")
                    )

                logger.debug_data(
                    title="Chat Completion Response JSON",
                    data=response_data,
                    request_id=request_id,
                    component="chat_service",
                    data_flow="from_upstream"
                )
                return JSONResponse(content=response_data)

        except HTTPException:
            # Already logged by the error handler
            raise
        except Exception as e:
            raise ErrorHandler.handle_internal_server_error(str(e), context, e)
