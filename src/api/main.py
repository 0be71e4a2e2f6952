from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request, Depends
import uvicorn
import httpx

from ..core.config_manager import ConfigManager
from ..core.auth import get_api_key
from ..services.chat_service.chat_service import ChatService
from ..services.model_service import ModelService
from ..services.image_service import ImageService
from .middleware import RequestLoggerMiddleware


def create_app(config_dir: Optional[str] = None, httpx_client: Optional[httpx.AsyncClient] = None) -> FastAPI:
    """
    Build the proxy application.

    Args:
        config_dir: Directory holding proxy.yaml; defaults to $PROXY_CONFIG_DIR or ./config
        httpx_client: Client for upstream calls; one is created (and closed) when omitted
    """
    app = FastAPI(title="vgpt-chat proxy")
    app.state.config_manager = ConfigManager(config_dir)

    @app.on_event("startup")
    async def startup_event():
        app.state.config_manager.start_reloader_task()

        app.state.owns_httpx_client = httpx_client is None
        app.state.httpx_client = httpx_client or httpx.AsyncClient()

        app.state.model_service = ModelService(app.state.config_manager, app.state.httpx_client)
        app.state.chat_service = ChatService(app.state.config_manager, app.state.httpx_client)
        app.state.image_service = ImageService(app.state.config_manager, app.state.httpx_client)

    @app.on_event("shutdown")
    async def shutdown_event():
        await app.state.config_manager.stop_reloader_task()
        if app.state.owns_httpx_client:
            await app.state.httpx_client.aclose()

    app.add_middleware(RequestLoggerMiddleware)

    @app.get("/health")
    async def health_check():
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.get("/models")
    async def list_models(request: Request, type: Optional[str] = None, client_id: Optional[str] = Depends(get_api_key)):
        request_id = getattr(request.state, "request_id", "unknown")
        return await app.state.model_service.list_models(type, request_id, client_id)

    @app.post("/chat")
    async def chat(request: Request, client_id: Optional[str] = Depends(get_api_key)):
        return await app.state.chat_service.chat_completions(request, client_id)

    @app.post("/image")
    async def image(request: Request, client_id: Optional[str] = Depends(get_api_key)):
        return await app.state.image_service.generate_image(request, client_id)

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
