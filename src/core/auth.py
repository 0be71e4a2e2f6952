from fastapi import Security, Request
from fastapi.security import APIKeyHeader
from typing import Optional
from .error_handling import ErrorHandler, ErrorContext

api_key_header = APIKeyHeader(name="Authorization", auto_error=False)


def _client_id_for(api_key: str) -> str:
    # Short, non-reversible tag for logs; the key itself is never logged
    return f"client-{api_key[-4:]}" if len(api_key) > 8 else "client"


async def get_api_key(
    request: Request,
    api_key: Optional[str] = Security(api_key_header)
) -> Optional[str]:
    """
    Check the client's bearer key against ``access_keys``.

    An empty ``access_keys`` list leaves the proxy open; the dependency then
    resolves to None. Otherwise the matching client id is returned and stored
    in ``request.state.client_id``.
    """
    config_manager = request.app.state.config_manager
    access_keys = config_manager.access_keys
    request_id = getattr(request.state, "request_id", None)

    if not access_keys:
        return None

    if not api_key:
        context = ErrorContext(request_id=request_id, endpoint_path=request.url.path)
        raise ErrorHandler.handle_auth_errors("missing_api_key", context)

    # Remove "Bearer " prefix if present
    if api_key.startswith("Bearer "):
        api_key = api_key[len("Bearer "):]

    if api_key not in access_keys:
        context = ErrorContext(request_id=request_id, endpoint_path=request.url.path)
        raise ErrorHandler.handle_auth_errors("invalid_api_key", context)

    client_id = _client_id_for(api_key)
    request.state.client_id = client_id
    return client_id
