from typing import Dict, Any, Optional
import httpx

from .base import BaseProvider
from .venice import VeniceProvider
from ..core.error_handling import ErrorHandler, ErrorContext

PROVIDER_TYPES = {
    "venice": VeniceProvider,
}


def get_provider_instance(
    provider_config: Dict[str, Any],
    client: httpx.AsyncClient,
    api_key: Optional[str] = None
) -> BaseProvider:
    provider_type = provider_config.get("type", "venice")
    provider_class = PROVIDER_TYPES.get(provider_type)
    if provider_class is None:
        context = ErrorContext(upstream_name=provider_type)
        raise ErrorHandler.handle_upstream_config_error(
            error_details=f"Unknown upstream type '{provider_type}'",
            context=context
        )
    return provider_class(provider_config, client, api_key=api_key)
