"""
Transport layer: proxy HTTP client and request cancellation.
"""

from .cancellation import ActiveRequestHandle, CancellationToken
from .proxy_client import ProxyClient

__all__ = [
    "ActiveRequestHandle",
    "CancellationToken",
    "ProxyClient",
]
