"""
Chat Service Package

Proxy-side handling of /chat requests.

Modules:
- stream_processor: transparent relay of upstream event streams
- chat_service: request validation and forwarding to the upstream provider
"""

from .stream_processor import StreamProcessor
from .chat_service import ChatService

__all__ = [
    "StreamProcessor",
    "ChatService"
]
