"""
Streaming chat components: decoding, assembly and request building.
"""

from .parsed_event import StreamEvent, Usage
from .stream_decoder import StreamDecoder
from .response_assembler import ResponseAssembler
from .request_builder import build_chat_request, build_image_request
from .thinking import split_thinking
from .error_handler import StreamingErrorHandler

__all__ = [
    'StreamEvent',
    'Usage',
    'StreamDecoder',
    'ResponseAssembler',
    'build_chat_request',
    'build_image_request',
    'split_thinking',
    'StreamingErrorHandler'
]
