"""
Separation of reasoning ("thinking") blocks from the visible answer.

Reasoning models wrap their chain of thought in ``<think>...</think>``.
While a response is still streaming the closing tag may not have arrived
yet; everything after an unterminated opening tag is treated as thinking.
"""
import re
from typing import Tuple

THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"

_THINK_BLOCK = re.compile(r"<think>([\s\S]*?)</think>")


def split_thinking(text: str) -> Tuple[str, str]:
    """
    Split ``text`` into ``(thinking, content)``.

    Only the first think block is extracted; text without an opening tag is
    returned unchanged as content.
    """
    if not text or THINK_OPEN not in text:
        return "", text

    match = _THINK_BLOCK.search(text)
    if match:
        thinking = match.group(1).strip()
        content = (text[:match.start()] + text[match.end():]).strip()
        return thinking, content

    # Block still open: the closing tag has not streamed in yet
    before, _, after = text.partition(THINK_OPEN)
    return after.strip(), before.strip()
