"""
Request body builders for the proxy's /chat and /image endpoints.
"""

from typing import Any, Dict, Iterable, List

from ...core.settings import AppSettings

CHARACTER_SLUG = "venice"
IMAGE_FORMAT = "webp"


def build_venice_parameters(settings: AppSettings) -> Dict[str, Any]:
    return {
        "character_slug": CHARACTER_SLUG,
        "strip_thinking_response": settings.strip_thinking,
        "disable_thinking": settings.disable_thinking,
        "enable_web_search": settings.web_search,
        "enable_web_citations": settings.web_citations,
        "include_search_results_in_stream": settings.include_search_results,
        "include_venice_system_prompt": settings.include_venice_system_prompt,
    }


def build_chat_request(
    settings: AppSettings,
    messages: Iterable[Dict[str, str]],
    stream: bool = True,
) -> Dict[str, Any]:
    """
    Build the chat completion body.

    Args:
        settings: Sampling parameters and model choice
        messages: Context messages as ``{"role", "content"}`` dicts, in order
        stream: Ask for an event stream rather than a single JSON answer
    """
    message_list: List[Dict[str, str]] = [
        {"role": message["role"], "content": message["content"]} for message in messages
    ]
    return {
        "model": settings.model,
        "messages": message_list,
        "stream": stream,
        "temperature": settings.temperature,
        "top_p": settings.top_p,
        "min_p": settings.min_p,
        "max_completion_tokens": settings.max_tokens,
        "top_k": settings.top_k,
        "repetition_penalty": settings.repetition_penalty,
        "venice_parameters": build_venice_parameters(settings),
    }


def build_image_request(settings: AppSettings, prompt: str) -> Dict[str, Any]:
    body = {
        "model": settings.image_model,
        "prompt": prompt,
        "width": settings.image_width,
        "height": settings.image_height,
        "format": IMAGE_FORMAT,
    }
    if settings.image_steps:
        body["steps"] = settings.image_steps
    if settings.image_guidance_scale:
        body["cfg_scale"] = settings.image_guidance_scale
    return body
