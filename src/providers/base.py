import httpx
import json
import asyncio
from typing import Dict, Any, Optional, Callable
from functools import wraps
from fastapi import HTTPException

from ..core.error_handling import ErrorHandler, ErrorContext
from ..core.logging import logger


def _backoff_delay(exc: HTTPException, attempt: int, base_delay: float, max_delay: float) -> float:
    """Seconds to wait before retry number ``attempt + 1``; Retry-After overrides the doubling."""
    retry_after = (exc.headers or {}).get("Retry-After")
    if retry_after:
        try:
            return min(float(retry_after), max_delay)
        except ValueError:
            pass
    return min(base_delay * 2 ** attempt, max_delay)


def retry_on_rate_limit(max_retries: int = 3, base_delay: float = 1.0, max_delay: float = 30.0):
    """
    Re-run the decorated coroutine while it raises a 429 HTTPException.

    Args:
        max_retries: Retries allowed after the first call
        base_delay: First wait in seconds, doubled for each further retry
        max_delay: Cap on any single wait
    """
    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except HTTPException as exc:
                    if exc.status_code != 429 or attempt == max_retries:
                        raise
                    wait = _backoff_delay(exc, attempt, base_delay, max_delay)
                    attempt += 1
                    logger.warning(
                        f"Upstream rate limited, retry {attempt}/{max_retries} in {wait}s",
                        delay_seconds=wait,
                        attempt=attempt,
                        max_retries=max_retries,
                        component="upstream"
                    )
                    await asyncio.sleep(wait)
        return wrapper
    return decorator


def _extract_error(response: httpx.Response, default_message: str) -> tuple:
    """Pull ``(message, code)`` out of an upstream error body, if it has one."""
    message, code = default_message, None
    try:
        error_json = response.json()
    except (json.JSONDecodeError, ValueError, httpx.ResponseNotRead):
        return message, code

    if isinstance(error_json, dict):
        error = error_json.get("error")
        if isinstance(error, dict):
            message = error.get("message") or message
            code = error.get("code") or code
        elif isinstance(error, str):
            message = error
        elif isinstance(error_json.get("message"), str):
            message = error_json["message"]
    return message, code


class BaseProvider:
    """
    Upstream model API access.

    The API key is injected here and never returned to proxy clients.
    """

    def __init__(self, config: Dict[str, Any], client: httpx.AsyncClient, api_key: Optional[str] = None):
        self.name = config.get("type") or self.__class__.__name__.replace("Provider", "").lower()
        self.base_url = (config.get("base_url") or "").rstrip("/")
        self.api_key_env = config.get("api_key_env")
        self.headers = dict(config.get("headers") or {})
        self.request_defaults = config.get("request_defaults") or {}
        self.timeouts = config.get("timeouts") or {}
        self.api_key = api_key
        self.client = client

        problem = None
        if not self.base_url:
            problem = "Upstream base_url is not configured."
        elif not self.api_key:
            problem = f"Environment variable {self.api_key_env} holding the upstream key is empty or unset."
        if problem:
            raise ErrorHandler.handle_upstream_config_error(
                error_details=problem,
                context=ErrorContext(upstream_name=self.name)
            )

        self.headers.update({
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        })

    def _timeout(self, read: Optional[float] = None) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self.timeouts.get("connect", 10.0),
            read=self.timeouts.get("read", read),
            write=self.timeouts.get("write", 10.0),
            pool=self.timeouts.get("pool", 10.0)
        )

    @retry_on_rate_limit(max_retries=3, base_delay=1.0, max_delay=30.0)
    async def _stream_request(self, url_path: str, request_body: Dict[str, Any], request_id: str) -> httpx.Response:
        """
        Open a streaming request and return the response once its status is known.

        The caller owns the returned response and must close it. Non-2xx answers
        are read, closed and raised as HTTPException so rate limits can be retried
        before any byte reaches the client.
        """
        context = ErrorContext(request_id=request_id, upstream_name=self.name)

        logger.debug_data(
            title="Upstream Stream Request",
            data=lambda: {"url": f"{self.base_url}{url_path}", "request_body": request_body},
            request_id=request_id,
            component="upstream",
            data_flow="to_upstream"
        )

        request = self.client.build_request(
            "POST", f"{self.base_url}{url_path}",
            headers=self.headers, json=request_body, timeout=self._timeout(read=None)
        )
        try:
            response = await self.client.send(request, stream=True)
        except httpx.RequestError as e:
            raise ErrorHandler.handle_upstream_network_error(e, context, self.name) from e

        logger.debug_data(
            title="Upstream Response Headers",
            data=lambda: {"status_code": response.status_code, "headers": dict(response.headers)},
            request_id=request_id,
            component="upstream",
            data_flow="from_upstream"
        )

        if response.status_code < 400:
            return response

        try:
            await response.aread()
        finally:
            await response.aclose()
        raise self._stream_status_error(response, context)

    @staticmethod
    def _stream_status_error(response: httpx.Response, context: ErrorContext) -> HTTPException:
        status = response.status_code
        if status == 429:
            message = "Upstream rate limit exceeded (429 Too Many Requests). Please retry after a delay."
            code = "rate_limit_exceeded"
        else:
            message, code = _extract_error(response, f"Upstream API error: {status} - {response.text[:200]}")
        exc = ErrorHandler.handle_upstream_stream_error(
            error_details=message,
            context=context,
            status_code=status,
            error_code=str(code or f"upstream_http_error_{status}")
        )
        if response.headers.get("Retry-After"):
            exc.headers = {"Retry-After": response.headers["Retry-After"]}
        return exc

    async def _request_json(
        self,
        method: str,
        url_path: str,
        request_id: str,
        json_body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        read_timeout: float = 60.0
    ) -> Any:
        context = ErrorContext(request_id=request_id, upstream_name=self.name)
        try:
            answer = await self.client.request(
                method, f"{self.base_url}{url_path}",
                headers=self.headers, json=json_body, params=params,
                timeout=self._timeout(read=read_timeout)
            )
            answer.raise_for_status()
            payload = answer.json()
        except httpx.HTTPStatusError as e:
            raise ErrorHandler.handle_upstream_http_error(e, context, self.name)
        except httpx.RequestError as e:
            raise ErrorHandler.handle_upstream_network_error(e, context, self.name)
        except ValueError as e:
            raise ErrorHandler.handle_upstream_stream_error(
                error_details=f"Upstream returned invalid JSON: {e}",
                context=context,
                status_code=502,
                original_exception=e
            )

        logger.debug_data(
            title=f"Upstream {method} {url_path} Response",
            data=payload,
            request_id=request_id,
            component="upstream",
            data_flow="from_upstream"
        )
        return payload

    async def get_json(self, url_path: str, request_id: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self._request_json("GET", url_path, request_id, params=params, read_timeout=30.0)

    async def post_json(self, url_path: str, request_body: Dict[str, Any], request_id: str,
                        read_timeout: float = 60.0) -> Any:
        return await self._request_json("POST", url_path, request_id, json_body=request_body,
                                        read_timeout=read_timeout)

    async def chat_completions(self, request_body: Dict[str, Any], request_id: str) -> Any:
        raise NotImplementedError

    async def list_models(self, model_type: Optional[str], request_id: str) -> Any:
        raise NotImplementedError

    async def generate_image(self, request_body: Dict[str, Any], request_id: str) -> Any:
        raise NotImplementedError
