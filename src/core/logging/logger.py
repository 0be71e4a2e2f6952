"""
Project logger shared by the proxy server and the streaming client core.

Keyword arguments given to any method become attributes of the log record
(``extra``), so call sites attach request and turn identifiers directly:

    logger.info("Turn state changed", request_id=turn_id, to_state="streaming")
"""

import logging
import time
import json
from typing import Any
from contextlib import contextmanager
from .config import setup_logging

# Keys whose value is worth repeating in the human-readable request line
_REQUEST_SUMMARY_KEYS = (("model_id", "model"), ("upstream_name", "upstream"), ("url", "url"))


def _join(*parts: str) -> str:
    return " | ".join(part for part in parts if part)


class Logger:
    """
    Wrapper around the configured ``logging.Logger``.

    Payload dumps (``debug_data``) cost nothing unless LOG_LEVEL=DEBUG.
    """

    def __init__(self):
        self._logger = setup_logging()

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def is_debug_enabled(self) -> bool:
        return self._logger.isEnabledFor(logging.DEBUG)

    def _log(self, level: int, message: str, exc_info: bool = False, **fields):
        self._logger.log(level, message, exc_info=exc_info, extra=fields or None)

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, exc_info: bool = True, **kwargs):
        """Errors carry the active traceback unless ``exc_info=False``."""
        self._log(logging.ERROR, message, exc_info=exc_info, **kwargs)

    def request(self, operation: str, request_id: str, **kwargs):
        summary = [f"{label}={kwargs[key]}" for key, label in _REQUEST_SUMMARY_KEYS if key in kwargs]
        self.info(_join(f"Request: {operation}", *summary), request_id=request_id, **kwargs)

    def response(self, operation: str, request_id: str, status_code: int = 200, **kwargs):
        timing = f"time={kwargs['processing_time_ms']}ms" if "processing_time_ms" in kwargs else ""
        self.info(
            _join(f"Response: {operation}", f"status={status_code}", timing),
            request_id=request_id,
            status_code=status_code,
            **kwargs
        )

    def debug_data(self, title: str, data: Any, request_id: str, **kwargs):
        """
        Dump a payload at DEBUG level.

        ``data`` may be a zero-argument callable; it is only called when the
        dump is actually written.
        """
        if not self.is_debug_enabled():
            return

        if callable(data):
            data = data()
        if isinstance(data, (dict, list)):
            body = json.dumps(data, indent=2, ensure_ascii=False, default=str)
        else:
            body = str(data)

        header = _join(
            f"DEBUG: {title}",
            f"component={kwargs['component']}" if "component" in kwargs else "",
            f"flow={kwargs['data_flow']}" if "data_flow" in kwargs else "",
        )
        self.debug(f"{header}\n{body}", request_id=request_id, **kwargs)

    def performance(self, operation: str, start_time: float, request_id: str, **kwargs):
        """Log the time elapsed since ``start_time`` (a ``time.time()`` value)."""
        duration_ms = int((time.time() - start_time) * 1000)
        self.info(
            _join(f"Performance: {operation}", f"duration={duration_ms}ms"),
            request_id=request_id,
            duration_ms=duration_ms,
            **kwargs
        )

    @contextmanager
    def request_context(self, operation: str, request_id: str, **kwargs):
        """Log the start, any escaping exception, and the completion of ``operation``."""
        start_time = time.time()
        self.request(operation=operation, request_id=request_id, **kwargs)
        try:
            yield
        except Exception as e:
            self.error(f"{operation} failed: {e}", request_id=request_id, **kwargs)
            raise
        finally:
            duration_ms = int((time.time() - start_time) * 1000)
            self.info(_join(f"Completed: {operation}", f"duration={duration_ms}ms"), request_id=request_id, **kwargs)


logger = Logger()
