"""
Logging setup for the vgpt chat proxy and client core.

One named logger, plain-text lines, and ``\\uXXXX`` escapes turned back into
characters so model output in any language stays readable in the log files.

Environment:
    LOG_LEVEL: DEBUG, INFO (default), WARNING or ERROR
    LOG_DIR: directory for ``app.log`` and, at DEBUG, ``debug.log`` (default ``logs``)
"""

import logging
import os
import json
import re


LOGGER_NAME = "vgpt-chat"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

_UNICODE_ESCAPE = re.compile(r'\\u([0-9a-fA-F]{4})')


def decode_unicode_escapes(text):
    """
    Replace ``\\uXXXX`` sequences in ``text`` with the characters they encode.

    A text that is a whole JSON object (typically an upstream error body) is
    re-serialized instead, which also handles surrogate pairs.
    """
    if not text or '\\u' not in text:
        return text

    if text.startswith('{') and text.endswith('}'):
        try:
            decoded = json.loads(text)
        except ValueError:
            decoded = None
        if isinstance(decoded, dict):
            return json.dumps(decoded, ensure_ascii=False)

    def replace(match):
        return chr(int(match.group(1), 16))

    return _UNICODE_ESCAPE.sub(replace, text)


class UnicodeFormatter(logging.Formatter):
    """Formatter whose output has escape sequences decoded."""

    def format(self, record):
        return decode_unicode_escapes(super().format(record))


def _attach(logger: logging.Logger, handler: logging.Handler, level: int, formatter: logging.Formatter):
    handler.setLevel(level)
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def setup_logging() -> logging.Logger:
    """
    Configure and return the project logger.

    Calling it again replaces the handlers, so it is safe to re-run after
    changing the environment.
    """
    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    log_dir = os.environ.get("LOG_DIR", "logs")
    debug = level_name == "DEBUG"

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level_name, logging.INFO))
    logger.handlers.clear()

    os.makedirs(log_dir, exist_ok=True)
    formatter = UnicodeFormatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    _attach(logger, logging.FileHandler(os.path.join(log_dir, "app.log"), encoding="utf-8"), logging.INFO, formatter)
    if debug:
        _attach(logger, logging.FileHandler(os.path.join(log_dir, "debug.log"), encoding="utf-8"), logging.DEBUG, formatter)
    _attach(logger, logging.StreamHandler(), logging.DEBUG if debug else logging.INFO, formatter)

    return logger
