"""
Client settings and their JSON persistence.

The core never reads settings from a global: an ``AppSettings`` instance is
handed to the components that need it.
"""

import json
import os
from dataclasses import dataclass, asdict, fields, replace
from typing import Any, Dict, Optional

from .logging import logger
from ..utils.deep_merge import deep_merge

STORAGE_KEY = "vgpt-settings"
WEB_SEARCH_MODES = ("off", "auto", "on")


@dataclass(frozen=True)
class AppSettings:
    model: str = "llama-3.3-70b"
    temperature: float = 0.7
    top_p: float = 0.9
    min_p: float = 0.05
    max_tokens: int = 4096
    top_k: int = 40
    repetition_penalty: float = 1.2
    web_search: str = "auto"
    web_citations: bool = True
    include_search_results: bool = True
    include_venice_system_prompt: bool = True
    strip_thinking: bool = False
    disable_thinking: bool = False
    image_model: str = ""
    image_steps: int = 8
    image_width: int = 1024
    image_height: int = 1024
    image_guidance_scale: float = 7.5

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "AppSettings":
        """
        Build settings from a stored blob, falling back to the default for
        every key that is missing, unknown or of the wrong type.
        """
        defaults = cls()
        if not isinstance(data, dict):
            return defaults

        values = {}
        for field in fields(cls):
            if field.name not in data:
                continue
            value = data[field.name]
            default = getattr(defaults, field.name)
            if isinstance(default, bool):
                valid = isinstance(value, bool)
            elif isinstance(default, (int, float)):
                valid = isinstance(value, (int, float)) and not isinstance(value, bool)
                if valid and isinstance(default, int) and not isinstance(default, bool):
                    value = int(value)
            else:
                valid = isinstance(value, str)
            if field.name == "web_search" and value not in WEB_SEARCH_MODES:
                valid = False
            if valid:
                values[field.name] = value
            else:
                logger.warning("Ignoring invalid stored setting", setting=field.name, stored_value=repr(value)[:50])
        return replace(defaults, **values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def updated(self, **changes) -> "AppSettings":
        return replace(self, **changes)


DEFAULT_SETTINGS = AppSettings()


class SettingsStore:
    """
    Key-value JSON persistence of ``AppSettings``.

    Read and write failures are logged and never raised: a broken settings
    file must not keep the chat from working.
    """

    def __init__(self, directory: Optional[str] = None, filename: str = f"{STORAGE_KEY}.json"):
        self.directory = directory or os.getenv("VGPT_SETTINGS_DIR", ".")
        self.path = os.path.join(self.directory, filename)

    def load(self, defaults: AppSettings = DEFAULT_SETTINGS) -> AppSettings:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                stored = json.load(f)
        except FileNotFoundError:
            return defaults
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load persisted settings: {e}", path=self.path)
            return defaults

        if not isinstance(stored, dict):
            logger.warning("Persisted settings are not an object, using defaults", path=self.path)
            return defaults

        return AppSettings.from_dict(deep_merge(defaults.to_dict(), stored))

    def save(self, settings: AppSettings) -> bool:
        try:
            os.makedirs(self.directory, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(settings.to_dict(), f, ensure_ascii=False, indent=2)
        except OSError as e:
            logger.warning(f"Failed to persist settings: {e}", path=self.path)
            return False
        return True

    def update(self, current: AppSettings, **changes) -> AppSettings:
        """Apply changes, persist them, and return the new settings."""
        updated = current.updated(**changes)
        self.save(updated)
        return updated
