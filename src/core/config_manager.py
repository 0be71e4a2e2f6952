import yaml
import os
import asyncio
from typing import Dict, Any, List, Optional
from .logging import logger

DEFAULT_API_KEY_ENV = "VENICE_API_KEY"
DEFAULT_UPSTREAM = {
    "type": "venice",
    "base_url": "https://api.venice.ai/api/v1",
    "api_key_env": DEFAULT_API_KEY_ENV,
    "headers": {},
    "request_defaults": {},
    "timeouts": {"connect": 10.0, "read": None, "write": 10.0, "pool": 10.0},
}


class ConfigManager:
    def __init__(self, config_dir: Optional[str] = None):
        self.config_dir = config_dir or os.getenv("PROXY_CONFIG_DIR", "config")
        self.proxy_config_path = os.path.join(self.config_dir, "proxy.yaml")
        self.config = self._load_config()
        self.last_mtimes = {}
        self._initialize_mtimes()
        self._reloader_task: Optional[asyncio.Task] = None

        # Environment flags
        self.debug = os.getenv("DEBUG", "false").lower() == "true"
        self.log_level = os.getenv("LOG_LEVEL", "INFO")

        logger.info(
            "Configuration manager initialized",
            config_dir=self.config_dir,
            debug_enabled=self.debug,
            log_level=self.log_level,
            proxy_config_exists=os.path.exists(self.proxy_config_path),
            upstream_type=self.config["upstream"].get("type")
        )

    def _load_config(self) -> Dict[str, Any]:
        raw: Dict[str, Any] = {}
        try:
            with open(self.proxy_config_path, 'r', encoding='utf-8') as f:
                raw = yaml.safe_load(f) or {}
        except FileNotFoundError as e:
            logger.warning(
                f"Configuration file not found, using defaults: {e}",
                error_type="file_not_found",
                file_path=str(e.filename) if e.filename else 'unknown'
            )
        except yaml.YAMLError as e:
            logger.error(f"Error parsing YAML file: {e}", error_type="yaml_parse_error")

        if not isinstance(raw, dict):
            logger.warning("Configuration root is not a mapping, using defaults", file_path=self.proxy_config_path)
            raw = {}

        upstream = dict(DEFAULT_UPSTREAM)
        if isinstance(raw.get("upstream"), dict):
            upstream.update(raw["upstream"])

        access_keys = raw.get("access_keys") or []
        if not isinstance(access_keys, list):
            logger.warning("access_keys must be a list, ignoring it", file_path=self.proxy_config_path)
            access_keys = []

        return {
            "upstream": upstream,
            "access_keys": [str(key) for key in access_keys if key],
        }

    def get_config(self) -> Dict[str, Any]:
        return self.config

    @property
    def upstream_config(self) -> Dict[str, Any]:
        return self.config["upstream"]

    @property
    def access_keys(self) -> List[str]:
        return self.config["access_keys"]

    @property
    def upstream_api_key(self) -> Optional[str]:
        """API key for the model API, read from the env var named in the config."""
        env_name = self.upstream_config.get("api_key_env") or DEFAULT_API_KEY_ENV
        return os.getenv(env_name)

    @property
    def is_debug_enabled(self) -> bool:
        return self.debug

    def reload_config(self):
        logger.info("Reloading configuration", config_dir=self.config_dir)
        self.config = self._load_config()
        logger.info(
            "Configuration reloaded",
            upstream_type=self.upstream_config.get("type"),
            access_keys_count=len(self.access_keys)
        )

    def _initialize_mtimes(self):
        try:
            self.last_mtimes[self.proxy_config_path] = os.path.getmtime(self.proxy_config_path)
        except FileNotFoundError:
            pass

    def check_for_changes(self) -> bool:
        """Reload if the config file appeared or changed since the last check."""
        try:
            mtime = os.path.getmtime(self.proxy_config_path)
        except FileNotFoundError:
            return False

        last = self.last_mtimes.get(self.proxy_config_path)
        if last is not None and last >= mtime:
            return False

        self.last_mtimes[self.proxy_config_path] = mtime
        logger.debug("Configuration file changed, triggering reload", changed_file=self.proxy_config_path)
        self.reload_config()
        return True

    async def _reload_config_task(self):
        while True:
            self.check_for_changes()
            await asyncio.sleep(5)  # Check every 5 seconds

    def start_reloader_task(self):
        if self._reloader_task is None or self._reloader_task.done():
            self._reloader_task = asyncio.create_task(self._reload_config_task())

    async def stop_reloader_task(self):
        if self._reloader_task is None:
            return
        self._reloader_task.cancel()
        try:
            await self._reloader_task
        except asyncio.CancelledError:
            pass
        self._reloader_task = None
