"""
Tests for proxy.yaml loading and hot reload.
"""
import os

import pytest

from src.core.config_manager import ConfigManager, DEFAULT_UPSTREAM


class TestConfigManager:
    def test_missing_file_uses_defaults(self, tmp_path):
        manager = ConfigManager(config_dir=str(tmp_path))
        assert manager.upstream_config == DEFAULT_UPSTREAM
        assert manager.access_keys == []
        assert manager.check_for_changes() is False

    def test_loads_upstream_and_keys(self, proxy_config_dir):
        manager = ConfigManager(config_dir=str(proxy_config_dir))
        upstream = manager.upstream_config
        assert upstream["base_url"] == "https://upstream.test/api/v1"
        assert upstream["request_defaults"] == {"venice_parameters": {"include_venice_system_prompt": False}}
        # Keys absent from the file keep their defaults
        assert upstream["timeouts"] == DEFAULT_UPSTREAM["timeouts"]
        assert manager.upstream_api_key == "upstream-secret"

    def test_config_dir_from_env(self, proxy_config_dir, monkeypatch):
        monkeypatch.setenv("PROXY_CONFIG_DIR", str(proxy_config_dir))
        manager = ConfigManager()
        assert manager.config_dir == str(proxy_config_dir)

    def test_access_keys_must_be_a_list(self, tmp_path):
        (tmp_path / "proxy.yaml").write_text("access_keys: secret\n", encoding="utf-8")
        assert ConfigManager(config_dir=str(tmp_path)).access_keys == []

    def test_invalid_yaml_falls_back_to_defaults(self, tmp_path):
        (tmp_path / "proxy.yaml").write_text("upstream: [unclosed\n", encoding="utf-8")
        manager = ConfigManager(config_dir=str(tmp_path))
        assert manager.upstream_config["type"] == "venice"

    def test_check_for_changes_reloads(self, proxy_config_dir):
        manager = ConfigManager(config_dir=str(proxy_config_dir))
        assert manager.check_for_changes() is False

        config_path = proxy_config_dir / "proxy.yaml"
        config_path.write_text("access_keys:\n  - sk-client-0001\n", encoding="utf-8")
        stat = os.stat(config_path)
        os.utime(config_path, (stat.st_atime, stat.st_mtime + 10))

        assert manager.check_for_changes() is True
        assert manager.access_keys == ["sk-client-0001"]
        assert manager.upstream_config["base_url"] == DEFAULT_UPSTREAM["base_url"]

    @pytest.mark.asyncio
    async def test_reloader_task_lifecycle(self, proxy_config_dir):
        manager = ConfigManager(config_dir=str(proxy_config_dir))
        manager.start_reloader_task()
        task = manager._reloader_task
        assert task is not None and not task.done()

        await manager.stop_reloader_task()
        assert task.cancelled()
        assert manager._reloader_task is None
