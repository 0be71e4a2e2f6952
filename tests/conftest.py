"""
Pytest configuration and fixtures for the vgpt-chat test suite.
"""

import pytest
from typing import Any, Dict, List

from src.core.settings import AppSettings
from src.services.model_catalog import ModelCatalog
from streaming_helpers import FakeClock


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings()


@pytest.fixture
def model_listing() -> Dict[str, List[Dict[str, Any]]]:
    """Model listing as returned by GET /models."""
    return {
        "data": [
            {
                "id": "llama-3.3-70b",
                "type": "text",
                "model_spec": {
                    "name": "Llama 3.3 70B",
                    "availableContextTokens": 65536,
                    "pricing": {"input": {"usd": 0.7, "vcu": 7}, "output": {"usd": 2.8, "vcu": 28}},
                    "constraints": {
                        "temperature": {"default": 0.8},
                        "top_p": {"default": 0.95},
                        "max_output_tokens": 8192,
                    },
                },
            },
            {
                "id": "org/qwen-reasoning",
                "type": "text",
                "model_spec": {
                    "pricing": {"input": 0.9, "output": 3.6},
                    "constraints": {"maxOutputTokens": {"max": 16384}},
                    "availableContextTokens": 32768,
                },
            },
            {
                "id": "free-model",
                "type": "text",
                "model_spec": {"name": "Free", "constraints": {}},
            },
            {
                "id": "flux-dev",
                "type": "image",
                "model_spec": {"name": "FLUX Dev", "pricing": {"generation": {"usd": 0.01}}},
            },
        ]
    }


@pytest.fixture
def catalog(model_listing) -> ModelCatalog:
    return ModelCatalog.from_payload(model_listing)


@pytest.fixture
def proxy_config_dir(tmp_path, monkeypatch):
    """Config directory with a proxy.yaml pointing at a fake upstream."""
    monkeypatch.setenv("TEST_VENICE_KEY", "upstream-secret")
    (tmp_path / "proxy.yaml").write_text(
        "upstream:\n"
        "  type: venice\n"
        "  base_url: https://upstream.test/api/v1\n"
        "  api_key_env: TEST_VENICE_KEY\n"
        "  request_defaults:\n"
        "    venice_parameters:\n"
        "      include_venice_system_prompt: false\n"
        "access_keys: []\n",
        encoding="utf-8",
    )
    return tmp_path


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )
    config.addinivalue_line(
        "markers", "streaming: mark test as streaming test"
    )
    config.addinivalue_line(
        "markers", "auth: mark test as authentication test"
    )


def pytest_collection_modifyitems(config, items):
    """Add markers based on test location."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)

        if "stream" in str(item.fspath):
            item.add_marker(pytest.mark.streaming)

        if "auth" in str(item.fspath):
            item.add_marker(pytest.mark.auth)
