"""Shared fixtures for KubeFoundry tests."""

from collections.abc import Iterator
from typing import Any
from unittest.mock import MagicMock

import pytest

from kubefoundry import config as config_module
from kubefoundry.domains.providers import registry


@pytest.fixture(autouse=True)
def reset_globals() -> Iterator[None]:
    """Give each test a fresh configuration and provider registry."""
    config_module._config = None
    registry._providers.clear()
    registry.initialize_registry()
    yield
    config_module._config = None
    registry._providers.clear()


@pytest.fixture
def mock_k8s() -> MagicMock:
    """Create a mock K8sClient."""
    return MagicMock()


@pytest.fixture
def dynamo_request() -> dict[str, Any]:
    """Minimal valid Dynamo deployment request."""
    return {
        "name": "qwen",
        "namespace": "dynamo-system",
        "modelId": "Qwen/Qwen3-0.6B",
        "engine": "vllm",
        "hfTokenSecret": "hf-token",
    }


@pytest.fixture
def kaito_premade_request() -> dict[str, Any]:
    """Minimal valid KAITO premade request."""
    return {
        "name": "llama",
        "namespace": "kaito-workspace",
        "modelSource": "premade",
        "premadeModel": "llama3.2:1b",
    }


@pytest.fixture
def kaito_vllm_request() -> dict[str, Any]:
    """Minimal valid KAITO vLLM request."""
    return {
        "name": "phi",
        "namespace": "kaito-workspace",
        "modelSource": "vllm",
        "modelId": "microsoft/Phi-3-mini-4k-instruct",
        "computeType": "gpu",
    }


def running_pod(name: str, node: str | None = None, ready: bool = True) -> dict[str, Any]:
    """A running pod with one container."""
    return {
        "metadata": {"name": name},
        "spec": {"nodeName": node},
        "status": {
            "phase": "Running",
            "containerStatuses": [{"name": "main", "ready": ready, "restartCount": 0}],
        },
    }


@pytest.fixture
def make_running_pod() -> Any:
    """Factory for running pods."""
    return running_pod
