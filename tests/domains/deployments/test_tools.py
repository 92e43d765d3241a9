"""Tests for deployment MCP tools."""

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from kubefoundry.config import KubeFoundryConfig
from kubefoundry.domains.capacity.models import ClusterGpuCapacity
from kubefoundry.domains.deployments.models import DeploymentPhase, DeploymentStatus
from kubefoundry.domains.providers.dynamo import DynamoProvider

CLIENT_PATH = "kubefoundry.domains.deployments.tools.ClusterClient"


@pytest.fixture
def mock_server() -> MagicMock:
    """Create a mock server with default config."""
    server = MagicMock()
    server.config = KubeFoundryConfig()
    return server


@pytest.fixture
def tools(mock_server: MagicMock) -> dict[str, Any]:
    """Register deployment tools and capture them by name."""
    from kubefoundry.domains.deployments.tools import register_tools

    mcp = MagicMock()
    registered_tools: dict[str, Any] = {}

    def capture_tool() -> Any:
        def decorator(func: Any) -> Any:
            registered_tools[func.__name__] = func
            return func

        return decorator

    mcp.tool = capture_tool
    register_tools(mcp, mock_server)
    return registered_tools


class TestCreateDeployment:
    """Test create_deployment tool."""

    def test_read_only_mode(
        self, tools: dict[str, Any], mock_server: MagicMock, dynamo_request: dict[str, Any]
    ) -> None:
        mock_server.config = KubeFoundryConfig(read_only_mode=True)

        with patch(CLIENT_PATH) as mock_client_class:
            result = tools["create_deployment"](dynamo_request)

        assert result == {"error": "Read-only mode is enabled"}
        mock_client_class.assert_not_called()

    def test_validation_failure(self, tools: dict[str, Any]) -> None:
        with patch(CLIENT_PATH) as mock_client_class:
            result = tools["create_deployment"]({"name": "qwen"}, provider_id="dynamo")

        assert result["error"] == "Validation failed"
        assert any(e.startswith("modelId") for e in result["errors"])
        mock_client_class.return_value.create_deployment.assert_not_called()

    def test_creates_with_gpu_warnings(
        self, tools: dict[str, Any], dynamo_request: dict[str, Any]
    ) -> None:
        """A full cluster warns but still creates the deployment."""
        with patch(CLIENT_PATH) as mock_client_class:
            mock_client = mock_client_class.return_value
            mock_client.get_cluster_gpu_capacity.return_value = ClusterGpuCapacity(
                total_gpus=4,
                allocated_gpus=4,
                available_gpus=0,
                max_contiguous_available=0,
                max_node_gpu_capacity=4,
                gpu_node_count=1,
            )
            mock_client.create_deployment.return_value = {
                "kind": "DynamoGraphDeployment",
                "metadata": {"name": "qwen", "namespace": "dynamo-system"},
            }

            result = tools["create_deployment"](dynamo_request)

        assert result["name"] == "qwen"
        assert result["provider"] == "dynamo"
        assert result["kind"] == "DynamoGraphDeployment"
        assert [w.split(":")[0] for w in result["gpu_warnings"]] == [
            "Scheduling constraint",
            "Insufficient cluster GPUs",
        ]
        provider, config = mock_client.create_deployment.call_args.args
        assert provider.id == "dynamo"
        assert config.model_id == "Qwen/Qwen3-0.6B"

    def test_uses_provider_from_config(
        self, tools: dict[str, Any], kaito_premade_request: dict[str, Any]
    ) -> None:
        kaito_premade_request["provider"] = "kaito"
        with patch(CLIENT_PATH) as mock_client_class:
            mock_client = mock_client_class.return_value
            mock_client.get_cluster_gpu_capacity.return_value = ClusterGpuCapacity()
            mock_client.create_deployment.return_value = {"kind": "Workspace", "metadata": {}}

            result = tools["create_deployment"](kaito_premade_request)

        assert result["provider"] == "kaito"
        assert result["namespace"] == "kaito-workspace"


class TestDeleteDeployment:
    """Test delete_deployment tool."""

    def test_requires_confirmation(self, tools: dict[str, Any]) -> None:
        with patch(CLIENT_PATH) as mock_client_class:
            result = tools["delete_deployment"]("qwen", "default")

        assert result["error"] == "Deletion not confirmed"
        mock_client_class.assert_not_called()

    def test_delete_finds_provider(self, tools: dict[str, Any]) -> None:
        provider = DynamoProvider()
        with patch(CLIENT_PATH) as mock_client_class:
            mock_client = mock_client_class.return_value
            mock_client.find_provider.return_value = (provider, {})

            result = tools["delete_deployment"]("qwen", "default", confirm=True)

        assert result["deleted"] is True
        assert result["provider"] == "dynamo"
        mock_client.delete_deployment.assert_called_once_with(provider, "qwen", "default")

    def test_read_only_mode(self, tools: dict[str, Any], mock_server: MagicMock) -> None:
        mock_server.config = KubeFoundryConfig(read_only_mode=True)

        result = tools["delete_deployment"]("qwen", "default", confirm=True)

        assert result == {"error": "Read-only mode is enabled"}


class TestReadTools:
    @pytest.mark.asyncio
    async def test_list_caps_limit(self, tools: dict[str, Any]) -> None:
        """Requested limits above the configured maximum are capped."""
        list_mock = AsyncMock(return_value={"items": [], "total": 0})
        with (
            patch(CLIENT_PATH),
            patch("kubefoundry.domains.deployments.tools.list_all_deployments", list_mock),
        ):
            await tools["list_deployments"](limit=500, provider_id="kuberay")

        kwargs = list_mock.call_args.kwargs
        assert kwargs["limit"] == 100
        assert [p.id for p in kwargs["providers"]] == ["kuberay"]

    def test_get_deployment(self, tools: dict[str, Any]) -> None:
        status = DeploymentStatus(
            name="qwen",
            namespace="default",
            provider="dynamo",
            phase=DeploymentPhase.RUNNING,
        )
        with patch(CLIENT_PATH) as mock_client_class:
            mock_client_class.return_value.get_deployment_status.return_value = status

            result = tools["get_deployment"]("qwen", "default", verbosity="minimal")

        assert result == {"name": "qwen", "namespace": "default", "phase": "Running"}

    @pytest.mark.asyncio
    async def test_metrics_off_cluster(self, tools: dict[str, Any]) -> None:
        resource = {
            "kind": "DynamoGraphDeployment",
            "metadata": {"name": "qwen", "namespace": "default"},
            "spec": {"VllmWorker": {"model-path": "Qwen/Qwen3-0.6B"}},
        }
        token_path = MagicMock()
        token_path.exists.return_value = False
        with (
            patch(CLIENT_PATH) as mock_client_class,
            patch("kubefoundry.config.IN_CLUSTER_TOKEN_PATH", token_path),
        ):
            mock_client_class.return_value.find_provider.return_value = (
                DynamoProvider(),
                resource,
            )

            result = await tools["get_deployment_metrics"]("qwen", "default")

        assert result["available"] is False
        assert result["running_off_cluster"] is True
        assert result["definitions"]
