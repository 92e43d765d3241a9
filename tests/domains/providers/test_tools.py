"""Tests for provider MCP tools."""

from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from kubefoundry.domains.providers.models import InstallationStatus
from kubefoundry.utils.errors import NotFoundError


@pytest.fixture
def mock_server() -> MagicMock:
    """Create a mock server."""
    return MagicMock()


@pytest.fixture
def tools(mock_server: MagicMock) -> dict[str, Any]:
    """Register provider tools and capture them by name."""
    from kubefoundry.domains.providers.tools import register_tools

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


class TestListProviders:
    def test_lists_builtins(self, tools: dict[str, Any]) -> None:
        result = tools["list_providers"]()

        assert [p["id"] for p in result["providers"]] == ["dynamo", "kuberay", "kaito"]
        assert result["default"] == "dynamo"


class TestGetProviderDetails:
    def test_kaito_details(self, tools: dict[str, Any]) -> None:
        result = tools["get_provider_details"]("kaito")

        assert result["custom_resource"] == {"api_version": "kaito.sh/v1beta1", "kind": "Workspace"}
        assert result["supports_gateway_routing"] is True
        assert result["helm_repos"][0]["name"] == "kaito"
        assert result["uninstall"]["namespaces"] == ["kaito-workspace"]

    def test_unknown_provider(self, tools: dict[str, Any]) -> None:
        with pytest.raises(NotFoundError):
            tools["get_provider_details"]("nope")


class TestValidateDeploymentConfig:
    def test_uses_default_provider(
        self, tools: dict[str, Any], dynamo_request: dict[str, Any]
    ) -> None:
        """A request without a provider is validated by the default one."""
        result = tools["validate_deployment_config"](dynamo_request)

        assert result["valid"] is True
        assert result["config"]["provider"] == "dynamo"
        assert result["config"]["modelId"] == "Qwen/Qwen3-0.6B"

    def test_provider_from_config(
        self, tools: dict[str, Any], kaito_premade_request: dict[str, Any]
    ) -> None:
        kaito_premade_request["provider"] = "kaito"

        result = tools["validate_deployment_config"](kaito_premade_request)

        assert result["valid"] is True
        assert result["config"]["premadeModel"] == "llama3.2:1b"

    def test_invalid(self, tools: dict[str, Any]) -> None:
        result = tools["validate_deployment_config"]({"name": "x"}, provider_id="kuberay")

        assert result["valid"] is False
        assert result["config"] is None
        assert result["errors"]


class TestGenerateDeploymentManifest:
    def test_kaito_vllm_with_route(
        self, tools: dict[str, Any], kaito_vllm_request: dict[str, Any]
    ) -> None:
        """Auxiliary objects include the vLLM Service and the HTTPRoute."""
        kaito_vllm_request.update(
            {
                "enableGatewayRouting": True,
                "gatewayName": "gw",
                "gatewayNamespace": "gw-system",
            }
        )

        result = tools["generate_deployment_manifest"](kaito_vllm_request, provider_id="kaito")

        assert result["valid"] is True
        assert result["manifest"]["kind"] == "Workspace"
        assert [m["kind"] for m in result["auxiliary_manifests"]] == ["Service", "HTTPRoute"]

    def test_validation_errors(self, tools: dict[str, Any]) -> None:
        result = tools["generate_deployment_manifest"]({"name": "Bad_Name"})

        assert result["valid"] is False
        assert result["errors"]


class TestInstallationTools:
    def test_check_provider_installation(
        self, tools: dict[str, Any], mock_server: MagicMock
    ) -> None:
        with patch("kubefoundry.domains.providers.tools.ClusterClient") as mock_client_class:
            mock_client = MagicMock()
            mock_client.check_installation.return_value = InstallationStatus(
                installed=True, crd_found=True, operator_running=True, message="ok"
            )
            mock_client_class.return_value = mock_client

            result = tools["check_provider_installation"]("dynamo")

        assert result["provider"] == "dynamo"
        assert result["installed"] is True
        mock_client_class.assert_called_once_with(mock_server.k8s)
        assert mock_client.check_installation.call_args.args[0].id == "dynamo"

    def test_get_runtimes_status(self, tools: dict[str, Any]) -> None:
        runtimes = [{"id": "dynamo", "installed": False}]
        with patch("kubefoundry.domains.providers.tools.ClusterClient") as mock_client_class:
            mock_client_class.return_value.get_runtimes_status.return_value = runtimes

            result = tools["get_runtimes_status"]()

        assert result == {"runtimes": runtimes}
