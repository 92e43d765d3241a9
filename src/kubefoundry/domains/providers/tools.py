"""MCP tools for inference providers."""

from typing import TYPE_CHECKING, Any

from mcp.server.fastmcp import FastMCP

from kubefoundry.domains.deployments.client import ClusterClient
from kubefoundry.domains.providers.registry import (
    get_default_provider_id,
    get_provider,
    list_provider_info,
)

if TYPE_CHECKING:
    from kubefoundry.server import KubeFoundryServer


def register_tools(mcp: FastMCP, server: "KubeFoundryServer") -> None:
    """Register provider tools with the MCP server."""

    @mcp.tool()
    def list_providers() -> dict[str, Any]:
        """List the inference providers deployments can target.

        Returns:
            Provider ids, names and default namespaces, plus the default id.
        """
        return {
            "providers": [info.model_dump() for info in list_provider_info()],
            "default": get_default_provider_id(),
        }

    @mcp.tool()
    def get_provider_details(provider_id: str) -> dict[str, Any]:
        """Get installation and uninstallation details for a provider.

        Args:
            provider_id: Provider id (dynamo, kuberay or kaito).

        Returns:
            Custom resource kind, install steps, Helm repos and charts, and
            the CRDs and namespaces an uninstall removes.
        """
        provider = get_provider(provider_id)
        crd = provider.get_crd_config()
        return {
            "id": provider.id,
            "name": provider.name,
            "description": provider.description,
            "default_namespace": provider.default_namespace,
            "custom_resource": {"api_version": crd.api_version, "kind": crd.kind},
            "supports_gateway_routing": provider.supports_gaie(),
            "installation_steps": [s.model_dump() for s in provider.get_installation_steps()],
            "helm_repos": [r.model_dump() for r in provider.get_helm_repos()],
            "helm_charts": [c.model_dump() for c in provider.get_helm_charts()],
            "uninstall": provider.get_uninstall_resources().model_dump(),
        }

    @mcp.tool()
    def validate_deployment_config(
        config: dict[str, Any],
        provider_id: str | None = None,
    ) -> dict[str, Any]:
        """Validate a deployment request without touching the cluster.

        Args:
            config: Deployment request in camelCase, e.g.
                {"name": "llama", "namespace": "default", "modelId": "...",
                "engine": "vllm"}.
            provider_id: Provider to validate for (default: config.provider
                or the default provider).

        Returns:
            valid flag, every problem found, and the normalized config.
        """
        provider = get_provider(provider_id or config.get("provider") or get_default_provider_id())
        result = provider.validate_config(config)
        return {
            "valid": result.valid,
            "errors": result.errors,
            "config": result.data.model_dump(by_alias=True) if result.data else None,
        }

    @mcp.tool()
    def generate_deployment_manifest(
        config: dict[str, Any],
        provider_id: str | None = None,
    ) -> dict[str, Any]:
        """Render the Kubernetes manifests for a deployment request.

        Nothing is applied to the cluster.

        Args:
            config: Deployment request in camelCase.
            provider_id: Provider to render for (default: config.provider or
                the default provider).

        Returns:
            The custom resource plus any auxiliary objects, or the
            validation errors.
        """
        provider = get_provider(provider_id or config.get("provider") or get_default_provider_id())
        result = provider.validate_config(config)
        if not result.valid:
            return {"valid": False, "errors": result.errors}

        auxiliary = provider.generate_auxiliary_manifests(result.data)
        if result.data.enable_gateway_routing and provider.supports_gaie():
            auxiliary.append(provider.generate_http_route(result.data))
        return {
            "valid": True,
            "manifest": provider.generate_manifest(result.data),
            "auxiliary_manifests": auxiliary,
        }

    @mcp.tool()
    def check_provider_installation(provider_id: str) -> dict[str, Any]:
        """Check whether a provider's CRD and operator are present.

        Args:
            provider_id: Provider id (dynamo, kuberay or kaito).

        Returns:
            Installation status with a human-readable message.
        """
        client = ClusterClient(server.k8s)
        status = client.check_installation(get_provider(provider_id))
        return {"provider": provider_id, **status.model_dump()}

    @mcp.tool()
    def get_runtimes_status() -> dict[str, Any]:
        """Installation and health of every provider runtime in the cluster.

        Returns:
            One entry per provider.
        """
        client = ClusterClient(server.k8s)
        return {"runtimes": client.get_runtimes_status()}
