"""MCP tools for LLM deployments."""

import logging
from typing import TYPE_CHECKING, Any

from mcp.server.fastmcp import FastMCP

from kubefoundry.domains.capacity.planner import check_fit, format_gpu_warnings
from kubefoundry.domains.catalog import find_model
from kubefoundry.domains.deployments.client import ClusterClient
from kubefoundry.domains.deployments.status import list_deployments as list_all_deployments
from kubefoundry.domains.metrics.client import MetricsClient
from kubefoundry.domains.providers.registry import (
    get_default_provider_id,
    get_provider,
    list_providers,
)
from kubefoundry.utils.errors import KubeFoundryError
from kubefoundry.utils.response import ResponseBuilder, Verbosity

if TYPE_CHECKING:
    from kubefoundry.server import KubeFoundryServer

logger = logging.getLogger(__name__)


def register_tools(mcp: FastMCP, server: "KubeFoundryServer") -> None:
    """Register deployment tools with the MCP server."""

    @mcp.tool()
    async def list_deployments(
        namespaces: list[str] | None = None,
        provider_id: str | None = None,
        limit: int | None = None,
        offset: int = 0,
        verbosity: str = "standard",
    ) -> dict[str, Any]:
        """List LLM deployments across providers and namespaces.

        Namespaces are queried in parallel; one that cannot be read is
        skipped with a logged warning. Results are newest first.

        Args:
            namespaces: Namespaces to search (default: each provider's
                default namespace).
            provider_id: Only list this provider's deployments.
            limit: Maximum number of items to return (None for all).
            offset: Starting offset for pagination (default: 0).
            verbosity: Response detail level - "minimal", "standard", or "full".

        Returns:
            Paginated list of deployments with their phase.
        """
        effective_limit = limit
        if effective_limit is not None:
            effective_limit = min(effective_limit, server.config.max_list_limit)
        elif server.config.default_list_limit is not None:
            effective_limit = server.config.default_list_limit

        providers = [get_provider(provider_id)] if provider_id else list_providers()
        return await list_all_deployments(
            ClusterClient(server.k8s),
            namespaces=namespaces,
            offset=offset,
            limit=effective_limit,
            providers=providers,
            verbosity=Verbosity.from_str(verbosity),
        )

    @mcp.tool()
    def get_deployment(
        name: str,
        namespace: str,
        provider_id: str | None = None,
        verbosity: str = "full",
    ) -> dict[str, Any]:
        """Get the status of one deployment, including its pods.

        Args:
            name: Deployment name.
            namespace: Deployment namespace.
            provider_id: Provider owning the deployment (default: search all).
            verbosity: Response detail level - "minimal", "standard", or "full".

        Returns:
            Deployment status at the requested verbosity level.
        """
        provider = get_provider(provider_id) if provider_id else None
        status = ClusterClient(server.k8s).get_deployment_status(name, namespace, provider)
        return ResponseBuilder.deployment_item(status, Verbosity.from_str(verbosity))

    @mcp.tool()
    def create_deployment(
        config: dict[str, Any],
        provider_id: str | None = None,
    ) -> dict[str, Any]:
        """Deploy an LLM through one of the providers.

        The request is validated first. GPU fit is checked against the
        cluster and reported as warnings; it never blocks creation.

        Args:
            config: Deployment request in camelCase, e.g.
                {"name": "qwen", "namespace": "dynamo-system",
                "modelId": "Qwen/Qwen3-0.6B", "engine": "vllm"}.
            provider_id: Provider to deploy with (default: config.provider or
                the default provider).

        Returns:
            Created resource summary with any GPU warnings, or the
            validation errors.
        """
        allowed, reason = server.config.is_operation_allowed("create")
        if not allowed:
            return {"error": reason}

        provider = get_provider(provider_id or config.get("provider") or get_default_provider_id())
        validation = provider.validate_config(config)
        if not validation.valid:
            return {"error": "Validation failed", "errors": validation.errors}
        deployment = validation.data

        client = ClusterClient(server.k8s)
        gpu_warnings: list[str] = []
        try:
            model_id = getattr(deployment, "model_id", None)
            model = find_model(model_id) if model_id else None
            fit = check_fit(
                deployment,
                client.get_cluster_gpu_capacity(),
                model.min_gpus if model else 1,
            )
            gpu_warnings = format_gpu_warnings(fit)
        except KubeFoundryError as e:
            logger.warning(f"GPU capacity check failed for '{deployment.name}': {e}")

        created = client.create_deployment(provider, deployment)
        metadata = created.get("metadata") or {}
        return {
            "name": metadata.get("name", deployment.name),
            "namespace": metadata.get("namespace", deployment.namespace),
            "provider": provider.id,
            "kind": created.get("kind"),
            "gpu_warnings": gpu_warnings,
            "message": (
                f"Deployment '{deployment.name}' created. "
                "It may take several minutes to download the model and become ready."
            ),
        }

    @mcp.tool()
    def delete_deployment(
        name: str,
        namespace: str,
        provider_id: str | None = None,
        confirm: bool = False,
    ) -> dict[str, Any]:
        """Delete a deployment.

        Args:
            name: Deployment name.
            namespace: Deployment namespace.
            provider_id: Provider owning the deployment (default: search all).
            confirm: Must be True to actually delete.

        Returns:
            Confirmation of deletion.
        """
        allowed, reason = server.config.is_operation_allowed("delete")
        if not allowed:
            return {"error": reason}

        if not confirm:
            return {
                "error": "Deletion not confirmed",
                "message": f"To delete deployment '{name}', set confirm=True.",
            }

        client = ClusterClient(server.k8s)
        if provider_id:
            provider = get_provider(provider_id)
        else:
            provider, _ = client.find_provider(name, namespace)
        client.delete_deployment(provider, name, namespace)

        return {
            "name": name,
            "namespace": namespace,
            "provider": provider.id,
            "deleted": True,
            "message": f"Deployment '{name}' deleted",
        }

    @mcp.tool()
    async def get_deployment_metrics(
        name: str,
        namespace: str,
        provider_id: str | None = None,
        key_only: bool = True,
    ) -> dict[str, Any]:
        """Scrape a deployment's Prometheus metrics.

        Only works when this server runs inside the cluster, since it calls
        the deployment's Service by cluster DNS.

        Args:
            name: Deployment name.
            namespace: Deployment namespace.
            provider_id: Provider owning the deployment (default: search all).
            key_only: Return only the provider's key metrics.

        Returns:
            Metric samples, or the reason they are unavailable.
        """
        client = ClusterClient(server.k8s)
        if provider_id:
            provider = get_provider(provider_id)
            resource = client.get_custom_resource(provider, name, namespace)
        else:
            provider, resource = client.find_provider(name, namespace)
        status = provider.parse_status(resource)

        async with MetricsClient(server.config) as metrics:
            response = await metrics.fetch_metrics(
                provider, name, namespace, deployment_config=status, key_only=key_only
            )
        result = response.model_dump()
        result["definitions"] = [m.model_dump() for m in provider.get_key_metrics()]
        return result
