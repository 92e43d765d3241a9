"""MCP tools for GPU capacity planning."""

import logging
from typing import TYPE_CHECKING, Any

from mcp.server.fastmcp import FastMCP

from kubefoundry.domains.capacity.planner import (
    check_fit,
    format_gpu_count,
    format_gpu_memory,
    format_gpu_warnings,
    recommend_gpus,
)
from kubefoundry.domains.catalog import find_model
from kubefoundry.domains.deployments.client import ClusterClient
from kubefoundry.domains.providers.registry import get_default_provider_id, get_provider
from kubefoundry.utils.errors import NotFoundError

if TYPE_CHECKING:
    from kubefoundry.server import KubeFoundryServer

logger = logging.getLogger(__name__)


def register_tools(mcp: FastMCP, server: "KubeFoundryServer") -> None:
    """Register capacity tools with the MCP server."""

    @mcp.tool()
    def get_cluster_gpu_capacity() -> dict[str, Any]:
        """Get current GPU capacity of the cluster.

        Returns:
            Total, allocated and available GPUs, the largest free block on one
            node, per-pool and per-node breakdowns.
        """
        capacity = ClusterClient(server.k8s).get_cluster_gpu_capacity()
        result = capacity.model_dump()
        result["summary"] = (
            f"{format_gpu_count(capacity.available_gpus)} available of "
            f"{capacity.total_gpus} across {capacity.gpu_node_count} node(s)"
        )
        return result

    @mcp.tool()
    def recommend_gpus_for_model(model_id: str) -> dict[str, Any]:
        """Recommend GPUs per replica for a catalog model.

        Args:
            model_id: Model id from the catalog, e.g. "Qwen/Qwen3-0.6B".

        Returns:
            Recommended GPU count, reason and up to two alternatives.
        """
        model = find_model(model_id)
        if model is None:
            raise NotFoundError("Model", model_id)

        capacity = ClusterClient(server.k8s).get_cluster_gpu_capacity()
        recommendation = recommend_gpus(model, capacity)
        result = {"model_id": model_id, **recommendation.model_dump()}
        if model.estimated_gpu_memory_gb:
            result["estimated_memory"] = format_gpu_memory(model.estimated_gpu_memory_gb)
        return result

    @mcp.tool()
    def check_deployment_fit(
        config: dict[str, Any],
        provider_id: str | None = None,
    ) -> dict[str, Any]:
        """Check whether a deployment request fits the cluster's free GPUs.

        Advisory only: a request that does not fit can still be created and
        may be scheduled once an autoscaler adds nodes.

        Args:
            config: Deployment request in camelCase.
            provider_id: Provider to validate for (default: config.provider or
                the default provider).

        Returns:
            fits flag, warnings with readable messages and GPU requirements.
        """
        provider = get_provider(provider_id or config.get("provider") or get_default_provider_id())
        validation = provider.validate_config(config)
        if not validation.valid:
            return {"valid": False, "errors": validation.errors}

        model_id = getattr(validation.data, "model_id", None)
        model = find_model(model_id) if model_id else None
        capacity = ClusterClient(server.k8s).get_cluster_gpu_capacity()
        result = check_fit(validation.data, capacity, model.min_gpus if model else 1)
        return {
            "valid": True,
            **result.model_dump(),
            "messages": format_gpu_warnings(result),
        }
