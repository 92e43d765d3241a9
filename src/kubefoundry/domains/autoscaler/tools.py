"""MCP tools for autoscaler detection."""

from typing import TYPE_CHECKING, Any

from mcp.server.fastmcp import FastMCP

from kubefoundry.domains.autoscaler.detector import AutoscalerClient

if TYPE_CHECKING:
    from kubefoundry.server import KubeFoundryServer


def register_tools(mcp: FastMCP, server: "KubeFoundryServer") -> None:
    """Register autoscaler tools with the MCP server."""

    @mcp.tool()
    def detect_autoscaler() -> dict[str, Any]:
        """Detect how the cluster scales its nodes.

        Recognizes the AKS managed autoscaler and a self-hosted Cluster
        Autoscaler. A Cluster Autoscaler whose status has not been updated
        for five minutes is reported unhealthy.

        Returns:
            Autoscaler type, health, message and node groups.
        """
        return AutoscalerClient(server.k8s).detect().model_dump()
