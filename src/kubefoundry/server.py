"""FastMCP server definition for KubeFoundry."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any

from mcp.server.fastmcp import FastMCP

from kubefoundry.clients.base import K8sClient
from kubefoundry.config import KubeFoundryConfig, get_config
from kubefoundry.domains.providers.registry import initialize_registry, list_provider_ids

logger = logging.getLogger(__name__)


class KubeFoundryServer:
    """KubeFoundry MCP server: owns configuration and the Kubernetes client."""

    def __init__(self, config: KubeFoundryConfig | None = None) -> None:
        self._config = config or get_config()
        self._k8s_client: K8sClient | None = None
        self._mcp: FastMCP | None = None

    @property
    def config(self) -> KubeFoundryConfig:
        """Get server configuration."""
        return self._config

    @property
    def k8s(self) -> K8sClient:
        """Get the Kubernetes client.

        Raises:
            RuntimeError: If server is not running.
        """
        if self._k8s_client is None:
            raise RuntimeError("Server not running. K8s client not available.")
        return self._k8s_client

    @property
    def mcp(self) -> FastMCP:
        """Get the MCP server instance.

        Raises:
            RuntimeError: If server is not initialized.
        """
        if self._mcp is None:
            raise RuntimeError("Server not initialized.")
        return self._mcp

    def _create_lifespan(self) -> Callable[[Any], AbstractAsyncContextManager[None]]:
        """Create the lifespan context manager for the MCP server."""
        server_self = self

        @asynccontextmanager
        async def lifespan(_app: Any) -> AsyncIterator[None]:
            """Connect to Kubernetes on startup, disconnect on shutdown."""
            logger.info("Starting KubeFoundry MCP server...")

            server_self._k8s_client = K8sClient(server_self._config)
            try:
                server_self._k8s_client.connect()
                logger.info(
                    f"KubeFoundry MCP server started with providers: "
                    f"{', '.join(list_provider_ids())}"
                )
                yield
            finally:
                logger.info("Shutting down KubeFoundry MCP server...")
                if server_self._k8s_client:
                    server_self._k8s_client.disconnect()
                server_self._k8s_client = None
                logger.info("KubeFoundry MCP server shut down")

        return lifespan

    def create_mcp(self) -> FastMCP:
        """Create and configure the FastMCP server."""
        from kubefoundry.domains.autoscaler import tools as autoscaler_tools
        from kubefoundry.domains.capacity import tools as capacity_tools
        from kubefoundry.domains.catalog import tools as catalog_tools
        from kubefoundry.domains.deployments import tools as deployment_tools
        from kubefoundry.domains.providers import tools as provider_tools

        initialize_registry()

        mcp = FastMCP(
            name="kubefoundry",
            instructions="MCP server for deploying LLMs on Kubernetes through NVIDIA "
            "Dynamo, KubeRay or KAITO, with GPU capacity planning and "
            "deployment status.",
            lifespan=self._create_lifespan(),
            host=self._config.host,
            port=self._config.port,
        )
        self._mcp = mcp

        for module in (
            provider_tools,
            catalog_tools,
            capacity_tools,
            deployment_tools,
            autoscaler_tools,
        ):
            module.register_tools(mcp, self)

        self._register_core_resources(mcp)
        return mcp

    def _register_core_resources(self, mcp: FastMCP) -> None:
        """Register core MCP resources for cluster information."""
        from kubefoundry.domains.deployments.client import ClusterClient

        @mcp.resource("kubefoundry://cluster/runtimes")
        def cluster_runtimes() -> dict:
            """Installation and health of each provider runtime."""
            return {"runtimes": ClusterClient(self.k8s).get_runtimes_status()}

        @mcp.resource("kubefoundry://cluster/capacity")
        def cluster_capacity() -> dict:
            """Current GPU capacity of the cluster."""
            return ClusterClient(self.k8s).get_cluster_gpu_capacity().model_dump()

        logger.info("Registered core MCP resources")


# Global server instance
_server: KubeFoundryServer | None = None


def get_server() -> KubeFoundryServer:
    """Get the global server instance."""
    global _server
    if _server is None:
        _server = KubeFoundryServer()
    return _server


def create_server(config: KubeFoundryConfig | None = None) -> FastMCP:
    """Create and return the MCP server instance."""
    global _server
    _server = KubeFoundryServer(config)
    return _server.create_mcp()
