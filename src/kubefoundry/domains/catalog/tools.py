"""MCP tools for the model catalogs."""

from typing import TYPE_CHECKING, Any

from mcp.server.fastmcp import FastMCP

from kubefoundry.domains.catalog.catalog import list_models, list_premade_models

if TYPE_CHECKING:
    from kubefoundry.server import KubeFoundryServer


def register_tools(mcp: FastMCP, server: "KubeFoundryServer") -> None:
    """Register catalog tools with the MCP server."""

    @mcp.tool()
    def list_catalog_models(engine: str | None = None) -> dict[str, Any]:
        """List models that can be deployed with the engine-based providers.

        Args:
            engine: Only models this engine can serve (vllm, sglang, trtllm).

        Returns:
            Catalog models with sizing hints.
        """
        models = [m for m in list_models() if engine is None or engine in m.supported_engines]
        return {"models": [m.model_dump() for m in models], "total": len(models)}

    @mcp.tool()
    def list_kaito_premade_models() -> dict[str, Any]:
        """List the prebuilt KAITO model images.

        Returns:
            Premade model ids usable as ``premadeModel`` with modelSource
            "premade".
        """
        models = list_premade_models()
        return {"models": [m.model_dump() for m in models], "total": len(models)}
