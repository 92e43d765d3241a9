"""Pydantic models for the model catalogs."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Model(BaseModel):
    """A deployable model from the static catalog.

    Sizing hints (``parameter_count``, ``size``, ``min_gpu_memory`` and
    ``estimated_gpu_memory_gb``) feed the GPU capacity planner; any of them
    may be missing.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(..., description="HuggingFace model id, e.g. 'Qwen/Qwen3-0.6B'")
    name: str = Field(..., description="Display name")
    description: str = Field(default="", description="Short description")
    size: str | None = Field(None, description="Size string, e.g. '8B' or '0.6B'")
    task: str = Field(default="text-generation", description="Model task")
    parameter_count: float | None = Field(None, description="Number of parameters")
    context_length: int | None = Field(None, description="Maximum context length")
    license: str | None = Field(None, description="License identifier")
    supported_engines: tuple[str, ...] = Field(
        default=("vllm",), description="Engines able to serve this model"
    )
    min_gpu_memory: str | None = Field(None, description="Minimum GPU memory hint, e.g. '16GB'")
    estimated_gpu_memory_gb: float | None = Field(
        None, description="Explicit GPU memory estimate in GB"
    )
    min_gpus: int = Field(default=1, ge=1, description="Minimum GPUs per replica")
    gated: bool = Field(default=False, description="Requires a HuggingFace token")


class PremadeModel(BaseModel):
    """A curated AIKit image that KAITO can run without a build step."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        protected_namespaces=(),
    )

    id: str = Field(..., description="Catalog id, e.g. 'llama3.2:3b'")
    name: str = Field(..., description="Display name")
    size: str = Field(..., description="Parameter size, e.g. '3B'")
    image: str = Field(..., description="Container image reference")
    model_name: str = Field(..., description="Model name served by the image")
    license: str = Field(..., description="License identifier")
    description: str | None = Field(None, description="Short description")
    compute_type: str = Field(default="cpu", description="Preferred compute type: cpu or gpu")
