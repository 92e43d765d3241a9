"""Pydantic models for cluster GPU capacity and planning results."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class NodeGpuInfo(BaseModel):
    """GPU inventory of one node."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    node_name: str = Field(..., description="Node name")
    total_gpus: int = Field(default=0, ge=0, description="Allocatable GPUs on the node")
    allocated_gpus: int = Field(default=0, ge=0, description="GPUs requested by scheduled pods")
    available_gpus: int = Field(default=0, ge=0, description="Free GPUs on the node")
    gpu_model: str | None = Field(None, description="GPU product name")
    gpu_memory_gb: float | None = Field(None, description="Memory per GPU in GB")
    node_pool: str = Field(default="default", description="Node pool the node belongs to")


class NodePoolInfo(BaseModel):
    """GPU inventory aggregated per node pool."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str = Field(..., description="Node pool name")
    gpu_count: int = Field(default=0, ge=0, description="Total GPUs in the pool")
    node_count: int = Field(default=0, ge=0, description="GPU nodes in the pool")
    available_gpus: int = Field(default=0, ge=0, description="Free GPUs in the pool")
    gpu_model: str | None = Field(None, description="GPU product name")


class ClusterGpuCapacity(BaseModel):
    """Point-in-time GPU inventory of the cluster.

    Produced fresh on each capacity query and consumed read-only.
    ``max_contiguous_available`` is the largest free block on any single node,
    ``max_node_gpu_capacity`` the largest GPU count any node has at all; the
    latter is a hard ceiling for one pod. ``None`` means unknown.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total_gpus: int = Field(default=0, ge=0, description="Allocatable GPUs in the cluster")
    allocated_gpus: int = Field(default=0, ge=0, description="GPUs requested by pods")
    available_gpus: int = Field(default=0, ge=0, description="Free GPUs in the cluster")
    max_contiguous_available: int = Field(
        default=0, ge=0, description="Largest free GPU block on one node"
    )
    max_node_gpu_capacity: int | None = Field(
        None, ge=0, description="Largest GPU count on any node"
    )
    gpu_node_count: int = Field(default=0, ge=0, description="Nodes exposing GPUs")
    gpu_memory_gb: float | None = Field(
        None,
        alias="totalMemoryGb",
        description="Memory per GPU in GB, when known",
    )
    node_pools: list[NodePoolInfo] = Field(default_factory=list, description="Per-pool breakdown")
    nodes: list[NodeGpuInfo] = Field(default_factory=list, description="Per-node breakdown")


class GpuRecommendation(BaseModel):
    """Recommended GPUs per replica for a model on this cluster."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    recommended_gpus: int = Field(..., ge=1, description="Recommended GPUs per replica")
    reason: str = Field(..., description="Why this count was chosen")
    alternatives: list[int] = Field(
        default_factory=list, max_length=2, description="Other sensible counts"
    )


class GpuRequirements(BaseModel):
    """GPU totals requested by a deployment configuration."""

    total: int = Field(..., ge=0, description="GPUs across all replicas")
    max_per_worker: int = Field(..., ge=0, description="Largest single-pod GPU request")
    prefill_per_worker: int = Field(..., ge=0, description="GPUs per prefill worker")
    decode_per_worker: int = Field(..., ge=0, description="GPUs per decode worker")


class GpuWarningType(str, Enum):
    """Kind of GPU fit problem."""

    NODE_CAPACITY_EXCEEDED = "node_capacity_exceeded"
    CONTIGUOUS_INSUFFICIENT = "contiguous_insufficient"
    TOTAL_INSUFFICIENT = "total_insufficient"
    MODEL_MINIMUM = "model_minimum"


class GpuFitWarning(BaseModel):
    """Advisory capacity warning; never blocks a deployment."""

    type: GpuWarningType = Field(..., description="Warning kind")
    message: str = Field(..., description="Human-readable message")
    required: int = Field(..., description="GPUs required")
    available: int = Field(..., description="GPUs available")
    severe: bool = Field(
        default=False,
        description="True when no node could ever schedule the pod",
    )


class GpuFitResult(BaseModel):
    """Outcome of a fit check."""

    fits: bool = Field(..., description="True when no warning was raised")
    warnings: list[GpuFitWarning] = Field(default_factory=list)
    requirements: GpuRequirements | None = Field(None, description="Computed GPU totals")
