"""Pydantic models for cluster autoscaler detection."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class AutoscalerType(str, Enum):
    """Kind of node autoscaling found in the cluster."""

    NONE = "none"
    AKS_MANAGED = "aks-managed"
    CLUSTER_AUTOSCALER = "cluster-autoscaler"
    UNKNOWN = "unknown"


class NodeGroupStatus(BaseModel):
    """Size bounds of one autoscaled node group."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str = Field(..., description="Node group name")
    min_size: int = Field(default=0, ge=0)
    max_size: int = Field(default=0, ge=0)
    current_size: int = Field(default=0, ge=0)


class AutoscalerDetectionResult(BaseModel):
    """What the detector concluded about cluster autoscaling."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: AutoscalerType = Field(..., description="Autoscaler kind")
    detected: bool = Field(default=False)
    healthy: bool = Field(default=False)
    message: str = Field(default="")
    node_group_count: int | None = Field(None, ge=0, description="Autoscaled node groups")
    node_groups: list[NodeGroupStatus] = Field(default_factory=list)
    last_activity: str | None = Field(None, description="Last status update (ISO 8601)")
