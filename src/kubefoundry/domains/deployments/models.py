"""Pydantic models for normalized deployment status."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from kubefoundry.domains.providers.models import DeploymentMode


class DeploymentPhase(str, Enum):
    """Normalized deployment lifecycle phase."""

    PENDING = "Pending"
    DEPLOYING = "Deploying"
    RUNNING = "Running"
    FAILED = "Failed"
    TERMINATING = "Terminating"


class PodPhase(str, Enum):
    """Kubernetes pod phase."""

    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    UNKNOWN = "Unknown"


class PodStatus(BaseModel):
    """Summary of one pod backing a deployment."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str = Field(..., description="Pod name")
    phase: PodPhase = Field(default=PodPhase.UNKNOWN, description="Pod phase")
    ready: bool = Field(default=False, description="All containers ready")
    restarts: int = Field(default=0, ge=0, description="Restart count summed over containers")
    node: str | None = Field(None, description="Node the pod is scheduled on")
    reason: str | None = Field(None, description="Waiting or termination reason, if any")


class Condition(BaseModel):
    """A status condition reported by a controller."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: str = Field(default="", description="Condition type")
    status: str = Field(default="Unknown", description="True, False or Unknown")
    reason: str | None = Field(None, description="Machine-readable reason")
    message: str | None = Field(None, description="Human-readable message")
    last_transition_time: str | None = Field(None, description="Last transition timestamp")


class ReplicaStatus(BaseModel):
    """Replica counts for a worker pool."""

    desired: int = Field(default=0, ge=0)
    ready: int = Field(default=0, ge=0)
    available: int = Field(default=0, ge=0)


class DeploymentStatus(BaseModel):
    """Normalized status rebuilt from live cluster data on every read."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, protected_namespaces=()
    )

    name: str = Field(..., description="Deployment name")
    namespace: str = Field(..., description="Namespace")
    model_id: str = Field(default="", description="Model being served")
    served_model_name: str | None = Field(None, description="Name the model is served under")
    engine: str | None = Field(None, description="Inference engine")
    mode: DeploymentMode = Field(default=DeploymentMode.AGGREGATED, description="Topology")
    phase: DeploymentPhase = Field(default=DeploymentPhase.PENDING, description="Lifecycle phase")
    provider: str = Field(..., description="Provider id")
    replicas: ReplicaStatus = Field(default_factory=ReplicaStatus)
    prefill_replicas: ReplicaStatus | None = Field(None, description="Prefill pool replicas")
    decode_replicas: ReplicaStatus | None = Field(None, description="Decode pool replicas")
    conditions: list[Condition] = Field(default_factory=list)
    pods: list[PodStatus] = Field(default_factory=list)
    created_at: str = Field(default="", description="Creation timestamp (RFC 3339)")
    frontend_service: str | None = Field(None, description="Service clients should call")
