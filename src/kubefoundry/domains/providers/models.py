"""Pydantic models for deployment configuration and provider metadata.

A deployment configuration is a closed sum type: one common base plus a
provider-specific variant selected by the ``provider`` field. Raw requests
arrive camelCased (``modelId``, ``hfTokenSecret``); snake_case names are
accepted as well.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

K8S_NAME_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
K8S_NAME_MESSAGE = (
    "Name must be a valid Kubernetes resource name (lowercase alphanumeric and hyphens)"
)


class Engine(str, Enum):
    """Inference engine."""

    VLLM = "vllm"
    SGLANG = "sglang"
    TRTLLM = "trtllm"
    LLAMACPP = "llamacpp"


class DeploymentMode(str, Enum):
    """Serving topology."""

    AGGREGATED = "aggregated"
    DISAGGREGATED = "disaggregated"


class RouterMode(str, Enum):
    """Dynamo frontend request routing."""

    NONE = "none"
    KV = "kv"
    ROUND_ROBIN = "round-robin"


class ModelSource(str, Enum):
    """Where a KAITO deployment gets its model from."""

    PREMADE = "premade"
    HUGGINGFACE = "huggingface"
    VLLM = "vllm"


class GgufRunMode(str, Enum):
    """How a HuggingFace GGUF model is run by KAITO."""

    DIRECT = "direct"
    BUILD = "build"


class ComputeType(str, Enum):
    """KAITO compute type."""

    CPU = "cpu"
    GPU = "gpu"


class KaitoResourceType(str, Enum):
    """KAITO custom resource kind to emit."""

    WORKSPACE = "workspace"
    INFERENCE_SET = "inferenceset"


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
        protected_namespaces=(),
    )


class ResourceRequirements(_WireModel):
    """Per-replica resources for engine-based providers."""

    gpu: int = Field(default=1, ge=1, description="GPUs per replica")
    memory: str | None = Field(None, description="Memory limit, e.g. '16Gi'")


class KaitoResources(_WireModel):
    """Per-replica resources for KAITO."""

    memory: str | None = Field(None, description="Memory request, e.g. '8Gi'")
    cpu: str | None = Field(None, description="CPU request, e.g. '4' or '4000m'")
    gpu: int | None = Field(None, ge=1, description="GPUs per replica")


class BaseDeploymentConfig(_WireModel):
    """Fields shared by every provider's deployment configuration."""

    name: str = Field(..., min_length=1, max_length=63, description="Deployment name")
    namespace: str = Field(..., min_length=1, description="Target namespace")
    served_model_name: str | None = Field(None, description="Name the model is served under")
    mode: DeploymentMode = Field(default=DeploymentMode.AGGREGATED, description="Topology")
    replicas: int = Field(default=1, ge=1, le=10, description="Worker replicas")

    # Gateway API Inference Extension routing
    enable_gateway_routing: bool = Field(default=False, description="Create an HTTPRoute")
    gateway_name: str | None = Field(None, description="Parent Gateway name")
    gateway_namespace: str | None = Field(None, description="Parent Gateway namespace")

    @field_validator("name")
    @classmethod
    def validate_k8s_name(cls, v: str) -> str:
        """Names must be DNS-1123 labels."""
        if not K8S_NAME_PATTERN.match(v):
            raise PydanticCustomError("k8s_name", K8S_NAME_MESSAGE)
        return v

    def semantic_errors(self) -> list[str]:
        """Cross-field problems a schema alone cannot express."""
        errors = []
        if self.enable_gateway_routing and not (self.gateway_name and self.gateway_namespace):
            errors.append(
                "enableGatewayRouting: gatewayName and gatewayNamespace are required "
                "when enableGatewayRouting is true"
            )
        return errors


class EngineDeploymentConfig(BaseDeploymentConfig):
    """Common fields of the vLLM/SGLang/TRT-LLM based providers."""

    model_id: str = Field(..., min_length=1, description="HuggingFace model id")
    engine: Engine = Field(..., description="Inference engine")
    hf_token_secret: str = Field(..., min_length=1, description="Secret holding HF_TOKEN")
    context_length: int | None = Field(None, gt=0, description="Max model length override")
    enforce_eager: bool = Field(default=True, description="Disable CUDA graphs")
    enable_prefix_caching: bool = Field(default=False, description="Enable prefix caching")
    trust_remote_code: bool = Field(default=False, description="Trust remote model code")
    resources: ResourceRequirements = Field(default_factory=ResourceRequirements)
    engine_args: dict[str, Any] = Field(default_factory=dict, description="Extra engine flags")

    # Disaggregated prefill/decode
    prefill_replicas: int = Field(default=1, ge=1, le=10, description="Prefill worker replicas")
    decode_replicas: int = Field(default=1, ge=1, le=10, description="Decode worker replicas")
    prefill_gpus: int = Field(default=1, ge=1, description="GPUs per prefill worker")
    decode_gpus: int = Field(default=1, ge=1, description="GPUs per decode worker")

    @field_validator("engine")
    @classmethod
    def validate_engine(cls, v: Engine) -> Engine:
        """llama.cpp is only reachable through KAITO."""
        if v == Engine.LLAMACPP:
            raise PydanticCustomError(
                "engine",
                "Input should be 'vllm', 'sglang' or 'trtllm'",
            )
        return v

    @property
    def gpus_per_replica(self) -> int:
        return self.resources.gpu


class DynamoDeploymentConfig(EngineDeploymentConfig):
    """NVIDIA Dynamo deployment configuration."""

    provider: Literal["dynamo"] = "dynamo"
    router_mode: RouterMode = Field(default=RouterMode.NONE, description="Frontend routing")


class KubeRayDeploymentConfig(EngineDeploymentConfig):
    """KubeRay (Ray Serve LLM) deployment configuration."""

    provider: Literal["kuberay"] = "kuberay"
    engine: Engine = Field(default=Engine.VLLM, description="Inference engine")

    accelerator_type: str | None = Field(None, description="GPU accelerator type, e.g. A100")
    tensor_parallel_size: int = Field(default=1, ge=1, description="Tensor parallelism")
    pipeline_parallel_size: int = Field(default=1, ge=1, description="Pipeline parallelism")
    gpu_memory_utilization: float = Field(
        default=0.9, ge=0.1, le=1.0, description="Fraction of GPU memory to use"
    )
    max_num_seqs: int = Field(default=40, ge=1, description="Maximum concurrent sequences")
    enable_chunked_prefill: bool = Field(default=True, description="Chunked prefill")

    ray_image: str = Field(
        default="rayproject/ray-llm:2.52.0-py311-cu128", description="Ray LLM image"
    )
    head_cpu: str = Field(default="4", description="CPU for the Ray head")
    head_memory: str = Field(default="32Gi", description="Memory for the Ray head")
    worker_cpu: str = Field(default="8", description="CPU per Ray worker")
    worker_memory: str = Field(default="64Gi", description="Memory per Ray worker")

    min_replicas: int = Field(default=1, ge=1, description="Minimum worker replicas")
    max_replicas: int = Field(default=2, ge=1, description="Maximum worker replicas")

    def semantic_errors(self) -> list[str]:
        errors = super().semantic_errors()
        if self.engine != Engine.VLLM:
            errors.append(
                f"engine: KubeRay only supports the vllm engine, got '{self.engine.value}'"
            )
        if self.mode == DeploymentMode.DISAGGREGATED:
            errors.append("mode: KubeRay only supports aggregated mode")
        if self.min_replicas > self.max_replicas:
            errors.append("minReplicas: must not exceed maxReplicas")
        return errors


class KaitoDeploymentConfig(BaseDeploymentConfig):
    """KAITO deployment configuration (GGUF via AIKit, or vLLM)."""

    provider: Literal["kaito"] = "kaito"
    model_source: ModelSource = Field(..., description="premade, huggingface or vllm")
    premade_model: str | None = Field(None, description="Premade catalog id")
    model_id: str | None = Field(None, description="HuggingFace repository id")
    gguf_file: str | None = Field(None, description="GGUF file inside the repository")
    gguf_run_mode: GgufRunMode = Field(default=GgufRunMode.DIRECT, description="direct or build")
    compute_type: ComputeType = Field(default=ComputeType.CPU, description="cpu or gpu")
    label_selector: dict[str, str] | None = Field(None, description="Node label selector")
    preferred_nodes: list[str] | None = Field(None, description="Existing nodes to use")
    resources: KaitoResources = Field(default_factory=KaitoResources)
    image_ref: str | None = Field(None, description="Image produced by the build step")
    max_model_len: int | None = Field(None, ge=1, description="vLLM --max-model-len")
    hf_token_secret: str | None = Field(None, description="Secret holding HF_TOKEN")
    kaito_resource_type: KaitoResourceType = Field(
        default=KaitoResourceType.WORKSPACE, description="workspace or inferenceset"
    )

    @property
    def engine(self) -> Engine:
        if self.model_source == ModelSource.VLLM:
            return Engine.VLLM
        return Engine.LLAMACPP

    @property
    def gpus_per_replica(self) -> int:
        if self.compute_type != ComputeType.GPU:
            return 0
        return self.resources.gpu or 1

    def semantic_errors(self) -> list[str]:
        errors = super().semantic_errors()
        if self.mode == DeploymentMode.DISAGGREGATED:
            errors.append(
                "mode: KAITO does not support disaggregated prefill/decode serving; "
                "use aggregated mode"
            )

        if self.model_source == ModelSource.PREMADE:
            if not self.premade_model:
                errors.append("premadeModel: required when modelSource is 'premade'")
        elif self.model_source == ModelSource.HUGGINGFACE:
            if not self.model_id:
                errors.append("modelId: required when modelSource is 'huggingface'")
            if not self.gguf_file:
                errors.append("ggufFile: required when modelSource is 'huggingface'")
            if self.gguf_run_mode == GgufRunMode.BUILD and not self.image_ref:
                errors.append("imageRef: required when ggufRunMode is 'build'")
        elif self.model_source == ModelSource.VLLM:
            if not self.model_id:
                errors.append("modelId: required when modelSource is 'vllm'")
            if self.compute_type != ComputeType.GPU:
                errors.append("computeType: vLLM deployments require GPU compute")
        return errors


DeploymentConfig = Annotated[
    Union[DynamoDeploymentConfig, KubeRayDeploymentConfig, KaitoDeploymentConfig],
    Field(discriminator="provider"),
]


class ValidationResult(BaseModel):
    """Outcome of Provider.validate_config."""

    valid: bool = Field(..., description="True when data is populated")
    errors: list[str] = Field(default_factory=list, description="Human-readable problems")
    data: DeploymentConfig | None = Field(None, description="Validated configuration")


class ProviderInfo(BaseModel):
    """Provider metadata for listings."""

    id: str
    name: str
    description: str
    default_namespace: str


class InstallationStep(BaseModel):
    """One documented installation step."""

    title: str
    command: str | None = None
    description: str


class HelmRepo(BaseModel):
    """Helm repository required by a provider."""

    name: str
    url: str


class HelmChart(BaseModel):
    """Helm chart installed for a provider."""

    name: str
    chart: str
    version: str | None = None
    namespace: str
    values: dict[str, Any] | None = None
    create_namespace: bool = False
    skip_crds: bool = False
    pre_crd_urls: list[str] = Field(default_factory=list)


class InstallationStatus(BaseModel):
    """Whether a provider's operator is present in the cluster."""

    installed: bool
    crd_found: bool | None = None
    operator_running: bool | None = None
    version: str | None = None
    message: str | None = None


class UninstallResources(BaseModel):
    """Cluster objects to remove when uninstalling a provider."""

    crds: list[str] = Field(default_factory=list)
    namespaces: list[str] = Field(default_factory=list)


class MetricsEndpointConfig(BaseModel):
    """Where a deployment exposes Prometheus metrics."""

    endpoint_path: str = "/metrics"
    port: int
    service_name_pattern: str = "{name}"


class MetricType(str, Enum):
    """Prometheus metric type."""

    GAUGE = "gauge"
    COUNTER = "counter"
    HISTOGRAM = "histogram"


class MetricDefinition(BaseModel):
    """A metric worth surfacing for a provider."""

    name: str
    display_name: str
    description: str
    unit: str
    type: MetricType
    category: str
