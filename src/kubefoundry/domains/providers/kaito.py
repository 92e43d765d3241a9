"""KAITO (Kubernetes AI Toolchain Operator) provider.

KAITO runs GGUF models through AIKit's llama.cpp images, which makes CPU-only
inference possible, and vLLM on GPU nodes through the kaito-base image. A
deployment is emitted either as a ``Workspace`` or as an ``InferenceSet``;
the two kinds nest the inference template at different depths.
"""

from __future__ import annotations

import logging
from typing import Any

from kubefoundry.clients.base import CRDDefinition
from kubefoundry.config import get_config
from kubefoundry.domains.catalog import GGUF_RUNNER_IMAGE, find_premade_by_image, get_premade_model
from kubefoundry.domains.deployments.models import DeploymentPhase, DeploymentStatus, ReplicaStatus
from kubefoundry.domains.providers.base import (
    PROVIDER_LABEL,
    VLLM_KEY_METRICS,
    ClusterProbe,
    check_operator_installation,
    condition_is_true,
    managed_labels,
    parse_conditions,
    validate_model,
    validation_result,
)
from kubefoundry.domains.providers.crds import ProviderCRDs
from kubefoundry.domains.providers.models import (
    ComputeType,
    DeploymentMode,
    Engine,
    GgufRunMode,
    HelmChart,
    HelmRepo,
    InstallationStatus,
    InstallationStep,
    KaitoDeploymentConfig,
    KaitoResourceType,
    MetricDefinition,
    MetricsEndpointConfig,
    MetricType,
    ModelSource,
    UninstallResources,
    ValidationResult,
)
from kubefoundry.utils.errors import ValidationError

logger = logging.getLogger(__name__)

OPERATOR_NAMESPACE = "kaito-workspace"
WORKSPACE_LABEL = "kaito.sh/workspace"

LLAMACPP_PORT = 5000
VLLM_PORT = 8000
VLLM_IMAGE = "mcr.microsoft.com/aks/kaito/kaito-base:0.1.1"
DEFAULT_LABEL_SELECTOR = {"kubernetes.io/os": "linux"}

_PHASES = {
    "running": DeploymentPhase.RUNNING,
    "ready": DeploymentPhase.RUNNING,
    "pending": DeploymentPhase.PENDING,
    "waiting": DeploymentPhase.PENDING,
    "creating": DeploymentPhase.PENDING,
    "deploying": DeploymentPhase.DEPLOYING,
    "provisioning": DeploymentPhase.DEPLOYING,
    "failed": DeploymentPhase.FAILED,
    "error": DeploymentPhase.FAILED,
    "terminating": DeploymentPhase.TERMINATING,
    "deleting": DeploymentPhase.TERMINATING,
}

LLAMACPP_KEY_METRICS = [
    MetricDefinition(
        name="llamacpp_requests_processing",
        display_name="Processing Requests",
        description="Number of requests currently being processed",
        unit="requests",
        type=MetricType.GAUGE,
        category="queue",
    ),
    MetricDefinition(
        name="llamacpp_requests_pending",
        display_name="Pending Requests",
        description="Number of requests waiting in queue",
        unit="requests",
        type=MetricType.GAUGE,
        category="queue",
    ),
    MetricDefinition(
        name="llamacpp_kv_cache_usage_ratio",
        display_name="KV Cache Usage",
        description="KV cache usage ratio",
        unit="%",
        type=MetricType.GAUGE,
        category="cache",
    ),
    MetricDefinition(
        name="llamacpp_tokens_predicted_total",
        display_name="Tokens Generated",
        description="Total tokens generated",
        unit="tokens/s",
        type=MetricType.COUNTER,
        category="throughput",
    ),
    MetricDefinition(
        name="llamacpp_prompt_tokens_processed_total",
        display_name="Prompt Tokens",
        description="Total prompt tokens processed",
        unit="tokens/s",
        type=MetricType.COUNTER,
        category="throughput",
    ),
]


def map_phase(phase: str | None) -> DeploymentPhase:
    """Map a KAITO phase string onto DeploymentPhase."""
    if not phase:
        return DeploymentPhase.PENDING
    return _PHASES.get(phase.lower(), DeploymentPhase.PENDING)


class KaitoProvider:
    """Provider for KAITO ``Workspace`` and ``InferenceSet`` resources."""

    id = "kaito"
    name = "KAITO"
    description = (
        "KAITO (Kubernetes AI Toolchain Operator) enables CPU and GPU inference "
        "using GGUF quantized models via AIKit, or vLLM on GPU nodes."
    )
    default_namespace = "kaito-workspace"

    def get_crd_config(self) -> CRDDefinition:
        return ProviderCRDs.KAITO_WORKSPACE

    def crd_for(self, config: KaitoDeploymentConfig) -> CRDDefinition:
        """The custom resource kind a config is emitted as."""
        if config.kaito_resource_type == KaitoResourceType.INFERENCE_SET:
            return ProviderCRDs.KAITO_INFERENCE_SET
        return ProviderCRDs.KAITO_WORKSPACE

    def validate_config(self, raw: Any) -> ValidationResult:
        config, errors = validate_model(KaitoDeploymentConfig, raw, self.id)
        if config is not None and not errors and config.model_source == ModelSource.PREMADE:
            if get_premade_model(config.premade_model) is None:
                errors = [f"premadeModel: unknown premade model '{config.premade_model}'"]
        return validation_result(self.id, config, errors)

    # Manifest generation

    def generate_manifest(self, config: KaitoDeploymentConfig) -> dict[str, Any]:
        """Build a Workspace or InferenceSet for a validated config.

        A Workspace carries ``resource`` and ``inference`` at the top level;
        an InferenceSet nests them under ``spec`` and never has ``resource``.
        """
        logger.debug(
            f"Generating KAITO {config.kaito_resource_type.value} for '{config.name}' "
            f"(source={config.model_source.value}, compute={config.compute_type.value})"
        )
        crd = self.crd_for(config)
        inference = {"template": {"spec": self._pod_spec(config)}}
        manifest: dict[str, Any] = {
            "apiVersion": crd.api_version,
            "kind": crd.kind,
            "metadata": {
                "name": config.name,
                "namespace": config.namespace,
                "labels": self._labels(config),
            },
        }

        if config.kaito_resource_type == KaitoResourceType.INFERENCE_SET:
            manifest["spec"] = {
                "replicas": config.replicas,
                "template": {"inference": inference},
            }
        else:
            manifest["resource"] = self._resource_spec(config)
            manifest["inference"] = inference
        return manifest

    def _labels(self, config: KaitoDeploymentConfig) -> dict[str, str]:
        labels = managed_labels(config.name)
        labels["kubefoundry.io/compute-type"] = config.compute_type.value
        labels["kubefoundry.io/model-source"] = config.model_source.value
        if config.model_source == ModelSource.HUGGINGFACE:
            labels["kubefoundry.io/run-mode"] = config.gguf_run_mode.value
        return labels

    def _resource_spec(self, config: KaitoDeploymentConfig) -> dict[str, Any]:
        resource: dict[str, Any] = {
            "count": config.replicas,
            "labelSelector": {"matchLabels": dict(config.label_selector or DEFAULT_LABEL_SELECTOR)},
        }
        if config.preferred_nodes:
            resource["preferredNodes"] = list(config.preferred_nodes)
        return resource

    def _pod_spec(self, config: KaitoDeploymentConfig) -> dict[str, Any]:
        if config.model_source == ModelSource.VLLM:
            return {
                "containers": [self._vllm_container(config)],
                "volumes": [{"name": "dshm", "emptyDir": {"medium": "Memory"}}],
            }
        return {"containers": [self._llamacpp_container(config)]}

    def _llamacpp_container(self, config: KaitoDeploymentConfig) -> dict[str, Any]:
        if (
            config.model_source == ModelSource.HUGGINGFACE
            and config.gguf_run_mode == GgufRunMode.DIRECT
        ):
            image = GGUF_RUNNER_IMAGE
            args = [
                f"huggingface://{config.model_id}/{config.gguf_file}",
                f"--address=:{LLAMACPP_PORT}",
            ]
        else:
            image = self._image_ref(config)
            args = ["run", f"--address=:{LLAMACPP_PORT}"]

        container: dict[str, Any] = {
            "name": "model",
            "image": image,
            "args": args,
            "ports": [{"containerPort": LLAMACPP_PORT, "protocol": "TCP"}],
        }

        resources: dict[str, dict[str, Any]] = {}
        requests = self._cpu_memory_requests(config)
        if requests:
            resources["requests"] = requests
        if config.compute_type == ComputeType.GPU:
            resources["limits"] = {"nvidia.com/gpu": config.gpus_per_replica}
        if resources:
            container["resources"] = resources
        return container

    def _vllm_container(self, config: KaitoDeploymentConfig) -> dict[str, Any]:
        gpus = config.gpus_per_replica
        args = [
            "-m",
            "vllm.entrypoints.openai.api_server",
            "--model",
            config.model_id or "",
            "--tensor-parallel-size",
            str(gpus),
            "--trust-remote-code",
        ]
        if config.served_model_name:
            args += ["--served-model-name", config.served_model_name]
        if config.max_model_len:
            args += ["--max-model-len", str(config.max_model_len)]

        requests: dict[str, Any] = {**self._cpu_memory_requests(config), "nvidia.com/gpu": gpus}
        probe = {"httpGet": {"path": "/health", "port": VLLM_PORT}}
        container: dict[str, Any] = {
            "name": "model",
            "image": VLLM_IMAGE,
            "command": ["python"],
            "args": args,
            "ports": [{"containerPort": VLLM_PORT, "protocol": "TCP"}],
            "resources": {"requests": requests, "limits": {"nvidia.com/gpu": gpus}},
            "volumeMounts": [{"name": "dshm", "mountPath": "/dev/shm"}],
            "livenessProbe": {**probe, "initialDelaySeconds": 600, "periodSeconds": 30},
            "readinessProbe": {**probe, "initialDelaySeconds": 30, "periodSeconds": 10},
        }
        if config.hf_token_secret:
            container["env"] = [
                {
                    "name": "HF_TOKEN",
                    "valueFrom": {
                        "secretKeyRef": {"name": config.hf_token_secret, "key": "HF_TOKEN"}
                    },
                }
            ]
        return container

    @staticmethod
    def _cpu_memory_requests(config: KaitoDeploymentConfig) -> dict[str, Any]:
        requests: dict[str, Any] = {}
        if config.resources.memory:
            requests["memory"] = config.resources.memory
        if config.resources.cpu:
            requests["cpu"] = config.resources.cpu
        return requests

    def _image_ref(self, config: KaitoDeploymentConfig) -> str:
        if config.image_ref:
            return config.image_ref
        if config.model_source == ModelSource.PREMADE and config.premade_model:
            premade = get_premade_model(config.premade_model)
            if premade:
                return premade.image
        raise ValidationError(
            ["imageRef: unable to determine image reference for KAITO deployment"]
        )

    def generate_auxiliary_manifests(self, config: KaitoDeploymentConfig) -> list[dict[str, Any]]:
        """The vLLM path needs its own Service; KAITO only exposes llama.cpp."""
        if config.model_source != ModelSource.VLLM:
            return []
        labels = managed_labels(config.name)
        labels[PROVIDER_LABEL] = self.id
        return [
            {
                "apiVersion": "v1",
                "kind": "Service",
                "metadata": {
                    "name": f"{config.name}-vllm",
                    "namespace": config.namespace,
                    "labels": labels,
                },
                "spec": {
                    "type": "ClusterIP",
                    "selector": {WORKSPACE_LABEL: config.name},
                    "ports": [
                        {
                            "name": "http",
                            "port": VLLM_PORT,
                            "targetPort": VLLM_PORT,
                            "protocol": "TCP",
                        }
                    ],
                },
            }
        ]

    # Status

    def parse_status(self, raw: dict[str, Any]) -> DeploymentStatus:
        """Normalize a Workspace or InferenceSet into a DeploymentStatus."""
        metadata = raw.get("metadata") or {}
        labels = metadata.get("labels") or {}
        status = raw.get("status") or {}
        spec = raw.get("spec") or {}
        name = metadata.get("name") or "unknown"

        if raw.get("kind") == ProviderCRDs.KAITO_INFERENCE_SET.kind:
            inference = (spec.get("template") or {}).get("inference") or {}
            desired = spec.get("replicas") or 1
        else:
            inference = raw.get("inference") or {}
            desired = (raw.get("resource") or {}).get("count") or 1

        containers = ((inference.get("template") or {}).get("spec") or {}).get("containers") or []
        container = containers[0] if containers else {}
        image = container.get("image") or ""
        args = [str(arg) for arg in container.get("args") or []]
        source = labels.get("kubefoundry.io/model-source")
        is_vllm = source == ModelSource.VLLM.value or "vllm.entrypoints.openai.api_server" in args

        phase = map_phase(status.get("phase"))
        if (
            phase == DeploymentPhase.PENDING
            and condition_is_true(status, "WorkspaceSucceeded")
            and condition_is_true(status, "InferenceReady")
        ):
            phase = DeploymentPhase.RUNNING

        ready = 0
        if phase == DeploymentPhase.RUNNING:
            worker_nodes = status.get("workerNodes") or []
            ready = min(len(worker_nodes) or desired, desired)

        return DeploymentStatus(
            name=name,
            namespace=metadata.get("namespace") or "default",
            model_id=self._model_id(image, args, source, is_vllm),
            served_model_name=name,
            engine=Engine.VLLM.value if is_vllm else Engine.LLAMACPP.value,
            mode=DeploymentMode.AGGREGATED,
            phase=phase,
            provider=self.id,
            replicas=ReplicaStatus(desired=desired, ready=ready, available=ready),
            conditions=parse_conditions(status),
            created_at=metadata.get("creationTimestamp") or "",
            frontend_service=f"{name}-vllm:{VLLM_PORT}" if is_vllm else f"{name}:80",
        )

    @staticmethod
    def _model_id(image: str, args: list[str], source: str | None, is_vllm: bool) -> str:
        if is_vllm:
            if "--model" in args:
                index = args.index("--model")
                if index + 1 < len(args):
                    return args[index + 1]
            return image

        hf_arg = next((arg for arg in args if arg.startswith("huggingface://")), None)
        if hf_arg:
            return hf_arg.removeprefix("huggingface://").split("/")[-1]

        premade = find_premade_by_image(image)
        if premade and source in (None, ModelSource.PREMADE.value):
            return premade.model_name
        return image

    # Installation

    def get_installation_steps(self) -> list[InstallationStep]:
        version = get_config().kaito_version
        return [
            InstallationStep(
                title="Add KAITO Helm Repository",
                command="helm repo add kaito https://kaito-project.github.io/kaito/charts/kaito",
                description="Add the KAITO Helm repository.",
            ),
            InstallationStep(
                title="Update Helm Repositories",
                command="helm repo update",
                description="Update local Helm repository cache.",
            ),
            InstallationStep(
                title="Install KAITO Workspace Operator",
                command=(
                    f"helm upgrade --install kaito-workspace kaito/workspace --version {version} "
                    f"-n {OPERATOR_NAMESPACE} --create-namespace --wait"
                ),
                description=(
                    f"Install the KAITO workspace operator v{version} which manages AI workloads."
                ),
            ),
        ]

    def get_helm_repos(self) -> list[HelmRepo]:
        return [HelmRepo(name="kaito", url="https://kaito-project.github.io/kaito/charts/kaito")]

    def get_helm_charts(self) -> list[HelmChart]:
        return [
            HelmChart(
                name="kaito-workspace",
                chart="kaito/workspace",
                version=get_config().kaito_version,
                namespace=OPERATOR_NAMESPACE,
                create_namespace=True,
            )
        ]

    def get_uninstall_resources(self) -> UninstallResources:
        return UninstallResources(
            crds=[ProviderCRDs.KAITO_WORKSPACE.crd_name, "ragengines.kaito.sh"],
            namespaces=[OPERATOR_NAMESPACE],
        )

    def check_installation(self, cluster: ClusterProbe) -> InstallationStatus:
        return check_operator_installation(
            cluster,
            self.get_crd_config(),
            display_name="KAITO",
            operator_namespace=OPERATOR_NAMESPACE,
            operator_selectors=["app.kubernetes.io/name=kaito-workspace"],
            pod_name_hints=("kaito", "workspace"),
        )

    # Gateway API Inference Extension

    def supports_gaie(self) -> bool:
        return True

    def generate_http_route(self, config: KaitoDeploymentConfig) -> dict[str, Any]:
        """HTTPRoute sending requests for this model to its InferencePool."""
        labels = managed_labels(config.name)
        labels[PROVIDER_LABEL] = self.id
        crd = ProviderCRDs.HTTP_ROUTE
        return {
            "apiVersion": crd.api_version,
            "kind": crd.kind,
            "metadata": {
                "name": f"{config.name}-route",
                "namespace": config.namespace,
                "labels": labels,
            },
            "spec": {
                "parentRefs": [
                    {"name": config.gateway_name, "namespace": config.gateway_namespace}
                ],
                "rules": [
                    {
                        "matches": [
                            {
                                "headers": [
                                    {
                                        "type": "Exact",
                                        "name": "X-Gateway-Model-Name",
                                        "value": self._routed_model_name(config),
                                    }
                                ]
                            }
                        ],
                        "backendRefs": [
                            {
                                "group": "inference.networking.k8s.io",
                                "kind": "InferencePool",
                                "name": f"{config.name}-pool",
                            }
                        ],
                    }
                ],
            },
        }

    @staticmethod
    def _routed_model_name(config: KaitoDeploymentConfig) -> str:
        return config.served_model_name or config.model_id or config.premade_model or config.name

    # Metrics

    def get_metrics_config(self, config: Any = None) -> MetricsEndpointConfig | None:
        """llama.cpp serves metrics on its API port; vLLM through its own Service.

        Accepts a deployment config or a parsed DeploymentStatus.
        """
        if getattr(config, "engine", None) == Engine.VLLM:
            return MetricsEndpointConfig(
                endpoint_path="/metrics",
                port=VLLM_PORT,
                service_name_pattern="{name}-vllm",
            )
        return MetricsEndpointConfig(
            endpoint_path="/metrics",
            port=LLAMACPP_PORT,
            service_name_pattern="{name}",
        )

    def get_key_metrics(self) -> list[MetricDefinition]:
        return [*LLAMACPP_KEY_METRICS, *VLLM_KEY_METRICS]
