"""KubeRay (Ray Serve LLM) provider."""

from __future__ import annotations

import logging
from typing import Any

import yaml

from kubefoundry.clients.base import CRDDefinition
from kubefoundry.domains.deployments.models import DeploymentPhase, DeploymentStatus, ReplicaStatus
from kubefoundry.domains.providers.base import (
    ClusterProbe,
    check_operator_installation,
    managed_labels,
    parse_conditions,
    validate_model,
    validation_result,
)
from kubefoundry.domains.providers.crds import ProviderCRDs
from kubefoundry.domains.providers.models import (
    DeploymentMode,
    Engine,
    HelmChart,
    HelmRepo,
    InstallationStatus,
    InstallationStep,
    KubeRayDeploymentConfig,
    MetricDefinition,
    MetricsEndpointConfig,
    MetricType,
    UninstallResources,
    ValidationResult,
)

logger = logging.getLogger(__name__)

KUBERAY_CHART_VERSION = "1.5.1"
OPERATOR_NAMESPACE = "default"
DEFAULT_MAX_MODEL_LEN = 16384
RAY_METRICS_PORT = 8080
WORKER_GROUP = "gpu-group"


class KubeRayProvider:
    """Provider for Ray Serve LLM applications on ``RayService`` resources.

    Ray Serve runs vLLM underneath, so only the vllm engine in aggregated
    mode is accepted.
    """

    id = "kuberay"
    name = "KubeRay"
    description = (
        "KubeRay enables Ray Serve on Kubernetes for scalable LLM inference "
        "with a vLLM backend and Ray autoscaling."
    )
    default_namespace = "kuberay-system"

    def get_crd_config(self) -> CRDDefinition:
        return ProviderCRDs.RAY_SERVICE

    def validate_config(self, raw: Any) -> ValidationResult:
        config, errors = validate_model(KubeRayDeploymentConfig, raw, self.id)
        return validation_result(self.id, config, errors)

    def generate_manifest(self, config: KubeRayDeploymentConfig) -> dict[str, Any]:
        """Build the RayService for a validated config."""
        crd = self.get_crd_config()
        serve_config = self._serve_config(config)
        return {
            "apiVersion": crd.api_version,
            "kind": crd.kind,
            "metadata": {
                "name": config.name,
                "namespace": config.namespace,
                "labels": managed_labels(config.name),
            },
            "spec": {
                "serveConfigV2": yaml.safe_dump(serve_config, sort_keys=False),
                "rayClusterConfig": {
                    "headGroupSpec": self._head_group_spec(config),
                    "workerGroupSpecs": [self._worker_group_spec(config)],
                },
            },
        }

    def _serve_config(self, config: KubeRayDeploymentConfig) -> dict[str, Any]:
        model_loading: dict[str, Any] = {
            "model_id": config.served_model_name or config.name,
            "model_source": config.model_id,
        }
        if config.accelerator_type:
            model_loading["accelerator_type"] = config.accelerator_type

        engine_kwargs: dict[str, Any] = {
            "tensor_parallel_size": config.tensor_parallel_size,
            "pipeline_parallel_size": config.pipeline_parallel_size,
            "gpu_memory_utilization": config.gpu_memory_utilization,
            "dtype": "auto",
            "max_num_seqs": config.max_num_seqs,
            "max_model_len": config.context_length or DEFAULT_MAX_MODEL_LEN,
            "enable_chunked_prefill": config.enable_chunked_prefill,
            "enable_prefix_caching": config.enable_prefix_caching,
            "enforce_eager": config.enforce_eager,
        }
        if config.trust_remote_code:
            engine_kwargs["trust_remote_code"] = True
        engine_kwargs.update(config.engine_args)

        return {
            "applications": [
                {
                    "name": "llm_app",
                    "import_path": "ray.serve.llm:build_openai_app",
                    "route_prefix": "/",
                    "runtime_env": {"env_vars": {"VLLM_USE_V1": "1"}},
                    "args": {
                        "llm_configs": [
                            {
                                "model_loading_config": model_loading,
                                "deployment_config": {
                                    "autoscaling_config": {
                                        "min_replicas": config.min_replicas,
                                        "max_replicas": config.max_replicas,
                                    }
                                },
                                "engine_kwargs": engine_kwargs,
                            }
                        ]
                    },
                }
            ]
        }

    def _head_group_spec(self, config: KubeRayDeploymentConfig) -> dict[str, Any]:
        resources = {"cpu": config.head_cpu, "memory": config.head_memory}
        return {
            "rayStartParams": {"num-gpus": "0"},
            "template": {
                "spec": {
                    "containers": [
                        {
                            "name": "ray-head",
                            "image": config.ray_image,
                            "resources": {"limits": dict(resources), "requests": dict(resources)},
                            "ports": [
                                {"containerPort": 6379, "name": "gcs-server"},
                                {"containerPort": 8265, "name": "dashboard"},
                                {"containerPort": 10001, "name": "client"},
                                {"containerPort": 8000, "name": "serve"},
                            ],
                        }
                    ]
                }
            },
        }

    def _worker_group_spec(self, config: KubeRayDeploymentConfig) -> dict[str, Any]:
        resources = {
            "cpu": config.worker_cpu,
            "memory": config.worker_memory,
            "nvidia.com/gpu": str(config.resources.gpu),
        }
        return {
            "groupName": WORKER_GROUP,
            "replicas": config.replicas,
            "minReplicas": config.min_replicas,
            "maxReplicas": config.max_replicas,
            "rayStartParams": {},
            "template": {
                "spec": {
                    "containers": [
                        {
                            "name": "ray-worker",
                            "image": config.ray_image,
                            "resources": {"limits": dict(resources), "requests": dict(resources)},
                            "envFrom": [{"secretRef": {"name": config.hf_token_secret}}],
                        }
                    ],
                    "tolerations": [
                        {"key": "nvidia.com/gpu", "operator": "Exists", "effect": "NoSchedule"}
                    ],
                }
            },
        }

    def generate_auxiliary_manifests(self, config: KubeRayDeploymentConfig) -> list[dict[str, Any]]:
        return []

    def parse_status(self, raw: dict[str, Any]) -> DeploymentStatus:
        """Normalize a RayService into a DeploymentStatus."""
        metadata = raw.get("metadata") or {}
        spec = raw.get("spec") or {}
        status = raw.get("status") or {}
        cluster_status = (status.get("activeServiceStatus") or {}).get("rayClusterStatus") or {}
        name = metadata.get("name") or "unknown"

        loading = _model_loading_config(spec.get("serveConfigV2"), name)
        model_id = str(loading.get("model_source") or "")
        served_model_name = str(loading["model_id"]) if loading.get("model_id") else None

        worker_groups = (spec.get("rayClusterConfig") or {}).get("workerGroupSpecs") or []
        spec_desired = sum(group.get("replicas") or 0 for group in worker_groups)
        available = cluster_status.get("availableWorkerReplicas") or 0

        return DeploymentStatus(
            name=name,
            namespace=metadata.get("namespace") or "default",
            model_id=model_id,
            served_model_name=served_model_name,
            engine=Engine.VLLM.value,
            mode=DeploymentMode.AGGREGATED,
            phase=self._map_phase(status.get("serviceStatus")),
            provider=self.id,
            replicas=ReplicaStatus(
                desired=cluster_status.get("desiredWorkerReplicas") or spec_desired or 1,
                ready=available,
                available=available,
            ),
            conditions=parse_conditions(status),
            created_at=metadata.get("creationTimestamp") or "",
            frontend_service=f"{name}-serve-svc",
        )

    @staticmethod
    def _map_phase(service_status: str | None) -> DeploymentPhase:
        value = (service_status or "").lower()
        if value in ("running", "ready"):
            return DeploymentPhase.RUNNING
        if value in ("failed", "unhealthy"):
            return DeploymentPhase.FAILED
        if "deploy" in value or "pending" in value:
            return DeploymentPhase.DEPLOYING
        return DeploymentPhase.PENDING

    def get_installation_steps(self) -> list[InstallationStep]:
        return [
            InstallationStep(
                title="Add KubeRay Helm Repository",
                command="helm repo add kuberay https://ray-project.github.io/kuberay-helm/",
                description="Add the KubeRay Helm repository to access Ray operator charts.",
            ),
            InstallationStep(
                title="Update Helm Repositories",
                command="helm repo update",
                description="Update local Helm repository cache.",
            ),
            InstallationStep(
                title="Install KubeRay Operator",
                command=(
                    "helm install kuberay-operator kuberay/kuberay-operator "
                    f"--version {KUBERAY_CHART_VERSION}"
                ),
                description=(
                    "Install the KubeRay operator which manages RayService and "
                    "RayCluster resources."
                ),
            ),
        ]

    def get_helm_repos(self) -> list[HelmRepo]:
        return [HelmRepo(name="kuberay", url="https://ray-project.github.io/kuberay-helm/")]

    def get_helm_charts(self) -> list[HelmChart]:
        return [
            HelmChart(
                name="kuberay-operator",
                chart="kuberay/kuberay-operator",
                version=KUBERAY_CHART_VERSION,
                namespace=OPERATOR_NAMESPACE,
                create_namespace=False,
            )
        ]

    def get_uninstall_resources(self) -> UninstallResources:
        # The operator lives in the shared default namespace, which is never removed
        return UninstallResources(
            crds=["rayservices.ray.io", "rayclusters.ray.io", "rayjobs.ray.io"]
        )

    def supports_gaie(self) -> bool:
        return False

    def generate_http_route(self, config: KubeRayDeploymentConfig) -> dict[str, Any]:
        raise NotImplementedError("KubeRay does not support Gateway API inference routing")

    def get_metrics_config(self, config: Any = None) -> MetricsEndpointConfig | None:
        return MetricsEndpointConfig(
            endpoint_path="/metrics",
            port=RAY_METRICS_PORT,
            service_name_pattern="{name}-head-svc",
        )

    def get_key_metrics(self) -> list[MetricDefinition]:
        return [
            MetricDefinition(
                name="ray_serve_num_ongoing_http_requests",
                display_name="Ongoing Requests",
                description="Number of HTTP requests currently being handled",
                unit="requests",
                type=MetricType.GAUGE,
                category="queue",
            ),
            MetricDefinition(
                name="ray_serve_num_http_requests",
                display_name="HTTP Requests",
                description="Total HTTP requests processed by Ray Serve",
                unit="requests/s",
                type=MetricType.COUNTER,
                category="throughput",
            ),
            MetricDefinition(
                name="ray_serve_http_request_latency_ms",
                display_name="Request Latency",
                description="Histogram of HTTP request latency",
                unit="ms",
                type=MetricType.HISTOGRAM,
                category="latency",
            ),
        ]

    def check_installation(self, cluster: ClusterProbe) -> InstallationStatus:
        return check_operator_installation(
            cluster,
            self.get_crd_config(),
            display_name="KubeRay",
            operator_namespace=OPERATOR_NAMESPACE,
            operator_selectors=[
                "app.kubernetes.io/name=kuberay-operator",
                "app=kuberay-operator",
            ],
        )


def _model_loading_config(serve_config: str | None, name: str) -> dict[str, Any]:
    """Read the first LLM's ``model_loading_config`` from serveConfigV2 YAML."""
    if not serve_config:
        return {}
    try:
        document = yaml.safe_load(serve_config)
    except yaml.YAMLError as e:
        logger.debug(f"Unparseable serveConfigV2 for RayService '{name}': {e}")
        return {}
    if not isinstance(document, dict):
        return {}
    for app in document.get("applications") or []:
        args = app.get("args") if isinstance(app, dict) else None
        llm_configs = args.get("llm_configs") if isinstance(args, dict) else None
        for llm in llm_configs or []:
            loading = llm.get("model_loading_config") if isinstance(llm, dict) else None
            if isinstance(loading, dict):
                return loading
    return {}
