"""NVIDIA Dynamo provider."""

from __future__ import annotations

import logging
from typing import Any

from kubefoundry.clients.base import CRDDefinition
from kubefoundry.domains.deployments.models import DeploymentPhase, DeploymentStatus, ReplicaStatus
from kubefoundry.domains.providers.base import (
    VLLM_KEY_METRICS,
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
    DynamoDeploymentConfig,
    Engine,
    HelmChart,
    HelmRepo,
    InstallationStatus,
    InstallationStep,
    MetricDefinition,
    MetricsEndpointConfig,
    RouterMode,
    UninstallResources,
    ValidationResult,
)

logger = logging.getLogger(__name__)

FRONTEND_HTTP_PORT = 8000

_WORKER_PREFIX = {
    Engine.VLLM: "Vllm",
    Engine.SGLANG: "Sglang",
    Engine.TRTLLM: "Trtllm",
}


def _find_worker(spec: dict[str, Any], suffix: str) -> tuple[Engine, dict[str, Any]] | None:
    for engine, prefix in _WORKER_PREFIX.items():
        worker = spec.get(f"{prefix}{suffix}")
        if isinstance(worker, dict):
            return engine, worker
    return None


class DynamoProvider:
    """Provider for NVIDIA Dynamo ``DynamoGraphDeployment`` resources.

    Supports vLLM, SGLang and TensorRT-LLM workers in aggregated or
    disaggregated prefill/decode mode, with optional KV-aware routing.
    """

    id = "dynamo"
    name = "NVIDIA Dynamo"
    description = (
        "NVIDIA Dynamo is a high-performance inference serving platform for LLMs "
        "with support for KV cache routing and disaggregated serving."
    )
    default_namespace = "dynamo-system"

    def get_crd_config(self) -> CRDDefinition:
        return ProviderCRDs.DYNAMO_GRAPH_DEPLOYMENT

    def validate_config(self, raw: Any) -> ValidationResult:
        config, errors = validate_model(DynamoDeploymentConfig, raw, self.id)
        return validation_result(self.id, config, errors)

    def generate_manifest(self, config: DynamoDeploymentConfig) -> dict[str, Any]:
        """Build the DynamoGraphDeployment for a validated config."""
        crd = self.get_crd_config()
        spec: dict[str, Any] = {"Frontend": self._frontend_spec(config)}

        prefix = _WORKER_PREFIX[config.engine]
        if config.mode == DeploymentMode.DISAGGREGATED:
            spec[f"{prefix}PrefillWorker"] = self._disaggregated_worker(config, "prefill")
            spec[f"{prefix}DecodeWorker"] = self._disaggregated_worker(config, "decode")
        else:
            spec[f"{prefix}Worker"] = self._worker_spec(
                config, replicas=config.replicas, gpus=config.resources.gpu
            )

        return {
            "apiVersion": crd.api_version,
            "kind": crd.kind,
            "metadata": {
                "name": config.name,
                "namespace": config.namespace,
                "labels": managed_labels(config.name),
            },
            "spec": spec,
        }

    def _frontend_spec(self, config: DynamoDeploymentConfig) -> dict[str, Any]:
        frontend: dict[str, Any] = {"replicas": 1, "http-port": FRONTEND_HTTP_PORT}
        if config.mode == DeploymentMode.AGGREGATED and config.router_mode != RouterMode.NONE:
            frontend["router-mode"] = config.router_mode.value
        return frontend

    def _worker_spec(
        self, config: DynamoDeploymentConfig, replicas: int, gpus: int
    ) -> dict[str, Any]:
        worker: dict[str, Any] = {
            "model-path": config.model_id,
            "served-model-name": config.served_model_name or config.model_id,
            "replicas": replicas,
            "envFrom": [{"secretRef": {"name": config.hf_token_secret}}],
        }
        if config.enforce_eager:
            worker["enforce-eager"] = True
        if config.enable_prefix_caching:
            worker["enable-prefix-caching"] = True
        if config.trust_remote_code:
            worker["trust-remote-code"] = True
        if config.context_length:
            worker["max-model-len"] = config.context_length

        limits: dict[str, Any] = {"nvidia.com/gpu": gpus}
        if config.resources.memory:
            limits["memory"] = config.resources.memory
        worker["resources"] = {"limits": limits}

        worker.update(config.engine_args)
        return worker

    def _disaggregated_worker(self, config: DynamoDeploymentConfig, role: str) -> dict[str, Any]:
        if role == "prefill":
            worker = self._worker_spec(
                config, replicas=config.prefill_replicas, gpus=config.prefill_gpus
            )
        else:
            worker = self._worker_spec(
                config, replicas=config.decode_replicas, gpus=config.decode_gpus
            )

        # vLLM marks prefill workers; SGLang and TRT-LLM name the role explicitly
        if config.engine == Engine.VLLM:
            if role == "prefill":
                worker["is-prefill-worker"] = True
        else:
            worker["disaggregation-mode"] = role
        return worker

    def generate_auxiliary_manifests(self, config: DynamoDeploymentConfig) -> list[dict[str, Any]]:
        return []

    def parse_status(self, raw: dict[str, Any]) -> DeploymentStatus:
        """Normalize a DynamoGraphDeployment into a DeploymentStatus."""
        metadata = raw.get("metadata") or {}
        spec = raw.get("spec") or {}
        status = raw.get("status") or {}
        name = metadata.get("name") or "unknown"

        prefill = _find_worker(spec, "PrefillWorker")
        decode = _find_worker(spec, "DecodeWorker")
        aggregated = _find_worker(spec, "Worker")

        engine = Engine.VLLM
        worker: dict[str, Any] = {}
        prefill_replicas = decode_replicas = None

        if prefill or decode:
            mode = DeploymentMode.DISAGGREGATED
            engine, worker = prefill if prefill else decode
            prefill_spec = prefill[1] if prefill else {}
            decode_spec = decode[1] if decode else {}
            prefill_replicas = self._pool_replicas(
                status.get("prefillReplicas"), prefill_spec.get("replicas") or 1
            )
            decode_replicas = self._pool_replicas(
                status.get("decodeReplicas"), decode_spec.get("replicas") or 1
            )
            spec_desired = prefill_replicas.desired + decode_replicas.desired
            default_ready = prefill_replicas.ready + decode_replicas.ready
        else:
            mode = DeploymentMode.AGGREGATED
            if aggregated:
                engine, worker = aggregated
            spec_desired = worker.get("replicas") or 1
            default_ready = 0

        replicas = status.get("replicas") or {}
        phase_value = status.get("phase")
        try:
            phase = DeploymentPhase(phase_value.capitalize() if phase_value else "Pending")
        except ValueError:
            logger.debug(f"Unknown Dynamo phase '{phase_value}' for '{name}'")
            phase = DeploymentPhase.DEPLOYING

        return DeploymentStatus(
            name=name,
            namespace=metadata.get("namespace") or "default",
            model_id=worker.get("model-path") or "",
            served_model_name=worker.get("served-model-name"),
            engine=engine.value,
            mode=mode,
            phase=phase,
            provider=self.id,
            replicas=ReplicaStatus(
                desired=replicas.get("desired") or spec_desired,
                ready=replicas.get("ready") or default_ready,
                available=replicas.get("available") or 0,
            ),
            prefill_replicas=prefill_replicas,
            decode_replicas=decode_replicas,
            conditions=parse_conditions(status),
            created_at=metadata.get("creationTimestamp") or "",
            frontend_service=f"{name}-frontend",
        )

    @staticmethod
    def _pool_replicas(reported: dict[str, Any] | None, spec_replicas: int) -> ReplicaStatus:
        reported = reported or {}
        return ReplicaStatus(
            desired=reported.get("desired") or spec_replicas,
            ready=reported.get("ready") or 0,
            available=reported.get("available") or reported.get("ready") or 0,
        )

    def get_installation_steps(self) -> list[InstallationStep]:
        return [
            InstallationStep(
                title="Add NVIDIA Helm Repository",
                command="helm repo add nvidia https://helm.ngc.nvidia.com/nvidia",
                description="Add the NVIDIA NGC Helm repository to access Dynamo charts.",
            ),
            InstallationStep(
                title="Update Helm Repositories",
                command="helm repo update",
                description="Update local Helm repository cache.",
            ),
            InstallationStep(
                title="Create Namespace",
                command=f"kubectl create namespace {self.default_namespace}",
                description="Create the namespace for Dynamo components.",
            ),
            InstallationStep(
                title="Install Dynamo Operator",
                command=(
                    "helm install dynamo-operator nvidia/dynamo-operator "
                    f"-n {self.default_namespace}"
                ),
                description="Install the Dynamo operator which manages inference deployments.",
            ),
        ]

    def get_helm_repos(self) -> list[HelmRepo]:
        return [HelmRepo(name="nvidia", url="https://helm.ngc.nvidia.com/nvidia")]

    def get_helm_charts(self) -> list[HelmChart]:
        return [
            HelmChart(
                name="dynamo-operator",
                chart="nvidia/dynamo-operator",
                namespace=self.default_namespace,
                create_namespace=True,
            )
        ]

    def get_uninstall_resources(self) -> UninstallResources:
        return UninstallResources(
            crds=[self.get_crd_config().crd_name],
            namespaces=[self.default_namespace],
        )

    def supports_gaie(self) -> bool:
        return False

    def generate_http_route(self, config: DynamoDeploymentConfig) -> dict[str, Any]:
        raise NotImplementedError("Dynamo does not support Gateway API inference routing")

    def get_metrics_config(self, config: Any = None) -> MetricsEndpointConfig | None:
        return MetricsEndpointConfig(
            endpoint_path="/metrics",
            port=FRONTEND_HTTP_PORT,
            service_name_pattern="{name}-frontend",
        )

    def get_key_metrics(self) -> list[MetricDefinition]:
        return list(VLLM_KEY_METRICS)

    def check_installation(self, cluster: ClusterProbe) -> InstallationStatus:
        return check_operator_installation(
            cluster,
            self.get_crd_config(),
            display_name="Dynamo",
            operator_namespace=self.default_namespace,
            operator_selectors=["app.kubernetes.io/name=dynamo-operator"],
        )
