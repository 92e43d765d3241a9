"""Tests for the KubeRay provider."""

from typing import Any
from unittest.mock import MagicMock

import pytest
import yaml

from kubefoundry.domains.deployments.models import DeploymentPhase
from kubefoundry.domains.providers.kuberay import KubeRayProvider
from kubefoundry.domains.providers.models import Engine, KubeRayDeploymentConfig


@pytest.fixture
def provider() -> KubeRayProvider:
    return KubeRayProvider()


@pytest.fixture
def ray_request() -> dict[str, Any]:
    return {
        "name": "llama",
        "namespace": "kuberay-system",
        "modelId": "meta-llama/Llama-3.2-1B-Instruct",
        "hfTokenSecret": "hf-token",
    }


class TestKubeRayValidateConfig:
    """Test KubeRay request validation."""

    def test_engine_defaults_to_vllm(
        self, provider: KubeRayProvider, ray_request: dict[str, Any]
    ) -> None:
        result = provider.validate_config(ray_request)

        assert result.valid is True
        assert isinstance(result.data, KubeRayDeploymentConfig)
        assert result.data.engine == Engine.VLLM
        assert result.data.min_replicas == 1
        assert result.data.max_replicas == 2

    def test_other_engines_rejected(
        self, provider: KubeRayProvider, ray_request: dict[str, Any]
    ) -> None:
        ray_request["engine"] = "sglang"

        result = provider.validate_config(ray_request)

        assert result.valid is False
        assert "engine: KubeRay only supports the vllm engine, got 'sglang'" in result.errors

    def test_disaggregated_rejected(
        self, provider: KubeRayProvider, ray_request: dict[str, Any]
    ) -> None:
        ray_request["mode"] = "disaggregated"

        result = provider.validate_config(ray_request)

        assert result.valid is False
        assert "mode: KubeRay only supports aggregated mode" in result.errors

    def test_replica_bounds(self, provider: KubeRayProvider, ray_request: dict[str, Any]) -> None:
        ray_request.update({"minReplicas": 3, "maxReplicas": 2})

        result = provider.validate_config(ray_request)

        assert result.valid is False
        assert "minReplicas: must not exceed maxReplicas" in result.errors


class TestKubeRayGenerateManifest:
    """Test RayService generation."""

    def _manifest(self, provider: KubeRayProvider, raw: dict[str, Any]) -> dict[str, Any]:
        result = provider.validate_config(raw)
        assert result.valid, result.errors
        return provider.generate_manifest(result.data)

    def test_ray_service(self, provider: KubeRayProvider, ray_request: dict[str, Any]) -> None:
        """The RayService carries serve config and a GPU worker group."""
        manifest = self._manifest(provider, ray_request)

        assert manifest["apiVersion"] == "ray.io/v1"
        assert manifest["kind"] == "RayService"
        assert manifest["metadata"]["labels"]["app.kubernetes.io/instance"] == "llama"

        cluster = manifest["spec"]["rayClusterConfig"]
        assert cluster["headGroupSpec"]["rayStartParams"] == {"num-gpus": "0"}
        worker = cluster["workerGroupSpecs"][0]
        assert worker["groupName"] == "gpu-group"
        assert worker["replicas"] == 1
        container = worker["template"]["spec"]["containers"][0]
        assert container["resources"]["limits"]["nvidia.com/gpu"] == "1"
        assert container["envFrom"] == [{"secretRef": {"name": "hf-token"}}]

    def test_serve_config(self, provider: KubeRayProvider, ray_request: dict[str, Any]) -> None:
        """serveConfigV2 is YAML for a Ray Serve LLM application."""
        ray_request.update(
            {"contextLength": 4096, "acceleratorType": "A100", "servedModelName": "llama-chat"}
        )

        manifest = self._manifest(provider, ray_request)
        serve = yaml.safe_load(manifest["spec"]["serveConfigV2"])

        app = serve["applications"][0]
        assert app["import_path"] == "ray.serve.llm:build_openai_app"
        llm = app["args"]["llm_configs"][0]
        assert llm["model_loading_config"] == {
            "model_id": "llama-chat",
            "model_source": "meta-llama/Llama-3.2-1B-Instruct",
            "accelerator_type": "A100",
        }
        assert llm["engine_kwargs"]["max_model_len"] == 4096
        assert llm["deployment_config"]["autoscaling_config"] == {
            "min_replicas": 1,
            "max_replicas": 2,
        }

    def test_manifest_is_deterministic(
        self, provider: KubeRayProvider, ray_request: dict[str, Any]
    ) -> None:
        """The same config always renders the same RayService."""
        ray_request.update({"contextLength": 4096, "acceleratorType": "A100"})
        result = provider.validate_config(ray_request)
        assert result.valid, result.errors

        first = provider.generate_manifest(result.data)
        second = provider.generate_manifest(result.data)

        assert first == second
        assert first["spec"]["serveConfigV2"] == second["spec"]["serveConfigV2"]

    def test_default_max_model_len(
        self, provider: KubeRayProvider, ray_request: dict[str, Any]
    ) -> None:
        serve = yaml.safe_load(self._manifest(provider, ray_request)["spec"]["serveConfigV2"])
        engine_kwargs = serve["applications"][0]["args"]["llm_configs"][0]["engine_kwargs"]
        assert engine_kwargs["max_model_len"] == 16384


class TestKubeRayParseStatus:
    """Test RayService status parsing."""

    def test_running_service(self, provider: KubeRayProvider, ray_request: dict[str, Any]) -> None:
        """Model id and readiness are read back from a generated RayService."""
        config = provider.validate_config(ray_request).data
        raw = provider.generate_manifest(config)
        raw["status"] = {
            "serviceStatus": "Running",
            "activeServiceStatus": {
                "rayClusterStatus": {"desiredWorkerReplicas": 1, "availableWorkerReplicas": 1}
            },
        }

        status = provider.parse_status(raw)

        assert status.provider == "kuberay"
        assert status.phase == DeploymentPhase.RUNNING
        assert status.model_id == "meta-llama/Llama-3.2-1B-Instruct"
        assert status.served_model_name == "llama"
        assert status.engine == "vllm"
        assert status.replicas.desired == 1
        assert status.replicas.ready == 1
        assert status.frontend_service == "llama-serve-svc"

    def test_model_read_from_structured_serve_config(self, provider: KubeRayProvider) -> None:
        """Only the LLM's model_loading_config counts, not look-alike keys elsewhere."""
        serve_config = yaml.safe_dump(
            {
                "applications": [
                    {
                        "name": "llm",
                        "runtime_env": {"env_vars": {"model_source": "not/this-one"}},
                        "args": {
                            "llm_configs": [
                                {
                                    "model_loading_config": {
                                        "model_id": "qwen-chat",
                                        "model_source": "Qwen/Qwen3-0.6B",
                                    }
                                }
                            ]
                        },
                    }
                ]
            }
        )
        raw = {"metadata": {"name": "qwen"}, "spec": {"serveConfigV2": serve_config}}

        status = provider.parse_status(raw)

        assert status.model_id == "Qwen/Qwen3-0.6B"
        assert status.served_model_name == "qwen-chat"

    @pytest.mark.parametrize("serve_config", ["applications: [unclosed", "just text", None])
    def test_unreadable_serve_config(
        self, provider: KubeRayProvider, serve_config: str | None
    ) -> None:
        raw = {"metadata": {"name": "qwen"}, "spec": {"serveConfigV2": serve_config}}

        status = provider.parse_status(raw)

        assert status.model_id == ""
        assert status.served_model_name is None

    @pytest.mark.parametrize(
        "service_status,expected",
        [
            ("Running", DeploymentPhase.RUNNING),
            ("Unhealthy", DeploymentPhase.FAILED),
            ("WaitForServeDeploymentReady", DeploymentPhase.DEPLOYING),
            (None, DeploymentPhase.PENDING),
        ],
    )
    def test_phase_mapping(
        self, provider: KubeRayProvider, service_status: str | None, expected: DeploymentPhase
    ) -> None:
        raw = {"metadata": {"name": "llama"}, "status": {"serviceStatus": service_status}}
        assert provider.parse_status(raw).phase == expected


class TestKubeRayMetadata:
    """Test installation, uninstall and metrics metadata."""

    def test_helm_chart(self, provider: KubeRayProvider) -> None:
        chart = provider.get_helm_charts()[0]
        assert chart.chart == "kuberay/kuberay-operator"
        assert chart.version == "1.5.1"
        assert chart.namespace == "default"

    def test_uninstall_keeps_default_namespace(self, provider: KubeRayProvider) -> None:
        resources = provider.get_uninstall_resources()
        assert resources.crds == ["rayservices.ray.io", "rayclusters.ray.io", "rayjobs.ray.io"]
        assert resources.namespaces == []

    def test_metrics_config(self, provider: KubeRayProvider) -> None:
        endpoint = provider.get_metrics_config()
        assert endpoint.port == 8080
        assert endpoint.service_name_pattern == "{name}-head-svc"
        assert provider.get_key_metrics()[0].name == "ray_serve_num_ongoing_http_requests"

    def test_check_installation_tries_each_selector(self, provider: KubeRayProvider) -> None:
        """A legacy ``app=`` label still counts as a running operator."""
        cluster = MagicMock()
        cluster.crd_exists.return_value = True
        cluster.list_pods.side_effect = [[], [{"status": {"phase": "Running"}}]]

        status = provider.check_installation(cluster)

        assert status.installed is True
        assert cluster.list_pods.call_count == 2
        assert cluster.list_pods.call_args.kwargs["label_selector"] == "app=kuberay-operator"
