"""Tests for the Kubernetes client wrapper."""

from unittest.mock import MagicMock, patch

import pytest
from kubernetes.client import ApiException
from kubernetes.dynamic.exceptions import ResourceNotFoundError

from kubefoundry.clients.base import CRDDefinition, K8sClient
from kubefoundry.config import KubeFoundryConfig
from kubefoundry.domains.providers.crds import ProviderCRDs
from kubefoundry.utils.errors import ClusterError, NotFoundError, ResourceExistsError


@pytest.fixture
def k8s() -> K8sClient:
    """A K8sClient wired to mocked API objects, without retry delays."""
    client = K8sClient(KubeFoundryConfig(retry_max_attempts=0))
    client._api_client = MagicMock()
    client._dynamic_client = MagicMock()
    client._core_v1 = MagicMock()
    client._apps_v1 = MagicMock()
    return client


class TestCRDDefinition:
    def test_names(self) -> None:
        crd = ProviderCRDs.KAITO_WORKSPACE

        assert crd.api_version == "kaito.sh/v1beta1"
        assert crd.crd_name == "workspaces.kaito.sh"

    def test_equality(self) -> None:
        copy = CRDDefinition(
            group="ray.io", version="v1", plural="rayservices", kind="RayService"
        )

        assert copy == ProviderCRDs.RAY_SERVICE
        assert copy != ProviderCRDs.KAITO_WORKSPACE
        assert len({copy, ProviderCRDs.RAY_SERVICE}) == 1


class TestCustomResourceOperations:
    def test_get(self, k8s: K8sClient) -> None:
        resource = k8s._dynamic_client.resources.get.return_value
        resource.get.return_value = {"kind": "RayService", "metadata": {"name": "llama"}}

        result = k8s.get(ProviderCRDs.RAY_SERVICE, "llama", "default")

        assert result["metadata"]["name"] == "llama"
        resource.get.assert_called_once_with(name="llama", namespace="default")

    def test_get_not_found(self, k8s: K8sClient) -> None:
        resource = k8s._dynamic_client.resources.get.return_value
        resource.get.side_effect = ApiException(status=404)

        with pytest.raises(NotFoundError):
            k8s.get(ProviderCRDs.RAY_SERVICE, "llama", "default")

    def test_crd_missing(self, k8s: K8sClient) -> None:
        k8s._dynamic_client.resources.get.side_effect = ResourceNotFoundError("no kind")

        with pytest.raises(NotFoundError) as exc_info:
            k8s.list(ProviderCRDs.KAITO_INFERENCE_SET, namespace="default")

        assert exc_info.value.name == "inferencesets.kaito.sh"

    def test_resource_lookup_cached(self, k8s: K8sClient) -> None:
        resource = k8s._dynamic_client.resources.get.return_value
        resource.get.return_value = MagicMock(items=[])

        k8s.list(ProviderCRDs.RAY_SERVICE, namespace="a")
        k8s.list(ProviderCRDs.RAY_SERVICE, namespace="b")

        k8s._dynamic_client.resources.get.assert_called_once()

    def test_create_conflict(self, k8s: K8sClient) -> None:
        resource = k8s._dynamic_client.resources.get.return_value
        resource.create.side_effect = ApiException(status=409)

        with pytest.raises(ResourceExistsError):
            k8s.create(
                ProviderCRDs.RAY_SERVICE, body={"metadata": {"name": "llama"}}, namespace="a"
            )

    def test_writes_not_retried(self) -> None:
        client = K8sClient(KubeFoundryConfig(retry_max_attempts=3, retry_initial_delay=0))
        client._dynamic_client = MagicMock()
        resource = client._dynamic_client.resources.get.return_value
        resource.delete.side_effect = ApiException(status=503)

        with pytest.raises(ClusterError):
            client.delete(ProviderCRDs.RAY_SERVICE, "llama", "default")

        resource.delete.assert_called_once()


class TestCoreOperations:
    def test_crd_exists(self, k8s: K8sClient) -> None:
        with patch("kubefoundry.clients.base.client.ApiextensionsV1Api") as mock_api_class:
            api = mock_api_class.return_value
            api.read_custom_resource_definition.side_effect = ApiException(status=404)

            assert k8s.crd_exists(ProviderCRDs.KAITO_WORKSPACE) is False
            api.read_custom_resource_definition.assert_called_once_with(
                name="workspaces.kaito.sh"
            )

    def test_list_pods_all_namespaces(self, k8s: K8sClient) -> None:
        k8s._core_v1.list_pod_for_all_namespaces.return_value = MagicMock(
            items=[{"metadata": {"name": "p"}}]
        )

        pods = k8s.list_pods(field_selector="status.phase!=Succeeded")

        assert pods == [{"metadata": {"name": "p"}}]
        k8s._core_v1.list_pod_for_all_namespaces.assert_called_once_with(
            label_selector=None, field_selector="status.phase!=Succeeded"
        )

    def test_config_map_not_found(self, k8s: K8sClient) -> None:
        k8s._core_v1.read_namespaced_config_map.side_effect = ApiException(status=404)

        with pytest.raises(NotFoundError):
            k8s.get_config_map("cluster-autoscaler-status", "kube-system")

    def test_delete_service_error(self, k8s: K8sClient) -> None:
        k8s._core_v1.delete_namespaced_service.side_effect = ApiException(status=403)

        with pytest.raises(ClusterError) as exc_info:
            k8s.delete_service("phi-vllm", "default")

        assert exc_info.value.status == 403

    def test_not_connected(self) -> None:
        with pytest.raises(ClusterError):
            K8sClient(KubeFoundryConfig()).list_nodes()
