"""Cluster collaborator for deployment custom resources."""

import logging
from typing import TYPE_CHECKING, Any

from kubefoundry.domains.capacity.inspector import inspect_gpu_capacity
from kubefoundry.domains.capacity.models import ClusterGpuCapacity
from kubefoundry.domains.deployments.models import DeploymentStatus
from kubefoundry.domains.deployments.status import aggregate_status
from kubefoundry.domains.providers.base import PROVIDER_LABEL, Provider
from kubefoundry.domains.providers.crds import ProviderCRDs
from kubefoundry.domains.providers.models import InstallationStatus
from kubefoundry.domains.providers.registry import list_providers
from kubefoundry.utils.errors import KubeFoundryError, NotFoundError, ValidationError

if TYPE_CHECKING:
    from kubefoundry.clients.base import CRDDefinition, K8sClient

logger = logging.getLogger(__name__)

RAY_CLUSTER_LABEL = "ray.io/cluster"

# Kinds a provider can emit besides its primary custom resource
_SECONDARY_CRDS = {
    "kaito": (ProviderCRDs.KAITO_INFERENCE_SET,),
}


class ClusterClient:
    """Reads and writes deployments through the Kubernetes API."""

    def __init__(self, k8s: "K8sClient") -> None:
        self._k8s = k8s

    def _crds(self, provider: Provider) -> list["CRDDefinition"]:
        return [provider.get_crd_config(), *_SECONDARY_CRDS.get(provider.id, ())]

    def _crd_for_manifest(self, provider: Provider, manifest: dict[str, Any]) -> "CRDDefinition":
        for crd in self._crds(provider):
            if manifest.get("kind") == crd.kind and manifest.get("apiVersion") == crd.api_version:
                return crd
        raise ValidationError(
            [f"kind: {manifest.get('kind')} is not a {provider.name} custom resource"]
        )

    # Custom resources

    def list_custom_resources(self, provider: Provider, namespace: str) -> list[dict[str, Any]]:
        """List a provider's custom resources in a namespace.

        A kind whose CRD is not installed contributes nothing.
        """
        items: list[dict[str, Any]] = []
        for crd in self._crds(provider):
            try:
                items.extend(self._k8s.list(crd, namespace=namespace))
            except NotFoundError:
                logger.debug(f"{crd.crd_name} not installed, skipping")
        logger.debug(f"Found {len(items)} {provider.id} resource(s) in '{namespace}'")
        return items

    def get_custom_resource(
        self, provider: Provider, name: str, namespace: str
    ) -> dict[str, Any]:
        """Get a provider's custom resource by name.

        Raises:
            NotFoundError: If no kind of this provider has that name.
        """
        for crd in self._crds(provider):
            try:
                return self._k8s.get(crd, name=name, namespace=namespace)
            except NotFoundError:
                continue
        raise NotFoundError(provider.get_crd_config().kind, name, namespace)

    def create_custom_resource(
        self, provider: Provider, manifest: dict[str, Any]
    ) -> dict[str, Any]:
        """Create a custom resource, labelling it with the provider id."""
        crd = self._crd_for_manifest(provider, manifest)
        metadata = manifest.setdefault("metadata", {})
        labels = metadata.setdefault("labels", {})
        labels[PROVIDER_LABEL] = provider.id
        namespace = metadata.get("namespace")
        logger.info(f"Creating {crd.kind} '{metadata.get('name')}' in '{namespace}'")
        return self._k8s.create(crd, body=manifest, namespace=namespace)

    def delete_custom_resource(self, provider: Provider, name: str, namespace: str) -> None:
        """Delete a provider's custom resource by name."""
        for crd in self._crds(provider):
            try:
                self._k8s.delete(crd, name=name, namespace=namespace)
            except NotFoundError:
                continue
            logger.info(f"Deleted {crd.kind} '{name}' from '{namespace}'")
            return
        raise NotFoundError(provider.get_crd_config().kind, name, namespace)

    # Deployments

    def create_deployment(self, provider: Provider, config: Any) -> dict[str, Any]:
        """Create the manifest and auxiliary objects for a validated config.

        Auxiliary objects are best effort: a failure is logged and the
        custom resource is kept.
        """
        created = self.create_custom_resource(provider, provider.generate_manifest(config))
        auxiliary = provider.generate_auxiliary_manifests(config)
        if getattr(config, "enable_gateway_routing", False) and provider.supports_gaie():
            auxiliary.append(provider.generate_http_route(config))
        for manifest in auxiliary:
            try:
                self._create_auxiliary(manifest)
            except KubeFoundryError as e:
                name = (manifest.get("metadata") or {}).get("name")
                logger.warning(
                    f"Failed to create {manifest.get('kind')} '{name}', "
                    f"deployment may not be accessible: {e}"
                )
        return created

    def _create_auxiliary(self, manifest: dict[str, Any]) -> None:
        metadata = manifest.get("metadata") or {}
        if manifest.get("kind") == "Service":
            self._k8s.create_service(manifest, namespace=metadata.get("namespace"))
            return
        if manifest.get("kind") == ProviderCRDs.HTTP_ROUTE.kind:
            self._k8s.create(
                ProviderCRDs.HTTP_ROUTE, body=manifest, namespace=metadata.get("namespace")
            )
            return
        raise ValidationError([f"kind: unsupported auxiliary kind {manifest.get('kind')}"])

    def delete_deployment(self, provider: Provider, name: str, namespace: str) -> None:
        """Delete a deployment and the vLLM Service some providers add."""
        self.delete_custom_resource(provider, name, namespace)
        try:
            self._k8s.delete_service(f"{name}-vllm", namespace)
            logger.info(f"Deleted service '{name}-vllm' from '{namespace}'")
        except NotFoundError:
            pass

    def find_provider(self, name: str, namespace: str) -> tuple[Provider, dict[str, Any]]:
        """Find which registered provider owns a deployment.

        Raises:
            NotFoundError: If no provider has a resource with that name.
        """
        for provider in list_providers():
            try:
                return provider, self.get_custom_resource(provider, name, namespace)
            except NotFoundError:
                continue
        raise NotFoundError("Deployment", name, namespace)

    def get_deployment_status(
        self, name: str, namespace: str, provider: Provider | None = None
    ) -> DeploymentStatus:
        """Read one deployment with its pods."""
        if provider is None:
            provider, resource = self.find_provider(name, namespace)
        else:
            resource = self.get_custom_resource(provider, name, namespace)
        pods = self.get_deployment_pods(name, namespace)
        return aggregate_status(provider, resource, pods)

    # Pods

    def list_pods(
        self, label_selector: str | None = None, namespace: str | None = None
    ) -> list[dict[str, Any]]:
        return self._k8s.list_pods(namespace=namespace, label_selector=label_selector)

    def get_deployment_pods(self, name: str, namespace: str) -> list[dict[str, Any]]:
        """Find the pods backing a deployment.

        Providers label pods differently, so selectors are tried in order.
        Ray pods carry a generated cluster name that only starts with the
        deployment name.
        """
        selectors = [
            f"app.kubernetes.io/instance={name}",
            f"kaito.sh/workspace={name}",
            f"app={name}",
        ]
        for selector in selectors:
            try:
                pods = self.list_pods(label_selector=selector, namespace=namespace)
            except KubeFoundryError as e:
                logger.debug(f"Pod lookup with '{selector}' failed: {e}")
                continue
            if pods:
                logger.debug(f"Found {len(pods)} pod(s) for '{name}' with '{selector}'")
                return pods

        try:
            ray_pods = self.list_pods(label_selector=RAY_CLUSTER_LABEL, namespace=namespace)
        except KubeFoundryError as e:
            logger.debug(f"Ray pod lookup failed: {e}")
            return []
        return [
            pod
            for pod in ray_pods
            if ((pod.get("metadata") or {}).get("labels") or {})
            .get(RAY_CLUSTER_LABEL, "")
            .startswith(name)
        ]

    # Nodes and capacity

    def list_nodes(self) -> list[dict[str, Any]]:
        return self._k8s.list_nodes()

    def get_cluster_gpu_capacity(self) -> ClusterGpuCapacity:
        """Current GPU capacity from nodes and scheduled GPU pods."""
        nodes = self.list_nodes()
        pods = self._k8s.list_pods(field_selector="status.phase!=Succeeded")
        return inspect_gpu_capacity(nodes, pods)

    # Installation

    def check_installation(self, provider: Provider) -> InstallationStatus:
        return provider.check_installation(self._k8s)

    def get_runtimes_status(self) -> list[dict[str, Any]]:
        """Installation and health of every registered provider."""
        runtimes = []
        for provider in list_providers():
            status = self.check_installation(provider)
            runtimes.append(
                {
                    "id": provider.id,
                    "name": provider.name,
                    "installed": status.installed or bool(status.crd_found),
                    "healthy": status.installed and status.operator_running is not False,
                    "version": status.version,
                    "message": status.message,
                }
            )
        return runtimes
