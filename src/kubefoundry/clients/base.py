"""Base Kubernetes client and custom resource definitions."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Generator

from kubernetes import client, config
from kubernetes.client import ApiException
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.exceptions import ResourceNotFoundError
from kubernetes.dynamic.resource import Resource

from kubefoundry.config import AuthMode, KubeFoundryConfig, get_config
from kubefoundry.utils.errors import (
    AuthenticationError,
    ClusterError,
    NotFoundError,
    ResourceExistsError,
)
from kubefoundry.utils.retry import with_retry

logger = logging.getLogger(__name__)


class CRDDefinition:
    """Definition of a Custom Resource."""

    def __init__(
        self,
        group: str,
        version: str,
        plural: str,
        kind: str,
    ) -> None:
        self.group = group
        self.version = version
        self.plural = plural
        self.kind = kind

    @property
    def api_version(self) -> str:
        """Get the full API version string."""
        if self.group:
            return f"{self.group}/{self.version}"
        return self.version

    @property
    def crd_name(self) -> str:
        """Name of the CustomResourceDefinition object, e.g. ``workspaces.kaito.sh``."""
        return f"{self.plural}.{self.group}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CRDDefinition):
            return NotImplemented
        return (self.group, self.version, self.plural, self.kind) == (
            other.group,
            other.version,
            other.plural,
            other.kind,
        )

    def __hash__(self) -> int:
        return hash((self.group, self.version, self.plural, self.kind))

    def __repr__(self) -> str:
        return f"CRDDefinition({self.api_version}, {self.kind})"


class K8sClient:
    """Kubernetes client used by the cluster collaborator.

    Supports multiple authentication modes:
    - auto: Try in-cluster first, fall back to kubeconfig
    - kubeconfig: Use kubeconfig file with optional context
    - token: Use explicit API server URL and token

    Reads are retried on transient failures; writes are not.
    """

    def __init__(self, config_obj: KubeFoundryConfig | None = None) -> None:
        self._config = config_obj or get_config()
        self._api_client: client.ApiClient | None = None
        self._dynamic_client: DynamicClient | None = None
        self._core_v1: client.CoreV1Api | None = None
        self._apps_v1: client.AppsV1Api | None = None
        self._crd_cache: dict[str, Resource] = {}

    def connect(self) -> None:
        """Establish connection to Kubernetes API."""
        try:
            self._api_client = self._create_api_client()
            self._dynamic_client = DynamicClient(self._api_client)
            self._core_v1 = client.CoreV1Api(self._api_client)
            self._apps_v1 = client.AppsV1Api(self._api_client)
            logger.info("Connected to Kubernetes API")
        except AuthenticationError:
            raise
        except Exception as e:
            raise AuthenticationError(f"Failed to connect to Kubernetes API: {e}")

    def disconnect(self) -> None:
        """Close connection to Kubernetes API."""
        if self._api_client:
            self._api_client.close()
            self._api_client = None
            self._dynamic_client = None
            self._core_v1 = None
            self._apps_v1 = None
            self._crd_cache.clear()
            logger.info("Disconnected from Kubernetes API")

    @property
    def is_connected(self) -> bool:
        """Check if client is connected."""
        return self._api_client is not None

    def _create_api_client(self) -> client.ApiClient:
        """Create API client based on authentication mode."""
        auth_mode = self._config.auth_mode

        if auth_mode == AuthMode.TOKEN:
            return self._create_token_client()
        elif auth_mode == AuthMode.KUBECONFIG:
            return self._create_kubeconfig_client()
        else:  # AUTO
            return self._create_auto_client()

    def _create_token_client(self) -> client.ApiClient:
        """Create client using explicit token authentication."""
        if not self._config.api_server or not self._config.api_token:
            raise AuthenticationError(
                "api_server and api_token are required for token authentication"
            )

        configuration = client.Configuration()
        configuration.host = self._config.api_server
        configuration.api_key = {"authorization": f"Bearer {self._config.api_token}"}
        configuration.verify_ssl = True

        return client.ApiClient(configuration)

    def _create_kubeconfig_client(self) -> client.ApiClient:
        """Create client using kubeconfig file."""
        kubeconfig_path = self._config.effective_kubeconfig_path
        if not kubeconfig_path.exists():
            raise AuthenticationError(f"Kubeconfig not found: {kubeconfig_path}")

        return config.new_client_from_config(
            config_file=str(kubeconfig_path),
            context=self._config.kubeconfig_context,
        )

    def _create_auto_client(self) -> client.ApiClient:
        """Auto-detect authentication mode."""
        if self._config.running_in_cluster:
            logger.info("Using in-cluster authentication")
            config.load_incluster_config()
            configuration = client.Configuration.get_default_copy()
            return client.ApiClient(configuration)

        kubeconfig_path = self._config.effective_kubeconfig_path
        if kubeconfig_path.exists():
            logger.info(f"Using kubeconfig: {kubeconfig_path}")
            return config.new_client_from_config(
                config_file=str(kubeconfig_path),
                context=self._config.kubeconfig_context,
            )

        raise AuthenticationError(
            "No valid authentication method found. "
            "Not running in-cluster and no kubeconfig available."
        )

    @property
    def dynamic(self) -> DynamicClient:
        """Get the dynamic client."""
        if not self._dynamic_client:
            raise ClusterError("Client not connected. Call connect() first.")
        return self._dynamic_client

    @property
    def core_v1(self) -> client.CoreV1Api:
        """Get the CoreV1 API client."""
        if not self._core_v1:
            raise ClusterError("Client not connected. Call connect() first.")
        return self._core_v1

    @property
    def apps_v1(self) -> client.AppsV1Api:
        """Get the AppsV1 API client."""
        if not self._apps_v1:
            raise ClusterError("Client not connected. Call connect() first.")
        return self._apps_v1

    def to_dict(self, obj: Any) -> dict[str, Any]:
        """Convert a client model or ResourceInstance to its JSON dict form.

        Keys come back camelCased, exactly as the API server returns them.
        """
        if isinstance(obj, dict):
            return obj
        if hasattr(obj, "to_dict") and not hasattr(obj, "openapi_types"):
            return dict(obj.to_dict())
        serializer = self._api_client or client.ApiClient()
        return dict(serializer.sanitize_for_serialization(obj))

    def _read(self, operation_name: str, fn: Any) -> Any:
        return with_retry(
            fn,
            operation_name=operation_name,
            max_retries=self._config.retry_max_attempts,
            initial_delay=self._config.retry_initial_delay,
            max_delay=self._config.retry_max_delay,
        )

    def get_resource(self, crd: CRDDefinition) -> Resource:
        """Get a dynamic resource for a CRD.

        Uses caching to avoid repeated API discovery calls.
        """
        cache_key = f"{crd.api_version}/{crd.plural}"
        if cache_key not in self._crd_cache:
            try:
                self._crd_cache[cache_key] = self.dynamic.resources.get(
                    api_version=crd.api_version,
                    kind=crd.kind,
                )
            except ResourceNotFoundError:
                raise NotFoundError("CustomResourceDefinition", crd.crd_name)
        return self._crd_cache[cache_key]

    def get(
        self,
        crd: CRDDefinition,
        name: str,
        namespace: str | None = None,
    ) -> dict[str, Any]:
        """Get a custom resource by name."""
        resource = self.get_resource(crd)
        try:
            if namespace:
                result = self._read(
                    f"get {crd.kind}",
                    lambda: resource.get(name=name, namespace=namespace),
                )
            else:
                result = self._read(f"get {crd.kind}", lambda: resource.get(name=name))
        except ApiException as e:
            if e.status == 404:
                raise NotFoundError(crd.kind, name, namespace)
            raise ClusterError(f"Failed to get {crd.kind} '{name}': {e.reason}", e.status)
        return self.to_dict(result)

    def list(
        self,
        crd: CRDDefinition,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> list[dict[str, Any]]:
        """List custom resources."""
        resource = self.get_resource(crd)
        kwargs: dict[str, Any] = {}
        if namespace:
            kwargs["namespace"] = namespace
        if label_selector:
            kwargs["label_selector"] = label_selector
        try:
            result = self._read(f"list {crd.kind}", lambda: resource.get(**kwargs))
        except ApiException as e:
            raise ClusterError(f"Failed to list {crd.kind}: {e.reason}", e.status)
        items = list(result.items) if hasattr(result, "items") else [result]
        return [self.to_dict(item) for item in items]

    def create(
        self,
        crd: CRDDefinition,
        body: dict[str, Any],
        namespace: str | None = None,
    ) -> dict[str, Any]:
        """Create a custom resource."""
        resource = self.get_resource(crd)
        try:
            if namespace:
                result = resource.create(body=body, namespace=namespace)
            else:
                result = resource.create(body=body)
        except ApiException as e:
            if e.status == 409:
                name = body.get("metadata", {}).get("name", "unknown")
                raise ResourceExistsError(crd.kind, name, namespace)
            raise ClusterError(f"Failed to create {crd.kind}: {e.reason}", e.status)
        return self.to_dict(result)

    def delete(
        self,
        crd: CRDDefinition,
        name: str,
        namespace: str | None = None,
    ) -> None:
        """Delete a custom resource."""
        resource = self.get_resource(crd)
        try:
            if namespace:
                resource.delete(name=name, namespace=namespace)
            else:
                resource.delete(name=name)
        except ApiException as e:
            if e.status == 404:
                raise NotFoundError(crd.kind, name, namespace)
            raise ClusterError(f"Failed to delete {crd.kind} '{name}': {e.reason}", e.status)

    def crd_exists(self, crd: CRDDefinition) -> bool:
        """Check whether a CustomResourceDefinition is installed."""
        api = client.ApiextensionsV1Api(self._api_client)
        try:
            self._read(
                f"read crd {crd.crd_name}",
                lambda: api.read_custom_resource_definition(name=crd.crd_name),
            )
        except ApiException as e:
            if e.status == 404:
                return False
            raise ClusterError(f"Failed to read CRD '{crd.crd_name}': {e.reason}", e.status)
        return True

    # Pod operations
    def list_pods(
        self,
        namespace: str | None = None,
        label_selector: str | None = None,
        field_selector: str | None = None,
    ) -> list[dict[str, Any]]:
        """List pods in a namespace, or across all namespaces."""
        try:
            if namespace:
                result = self._read(
                    "list pods",
                    lambda: self.core_v1.list_namespaced_pod(
                        namespace=namespace,
                        label_selector=label_selector,
                        field_selector=field_selector,
                    ),
                )
            else:
                result = self._read(
                    "list pods",
                    lambda: self.core_v1.list_pod_for_all_namespaces(
                        label_selector=label_selector,
                        field_selector=field_selector,
                    ),
                )
        except ApiException as e:
            raise ClusterError(f"Failed to list pods: {e.reason}", e.status)
        return [self.to_dict(pod) for pod in result.items]

    # Node operations
    def list_nodes(self, label_selector: str | None = None) -> list[dict[str, Any]]:
        """List cluster nodes."""
        try:
            result = self._read(
                "list nodes",
                lambda: self.core_v1.list_node(label_selector=label_selector),
            )
        except ApiException as e:
            raise ClusterError(f"Failed to list nodes: {e.reason}", e.status)
        return [self.to_dict(node) for node in result.items]

    # ConfigMap operations
    def get_config_map(self, name: str, namespace: str) -> dict[str, Any]:
        """Get a ConfigMap."""
        try:
            result = self._read(
                "get configmap",
                lambda: self.core_v1.read_namespaced_config_map(name=name, namespace=namespace),
            )
        except ApiException as e:
            if e.status == 404:
                raise NotFoundError("ConfigMap", name, namespace)
            raise ClusterError(f"Failed to get configmap '{name}': {e.reason}", e.status)
        return self.to_dict(result)

    # Deployment (apps/v1) operations
    def list_app_deployments(
        self,
        namespace: str,
        label_selector: str | None = None,
    ) -> list[dict[str, Any]]:
        """List apps/v1 Deployments in a namespace."""
        try:
            result = self._read(
                "list deployments",
                lambda: self.apps_v1.list_namespaced_deployment(
                    namespace=namespace,
                    label_selector=label_selector,
                ),
            )
        except ApiException as e:
            raise ClusterError(f"Failed to list deployments: {e.reason}", e.status)
        return [self.to_dict(item) for item in result.items]

    # Service operations
    def create_service(self, body: dict[str, Any], namespace: str) -> dict[str, Any]:
        """Create a Service from a manifest dict."""
        try:
            result = self.core_v1.create_namespaced_service(namespace=namespace, body=body)
        except ApiException as e:
            if e.status == 409:
                name = body.get("metadata", {}).get("name", "unknown")
                raise ResourceExistsError("Service", name, namespace)
            raise ClusterError(f"Failed to create service: {e.reason}", e.status)
        return self.to_dict(result)

    def delete_service(self, name: str, namespace: str) -> None:
        """Delete a Service."""
        try:
            self.core_v1.delete_namespaced_service(name=name, namespace=namespace)
        except ApiException as e:
            if e.status == 404:
                raise NotFoundError("Service", name, namespace)
            raise ClusterError(f"Failed to delete service '{name}': {e.reason}", e.status)


@contextmanager
def get_k8s_client(
    config_obj: KubeFoundryConfig | None = None,
) -> Generator[K8sClient, None, None]:
    """Context manager for K8s client with automatic cleanup."""
    k8s_client = K8sClient(config_obj)
    k8s_client.connect()
    try:
        yield k8s_client
    finally:
        k8s_client.disconnect()
