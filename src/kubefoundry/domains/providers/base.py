"""Provider contract and helpers shared by the built-in providers.

Each provider is a standalone class satisfying :class:`Provider`; there is
no common base class. The helpers here cover the parts whose behavior must
be identical across providers: error formatting, managed-by labels,
condition parsing and the operator installation probe.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from kubefoundry.domains.deployments.models import Condition, DeploymentStatus
from kubefoundry.domains.providers.models import (
    HelmChart,
    HelmRepo,
    InstallationStatus,
    InstallationStep,
    MetricDefinition,
    MetricsEndpointConfig,
    MetricType,
    ProviderInfo,
    UninstallResources,
    ValidationResult,
)
from kubefoundry.utils.errors import KubeFoundryError

if TYPE_CHECKING:
    from kubefoundry.clients.base import CRDDefinition

logger = logging.getLogger(__name__)

APP_NAME = "kubefoundry"
PROVIDER_LABEL = "kubefoundry.io/provider"


@runtime_checkable
class Provider(Protocol):
    """Capabilities every inference provider implements."""

    id: str
    name: str
    description: str
    default_namespace: str

    def validate_config(self, raw: Any) -> ValidationResult: ...

    def generate_manifest(self, config: Any) -> dict[str, Any]: ...

    def generate_auxiliary_manifests(self, config: Any) -> list[dict[str, Any]]: ...

    def parse_status(self, raw: dict[str, Any]) -> DeploymentStatus: ...

    def get_crd_config(self) -> CRDDefinition: ...

    def get_installation_steps(self) -> list[InstallationStep]: ...

    def get_helm_repos(self) -> list[HelmRepo]: ...

    def get_helm_charts(self) -> list[HelmChart]: ...

    def get_uninstall_resources(self) -> UninstallResources: ...

    def supports_gaie(self) -> bool: ...

    def generate_http_route(self, config: Any) -> dict[str, Any]: ...

    def get_metrics_config(self, config: Any = None) -> MetricsEndpointConfig | None: ...

    def get_key_metrics(self) -> list[MetricDefinition]: ...

    def check_installation(self, cluster: Any) -> InstallationStatus: ...


class ClusterProbe(Protocol):
    """The slice of the Kubernetes client used by installation checks."""

    def crd_exists(self, crd: CRDDefinition) -> bool: ...

    def list_pods(
        self,
        namespace: str | None = None,
        label_selector: str | None = None,
        field_selector: str | None = None,
    ) -> list[dict[str, Any]]: ...


def provider_info(provider: Provider) -> ProviderInfo:
    """Listing metadata for a provider."""
    return ProviderInfo(
        id=provider.id,
        name=provider.name,
        description=provider.description,
        default_namespace=provider.default_namespace,
    )


def managed_labels(name: str) -> dict[str, str]:
    """Labels stamped on every object KubeFoundry creates."""
    return {
        "app.kubernetes.io/name": APP_NAME,
        "app.kubernetes.io/instance": name,
        "app.kubernetes.io/managed-by": APP_NAME,
    }


def format_validation_errors(exc: PydanticValidationError) -> list[str]:
    """Render pydantic errors as ``"<dotted.path>: <message>"`` strings."""
    errors = []
    for error in exc.errors():
        path = ".".join(str(part) for part in error["loc"])
        errors.append(f"{path}: {error['msg']}" if path else error["msg"])
    return errors


def validate_model(
    model_cls: type[BaseModel],
    raw: Any,
    provider_id: str,
) -> tuple[Any, list[str]]:
    """Parse raw input into ``model_cls`` and collect every problem found.

    Returns:
        Tuple of (parsed config or None, errors). Structural problems come
        from pydantic, cross-field problems from ``semantic_errors()``.
    """
    if isinstance(raw, dict) and "provider" not in raw:
        raw = {**raw, "provider": provider_id}
    try:
        config = model_cls.model_validate(raw)
    except PydanticValidationError as e:
        return None, format_validation_errors(e)
    return config, config.semantic_errors()


def validation_result(provider_id: str, config: Any, errors: list[str]) -> ValidationResult:
    """Build the ValidationResult, logging rejected configurations."""
    if errors:
        logger.warning(f"{provider_id} config validation failed: {'; '.join(errors)}")
        return ValidationResult(valid=False, errors=errors)
    logger.debug(f"{provider_id} config '{config.name}' validated successfully")
    return ValidationResult(valid=True, errors=[], data=config)


def parse_conditions(status: dict[str, Any]) -> list[Condition]:
    """Normalize controller conditions."""
    return [
        Condition(
            type=c.get("type") or "",
            status=c.get("status") or "Unknown",
            reason=c.get("reason"),
            message=c.get("message"),
            last_transition_time=c.get("lastTransitionTime"),
        )
        for c in status.get("conditions") or []
    ]


def condition_is_true(status: dict[str, Any], condition_type: str) -> bool:
    """Whether a named condition reports status True."""
    return any(
        c.get("type") == condition_type and c.get("status") == "True"
        for c in status.get("conditions") or []
    )


def has_running_pod(pods: list[dict[str, Any]]) -> bool:
    return any((pod.get("status") or {}).get("phase") == "Running" for pod in pods)


def check_operator_installation(
    cluster: ClusterProbe,
    crd: CRDDefinition,
    display_name: str,
    operator_namespace: str,
    operator_selectors: list[str],
    pod_name_hints: tuple[str, ...] = (),
) -> InstallationStatus:
    """Probe for a provider's CRD and a running operator pod.

    Args:
        cluster: Kubernetes client exposing ``crd_exists`` and ``list_pods``.
        crd: The provider's primary custom resource.
        display_name: Name used in status messages.
        operator_namespace: Namespace the operator runs in.
        operator_selectors: Label selectors tried in order.
        pod_name_hints: Name fragments matched against every pod in the
            operator namespace when no selector finds a running pod.
    """
    try:
        crd_found = cluster.crd_exists(crd)

        operator_running = False
        for selector in operator_selectors:
            try:
                pods = cluster.list_pods(namespace=operator_namespace, label_selector=selector)
            except KubeFoundryError as e:
                logger.debug(f"Operator pod lookup failed for '{selector}': {e}")
                continue
            if has_running_pod(pods):
                operator_running = True
                break

        if not operator_running and pod_name_hints:
            pods = cluster.list_pods(namespace=operator_namespace)
            operator_running = has_running_pod(
                [
                    pod
                    for pod in pods
                    if any(
                        hint in ((pod.get("metadata") or {}).get("name") or "")
                        for hint in pod_name_hints
                    )
                ]
            )
    except KubeFoundryError as e:
        logger.error(f"Error checking {display_name} installation: {e}")
        return InstallationStatus(
            installed=False,
            message=f"Error checking installation: {e}",
        )

    installed = crd_found and operator_running
    if installed:
        message = f"{display_name} is installed and running"
    elif not crd_found:
        message = f"{display_name} CRD not found. Please install the {display_name} operator."
    else:
        message = f"{display_name} operator is not running"

    logger.info(
        f"{display_name} installation check: installed={installed}, "
        f"crd_found={crd_found}, operator_running={operator_running}"
    )
    return InstallationStatus(
        installed=installed,
        crd_found=crd_found,
        operator_running=operator_running,
        message=message,
    )


VLLM_KEY_METRICS = [
    MetricDefinition(
        name="vllm:num_requests_running",
        display_name="Running Requests",
        description="Number of requests currently running on GPU",
        unit="requests",
        type=MetricType.GAUGE,
        category="queue",
    ),
    MetricDefinition(
        name="vllm:num_requests_waiting",
        display_name="Waiting Requests",
        description="Number of requests waiting to be processed",
        unit="requests",
        type=MetricType.GAUGE,
        category="queue",
    ),
    MetricDefinition(
        name="vllm:gpu_cache_usage_perc",
        display_name="GPU KV Cache Usage",
        description="GPU KV cache usage",
        unit="%",
        type=MetricType.GAUGE,
        category="cache",
    ),
    MetricDefinition(
        name="vllm:prompt_tokens_total",
        display_name="Prompt Tokens",
        description="Total prefill tokens processed",
        unit="tokens/s",
        type=MetricType.COUNTER,
        category="throughput",
    ),
    MetricDefinition(
        name="vllm:generation_tokens_total",
        display_name="Generation Tokens",
        description="Total generation tokens produced",
        unit="tokens/s",
        type=MetricType.COUNTER,
        category="throughput",
    ),
    MetricDefinition(
        name="vllm:time_to_first_token_seconds",
        display_name="Time to First Token",
        description="Histogram of time to first token",
        unit="s",
        type=MetricType.HISTOGRAM,
        category="latency",
    ),
    MetricDefinition(
        name="vllm:e2e_request_latency_seconds",
        display_name="E2E Request Latency",
        description="Histogram of end-to-end request latency",
        unit="s",
        type=MetricType.HISTOGRAM,
        category="latency",
    ),
]
