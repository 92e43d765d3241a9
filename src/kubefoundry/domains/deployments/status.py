"""Deployment status aggregation.

Status is never stored: every read folds the provider's view of its custom
resource together with the live pod list into one normalized phase.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from kubefoundry.domains.deployments.models import (
    DeploymentPhase,
    DeploymentStatus,
    PodPhase,
    PodStatus,
)
from kubefoundry.utils.response import PaginatedResponse, ResponseBuilder, Verbosity, paginate

if TYPE_CHECKING:
    from kubefoundry.domains.deployments.client import ClusterClient
    from kubefoundry.domains.providers.base import Provider

logger = logging.getLogger(__name__)

# Waiting reasons a restart will not fix
FATAL_WAITING_REASONS = frozenset(
    {
        "ErrImagePull",
        "ImagePullBackOff",
        "InvalidImageName",
        "CreateContainerConfigError",
    }
)
CRASH_LOOP_REASON = "CrashLoopBackOff"
CRASH_LOOP_RESTART_THRESHOLD = 5


def _container_statuses(pod: dict[str, Any]) -> list[dict[str, Any]]:
    status = pod.get("status") or {}
    return [*(status.get("initContainerStatuses") or []), *(status.get("containerStatuses") or [])]


def _state_reason(container: dict[str, Any]) -> str | None:
    state = container.get("state") or {}
    for key in ("waiting", "terminated"):
        reason = (state.get(key) or {}).get("reason")
        if reason:
            return reason
    return None


def pod_status(pod: dict[str, Any]) -> PodStatus:
    """Summarize a raw pod."""
    metadata = pod.get("metadata") or {}
    status = pod.get("status") or {}
    containers = status.get("containerStatuses") or []

    try:
        phase = PodPhase(status.get("phase") or "Unknown")
    except ValueError:
        phase = PodPhase.UNKNOWN

    reason = next(
        (r for r in (_state_reason(c) for c in _container_statuses(pod)) if r),
        status.get("reason"),
    )
    return PodStatus(
        name=metadata.get("name") or "unknown",
        phase=phase,
        ready=bool(containers) and all(c.get("ready") for c in containers),
        restarts=sum(c.get("restartCount") or 0 for c in containers),
        node=(pod.get("spec") or {}).get("nodeName"),
        reason=reason,
    )


def pod_failure_reason(pod: dict[str, Any]) -> str | None:
    """Reason a pod cannot recover by restarting, or None if it still might."""
    if (pod.get("status") or {}).get("phase") == PodPhase.FAILED.value:
        return (pod.get("status") or {}).get("reason") or "PodFailed"

    for container in _container_statuses(pod):
        waiting = (container.get("state") or {}).get("waiting") or {}
        reason = waiting.get("reason")
        if reason in FATAL_WAITING_REASONS:
            return reason
        if (
            reason == CRASH_LOOP_REASON
            and (container.get("restartCount") or 0) >= CRASH_LOOP_RESTART_THRESHOLD
        ):
            return reason
    return None


def derive_phase(
    resource: dict[str, Any],
    pods: list[dict[str, Any]] | None,
    reported: DeploymentStatus,
) -> DeploymentPhase:
    """Compute the lifecycle phase of a deployment.

    Rules, first match wins:

    1. A deletion timestamp on the resource means Terminating.
    2. Any pod in an unrecoverable failure means Failed.
    3. Desired replicas all ready means Running. A controller that reports
       Running also counts, unless a backing pod is not ready yet.
    4. A controller-reported failure means Failed.
    5. A resource the controller has written status to is Deploying.
    6. Anything else is Pending.

    Args:
        resource: The raw custom resource.
        pods: Raw pods backing the deployment, or None when they were not
            looked up. Without pods the controller's report is trusted.
        reported: What the provider parsed from the resource.
    """
    if (resource.get("metadata") or {}).get("deletionTimestamp"):
        return DeploymentPhase.TERMINATING

    for pod in pods or []:
        reason = pod_failure_reason(pod)
        if reason:
            name = (pod.get("metadata") or {}).get("name")
            logger.debug(f"Pod '{name}' of '{reported.name}' failed: {reason}")
            return DeploymentPhase.FAILED

    desired = reported.replicas.desired
    if desired > 0 and reported.replicas.ready == desired:
        return DeploymentPhase.RUNNING
    if reported.phase == DeploymentPhase.RUNNING and all(
        pod_status(pod).ready for pod in pods or []
    ):
        return DeploymentPhase.RUNNING

    if reported.phase == DeploymentPhase.FAILED:
        return DeploymentPhase.FAILED
    if resource.get("status"):
        return DeploymentPhase.DEPLOYING
    return DeploymentPhase.PENDING


def aggregate_status(
    provider: Provider,
    resource: dict[str, Any],
    pods: list[dict[str, Any]] | None = None,
) -> DeploymentStatus:
    """Merge the provider's parsed status with the pod list and derived phase."""
    reported = provider.parse_status(resource)
    return reported.model_copy(
        update={
            "phase": derive_phase(resource, pods, reported),
            "pods": [pod_status(pod) for pod in pods or []],
        }
    )


async def _list_namespace(
    cluster: ClusterClient,
    provider: Provider,
    namespace: str,
) -> list[DeploymentStatus]:
    try:
        resources = await asyncio.to_thread(cluster.list_custom_resources, provider, namespace)
    except Exception as e:
        logger.warning(
            f"Failed to list {provider.id} deployments in namespace '{namespace}': {e}"
        )
        return []

    statuses = []
    for resource in resources:
        try:
            statuses.append(aggregate_status(provider, resource))
        except Exception as e:
            name = (resource.get("metadata") or {}).get("name")
            logger.warning(f"Skipping unparseable {provider.id} resource '{name}': {e}")
    return statuses


async def list_deployments(
    cluster: ClusterClient,
    namespaces: list[str] | None = None,
    offset: int = 0,
    limit: int | None = None,
    providers: list[Provider] | None = None,
    verbosity: Verbosity = Verbosity.STANDARD,
) -> dict[str, Any]:
    """List deployments across providers and namespaces.

    One query per provider and namespace runs concurrently. A query that
    fails contributes no items and a logged warning; it never aborts the
    listing. The union is sorted newest first before pagination.

    Args:
        cluster: Cluster collaborator.
        namespaces: Namespaces to search. Defaults to each provider's
            default namespace.
        offset: Pagination offset.
        limit: Maximum items to return (None for all).
        providers: Providers to query. Defaults to every registered one.
        verbosity: Detail level of each item.

    Returns:
        Paginated response with deployment items.
    """
    if providers is None:
        from kubefoundry.domains.providers.registry import list_providers

        providers = list_providers()

    queries = []
    for provider in providers:
        for namespace in namespaces or [provider.default_namespace]:
            queries.append(_list_namespace(cluster, provider, namespace))

    results = await asyncio.gather(*queries)
    statuses = [status for result in results for status in result]
    statuses.sort(key=lambda s: s.created_at, reverse=True)

    page, total = paginate(statuses, offset, limit)
    return PaginatedResponse.build(
        [ResponseBuilder.deployment_item(s, verbosity) for s in page],
        total,
        offset,
        limit,
    )
