"""Cluster autoscaler detection.

Classifies node autoscaling from node labels, the cluster-autoscaler
status ConfigMap and, as a last resort, the cluster-autoscaler Deployment.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

import yaml

from kubefoundry.domains.autoscaler.models import (
    AutoscalerDetectionResult,
    AutoscalerType,
    NodeGroupStatus,
)
from kubefoundry.utils.errors import ClusterError, KubeFoundryError, NotFoundError

if TYPE_CHECKING:
    from kubefoundry.clients.base import K8sClient

logger = logging.getLogger(__name__)

AKS_CLUSTER_LABEL = "kubernetes.azure.com/cluster"
AKS_PROVIDER_PREFIX = "azure://"
AUTOSCALER_ENABLED_LABEL = "cluster-autoscaler.kubernetes.io/enabled"
AKS_POOL_LABELS = ("agentpool", "kubernetes.azure.com/agentpool")

STATUS_CONFIG_MAP = "cluster-autoscaler-status"
AUTOSCALER_NAME = "cluster-autoscaler"
AUTOSCALER_NAMESPACE = "kube-system"
STALE_AFTER = timedelta(minutes=5)

# cluster-autoscaler writes Go time strings, e.g. "2024-05-01 10:00:00.123456789 +0000 UTC"
_TIME_PATTERN = re.compile(
    r"^(\d{4}-\d{2}-\d{2})[ T](\d{2}:\d{2}:\d{2})(?:\.(\d+))?\s*(Z|[+-]\d{2}:?\d{2})?"
)


def is_aks_cluster(nodes: list[dict[str, Any]]) -> bool:
    """Whether the first node carries AKS markers."""
    if not nodes:
        return False
    node = nodes[0]
    labels = (node.get("metadata") or {}).get("labels") or {}
    provider_id = (node.get("spec") or {}).get("providerID") or ""
    return AKS_CLUSTER_LABEL in labels or provider_id.startswith(AKS_PROVIDER_PREFIX)


def aks_autoscaling_pools(nodes: list[dict[str, Any]]) -> list[str]:
    """Names of AKS node pools whose nodes are marked autoscaler-enabled."""
    pools: list[str] = []
    for node in nodes:
        labels = (node.get("metadata") or {}).get("labels") or {}
        if labels.get(AUTOSCALER_ENABLED_LABEL) != "true":
            continue
        pool = next((labels[key] for key in AKS_POOL_LABELS if labels.get(key)), None)
        if pool and pool not in pools:
            pools.append(pool)
    return pools


def parse_status_time(value: Any) -> datetime | None:
    """Parse the ``time`` field of the autoscaler status into an aware datetime."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str):
        return None

    match = _TIME_PATTERN.match(value.strip())
    if not match:
        return None
    date, clock, fraction, offset = match.groups()
    micros = (fraction or "0")[:6].ljust(6, "0")
    if not offset or offset == "Z":
        offset = "+00:00"
    elif ":" not in offset:
        offset = f"{offset[:3]}:{offset[3:]}"
    return datetime.fromisoformat(f"{date}T{clock}.{micros}{offset}")


def parse_autoscaler_status(config_map: dict[str, Any]) -> dict[str, Any] | None:
    """Extract node groups and last update time from the status ConfigMap.

    Returns:
        Dict with ``node_groups``, ``last_update`` and ``health``, or None
        when the status payload is not valid YAML.
    """
    raw = (config_map.get("data") or {}).get("status") or "{}"
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        logger.warning(f"Failed to parse {STATUS_CONFIG_MAP} ConfigMap: {e}")
        return None
    if not isinstance(parsed, dict):
        parsed = {}

    node_groups = []
    for group in parsed.get("nodeGroups") or []:
        health = group.get("health") or {}
        registered = ((health.get("nodeCounts") or {}).get("registered") or {}).get("total")
        node_groups.append(
            NodeGroupStatus(
                name=str(group.get("name") or "unknown"),
                min_size=health.get("minSize") or 0,
                max_size=health.get("maxSize") or 0,
                current_size=health.get("cloudProviderTarget") or registered or 0,
            )
        )

    cluster_wide = (parsed.get("clusterWide") or {}).get("health") or {}
    return {
        "node_groups": node_groups,
        "last_update": parse_status_time(parsed.get("time")),
        "health": cluster_wide.get("status") or parsed.get("autoscalerStatus") or "unknown",
    }


def detect_autoscaler(
    nodes: list[dict[str, Any]],
    status_config_map: dict[str, Any] | None = None,
    autoscaler_deployment: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> AutoscalerDetectionResult:
    """Classify the cluster's node autoscaling.

    Args:
        nodes: Cluster nodes as camelCase dicts.
        status_config_map: The ``cluster-autoscaler-status`` ConfigMap, if present.
        autoscaler_deployment: The cluster-autoscaler Deployment, if present.
        now: Reference time for staleness, defaults to the current UTC time.

    Returns:
        Detection result. A self-hosted autoscaler whose status is older
        than five minutes is reported unhealthy.
    """
    aks = is_aks_cluster(nodes)
    if aks:
        pools = aks_autoscaling_pools(nodes)
        if pools:
            return AutoscalerDetectionResult(
                type=AutoscalerType.AKS_MANAGED,
                detected=True,
                healthy=True,
                message=f"AKS managed autoscaler detected on {len(pools)} node pool(s)",
                node_group_count=len(pools),
                node_groups=[NodeGroupStatus(name=pool) for pool in pools],
            )

    status = parse_autoscaler_status(status_config_map) if status_config_map else None
    if status is not None:
        now = now or datetime.now(timezone.utc)
        last_update = status["last_update"]
        healthy = last_update is None or now - last_update <= STALE_AFTER
        count = len(status["node_groups"])
        if not healthy:
            message = "Cluster Autoscaler detected but status is stale or unhealthy"
        elif count:
            message = f"Cluster Autoscaler running on {count} node group(s)"
        else:
            message = "Cluster Autoscaler running"
        return AutoscalerDetectionResult(
            type=AutoscalerType.CLUSTER_AUTOSCALER,
            detected=True,
            healthy=healthy,
            message=message,
            node_group_count=count,
            node_groups=status["node_groups"],
            last_activity=last_update.isoformat() if last_update else None,
        )

    if autoscaler_deployment is not None:
        deployment_status = autoscaler_deployment.get("status") or {}
        replicas = deployment_status.get("replicas") or 0
        ready = deployment_status.get("readyReplicas") or 0
        healthy = replicas > 0 and ready == replicas
        return AutoscalerDetectionResult(
            type=AutoscalerType.CLUSTER_AUTOSCALER,
            detected=True,
            healthy=healthy,
            message=(
                "Cluster Autoscaler running"
                if healthy
                else "Cluster Autoscaler detected but status is stale or unhealthy"
            ),
            node_group_count=0,
        )

    if aks:
        message = (
            "No autoscaler detected. Enable AKS node pool autoscaling to "
            "automatically scale your cluster."
        )
    else:
        message = (
            "No autoscaler detected. Install Kubernetes Cluster Autoscaler to "
            "automatically scale your cluster."
        )
    return AutoscalerDetectionResult(type=AutoscalerType.NONE, message=message)


class AutoscalerClient:
    """Gathers autoscaler evidence from the cluster."""

    def __init__(self, k8s: K8sClient) -> None:
        self._k8s = k8s

    def _status_config_map(self) -> dict[str, Any] | None:
        try:
            return self._k8s.get_config_map(STATUS_CONFIG_MAP, AUTOSCALER_NAMESPACE)
        except NotFoundError:
            return None
        except ClusterError as e:
            if e.status != 403:
                raise
            logger.debug(f"No permission to read {STATUS_CONFIG_MAP}")
            return None

    def _autoscaler_deployment(self) -> dict[str, Any] | None:
        try:
            deployments = self._k8s.list_app_deployments(
                AUTOSCALER_NAMESPACE, label_selector=f"app={AUTOSCALER_NAME}"
            )
            if not deployments:
                deployments = [
                    d
                    for d in self._k8s.list_app_deployments(AUTOSCALER_NAMESPACE)
                    if AUTOSCALER_NAME in ((d.get("metadata") or {}).get("name") or "")
                ]
        except ClusterError as e:
            if e.status not in (403, 404):
                raise
            return None
        return deployments[0] if deployments else None

    def detect(self) -> AutoscalerDetectionResult:
        """Detect the autoscaler, reporting ``unknown`` when the cluster cannot be read."""
        try:
            nodes = self._k8s.list_nodes()
            config_map = self._status_config_map()
            deployment = None if config_map else self._autoscaler_deployment()
        except KubeFoundryError as e:
            logger.error(f"Error detecting autoscaler: {e}")
            return AutoscalerDetectionResult(
                type=AutoscalerType.UNKNOWN,
                message="Unable to determine autoscaler status due to an error",
            )
        return detect_autoscaler(nodes, config_map, deployment)
