"""Build a GPU inventory from raw node and pod listings."""

import logging
from typing import Any

from kubefoundry.domains.capacity.models import ClusterGpuCapacity, NodeGpuInfo, NodePoolInfo

logger = logging.getLogger(__name__)

GPU_RESOURCE = "nvidia.com/gpu"
GPU_MEMORY_LABEL = "nvidia.com/gpu.memory"
GPU_PRODUCT_LABEL = "nvidia.com/gpu.product"

NODE_POOL_LABELS = (
    "agentpool",
    "kubernetes.azure.com/agentpool",
    "cloud.google.com/gke-nodepool",
    "eks.amazonaws.com/nodegroup",
)

# Order matters: more specific product names first.
_PRODUCT_MEMORY_GB = (
    (("a100", "80"), 80),
    (("a100",), 40),
    (("h100",), 80),
    (("h200",), 141),
    (("a10g",), 24),
    (("a10",), 24),
    (("l40s",), 48),
    (("l40",), 48),
    (("l4",), 24),
    (("t4",), 16),
    (("v100", "32"), 32),
    (("v100",), 16),
    (("4090",), 24),
    (("4080",), 16),
    (("3090",), 24),
    (("3080", "12"), 12),
    (("3080",), 10),
)

_COUNTED_POD_PHASES = ("Running", "Pending")


def _as_int(value: Any) -> int:
    try:
        return int(str(value))
    except (TypeError, ValueError):
        return 0


def gpu_memory_from_product(product: str | None) -> int | None:
    """Look up per-GPU memory in GB from an NVIDIA product label."""
    if not product:
        return None
    lowered = product.lower()
    for needles, memory_gb in _PRODUCT_MEMORY_GB:
        if all(needle in lowered for needle in needles):
            return memory_gb
    return None


def gpu_memory_from_labels(labels: dict[str, str]) -> float | None:
    """Per-GPU memory from GPU Feature Discovery labels.

    Prefers ``nvidia.com/gpu.memory`` (MiB), falling back to the product name.
    """
    mib = _as_int(labels.get(GPU_MEMORY_LABEL))
    if mib > 0:
        return round(mib / 1024)
    return gpu_memory_from_product(labels.get(GPU_PRODUCT_LABEL))


def node_pool_name(labels: dict[str, str]) -> str:
    """Node pool name from cloud-provider labels."""
    for key in NODE_POOL_LABELS:
        if labels.get(key):
            return labels[key]
    return "default"


def pod_gpu_request(pod: dict[str, Any]) -> int:
    """GPUs requested by a pod, using limits where requests are absent."""
    total = 0
    for container in (pod.get("spec") or {}).get("containers") or []:
        resources = container.get("resources") or {}
        requested = (resources.get("requests") or {}).get(GPU_RESOURCE)
        if requested is None:
            requested = (resources.get("limits") or {}).get(GPU_RESOURCE)
        total += _as_int(requested)
    return total


def inspect_gpu_capacity(
    nodes: list[dict[str, Any]], pods: list[dict[str, Any]]
) -> ClusterGpuCapacity:
    """Compute cluster GPU capacity from node and pod listings.

    Only Running and Pending pods bound to a GPU node count towards
    allocation.

    Args:
        nodes: Node objects as camelCase dicts.
        pods: Pod objects across all namespaces as camelCase dicts.

    Returns:
        Capacity with per-node and per-pool breakdowns.
    """
    gpu_nodes: dict[str, dict[str, Any]] = {}
    gpu_memory_gb: float | None = None

    for node in nodes:
        metadata = node.get("metadata") or {}
        labels = metadata.get("labels") or {}
        allocatable = (node.get("status") or {}).get("allocatable") or {}
        count = _as_int(allocatable.get(GPU_RESOURCE))
        if count <= 0:
            continue

        name = metadata.get("name") or "unknown"
        gpu_nodes[name] = {
            "total": count,
            "allocated": 0,
            "pool": node_pool_name(labels),
            "model": labels.get(GPU_PRODUCT_LABEL) or labels.get("accelerator"),
            "memory": gpu_memory_from_labels(labels),
        }
        if gpu_memory_gb is None:
            gpu_memory_gb = gpu_nodes[name]["memory"]

    for pod in pods:
        if (pod.get("status") or {}).get("phase") not in _COUNTED_POD_PHASES:
            continue
        node_name = (pod.get("spec") or {}).get("nodeName")
        if node_name not in gpu_nodes:
            continue
        gpu_nodes[node_name]["allocated"] += pod_gpu_request(pod)

    node_infos: list[NodeGpuInfo] = []
    pools: dict[str, NodePoolInfo] = {}
    for name, info in gpu_nodes.items():
        available = max(0, info["total"] - info["allocated"])
        node_infos.append(
            NodeGpuInfo(
                node_name=name,
                total_gpus=info["total"],
                allocated_gpus=info["allocated"],
                available_gpus=available,
                gpu_model=info["model"],
                gpu_memory_gb=info["memory"],
                node_pool=info["pool"],
            )
        )
        pool = pools.setdefault(info["pool"], NodePoolInfo(name=info["pool"]))
        pool.gpu_count += info["total"]
        pool.node_count += 1
        pool.available_gpus += available
        if not pool.gpu_model and info["model"]:
            pool.gpu_model = info["model"]

    total = sum(n.total_gpus for n in node_infos)
    allocated = sum(n.allocated_gpus for n in node_infos)

    capacity = ClusterGpuCapacity(
        total_gpus=total,
        allocated_gpus=allocated,
        available_gpus=max(0, total - allocated),
        max_contiguous_available=max((n.available_gpus for n in node_infos), default=0),
        max_node_gpu_capacity=max((n.total_gpus for n in node_infos), default=0),
        gpu_node_count=len(node_infos),
        gpu_memory_gb=gpu_memory_gb,
        node_pools=list(pools.values()),
        nodes=node_infos,
    )
    logger.debug(
        f"GPU capacity: {capacity.available_gpus}/{capacity.total_gpus} available "
        f"across {capacity.gpu_node_count} node(s)"
    )
    return capacity
