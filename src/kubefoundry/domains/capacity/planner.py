"""GPU capacity planning.

Pure functions: estimate memory from model size, recommend GPUs per replica,
and check whether a deployment fits the cluster. Nothing here touches the
network, and a failed fit check only produces advisory warnings.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from kubefoundry.domains.capacity.models import (
    ClusterGpuCapacity,
    GpuFitResult,
    GpuFitWarning,
    GpuRecommendation,
    GpuRequirements,
    GpuWarningType,
)
from kubefoundry.domains.providers.models import DeploymentMode

logger = logging.getLogger(__name__)

BYTES_PER_PARAM_FP16 = 2
MEMORY_OVERHEAD = 1.2
COMMON_NODE_GPU_SIZES = (1, 2, 4, 8)
MAX_ALTERNATIVES = 2

DEFAULT_REASON = "Starting with 1 GPU per replica"
UNKNOWN_SIZE_REASON = "Model size unknown - using 1 GPU"

_SIZE_PATTERN = re.compile(r"(\d+\.?\d*)\s*B", re.IGNORECASE)
_MIN_MEMORY_PATTERN = re.compile(r"(\d+)\s*GB", re.IGNORECASE)
_MEMORY_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(TB|GB|MB)?\s*$", re.IGNORECASE)

# (upper bound in billions, GPUs, label)
_SIZE_TIERS = (
    (3, 1, "small"),
    (13, 2, "medium"),
    (70, 4, "large"),
)
_LARGEST_TIER = (8, "very large")

_WARNING_PREFIXES = {
    GpuWarningType.NODE_CAPACITY_EXCEEDED: "Cannot schedule",
    GpuWarningType.CONTIGUOUS_INSUFFICIENT: "Scheduling constraint",
    GpuWarningType.TOTAL_INSUFFICIENT: "Insufficient cluster GPUs",
    GpuWarningType.MODEL_MINIMUM: "Model requirement",
}


class ModelSizing(BaseModel):
    """The subset of a catalog model the planner looks at."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    parameter_count: float | None = Field(None, description="Number of parameters")
    parameters: float | None = Field(None, description="Alternate parameter count field")
    size: str | None = Field(None, description="Size string, e.g. '7B'")
    min_gpu_memory: str | None = Field(None, description="Memory hint, e.g. '16GB'")
    estimated_gpu_memory_gb: float | None = Field(None, description="Explicit estimate in GB")


def _to_sizing(model: Any) -> ModelSizing:
    if isinstance(model, ModelSizing):
        return model
    if isinstance(model, BaseModel):
        return ModelSizing.model_validate(model.model_dump())
    if isinstance(model, Mapping):
        return ModelSizing.model_validate(dict(model))
    raise TypeError(f"Unsupported model type: {type(model).__name__}")


def _to_capacity(capacity: Any) -> ClusterGpuCapacity:
    if isinstance(capacity, ClusterGpuCapacity):
        return capacity
    return ClusterGpuCapacity.model_validate(capacity)


def format_gpu_count(gpus: int) -> str:
    """Format a GPU count for display: ``1 GPU``, ``0 GPUs``, ``8 GPUs``."""
    return f"{gpus} GPU{'' if gpus == 1 else 's'}"


def estimate_gpu_memory(parameter_count: float) -> int:
    """Estimate FP16 serving memory in GB, rounded up.

    Two bytes per parameter plus 20% for KV cache and activations.
    """
    gb = parameter_count * BYTES_PER_PARAM_FP16 * MEMORY_OVERHEAD / (1024**3)
    return math.ceil(gb)


def format_gpu_memory(gb: float) -> str:
    """Format a memory size in GB, e.g. ``16GB``."""
    if float(gb).is_integer():
        return f"{int(gb)}GB"
    return f"{gb:g}GB"


def parse_gpu_memory(value: str | None) -> float | None:
    """Parse ``'16GB'``, ``'512MB'``, ``'1TB'`` or a bare number (GB)."""
    if not value:
        return None
    match = _MEMORY_PATTERN.match(value)
    if not match:
        return None
    amount = float(match.group(1))
    unit = (match.group(2) or "GB").upper()
    if unit == "MB":
        return amount / 1024
    if unit == "TB":
        return amount * 1024
    return amount


def _parameter_count(sizing: ModelSizing) -> float | None:
    count = sizing.parameter_count or sizing.parameters
    if count:
        return count
    if sizing.size:
        match = _SIZE_PATTERN.search(sizing.size)
        if match:
            return float(match.group(1)) * 1_000_000_000
    return None


def _memory_hint_gb(sizing: ModelSizing) -> float | None:
    if sizing.estimated_gpu_memory_gb:
        return sizing.estimated_gpu_memory_gb
    if sizing.min_gpu_memory:
        match = _MIN_MEMORY_PATTERN.search(sizing.min_gpu_memory)
        if match:
            return float(match.group(1))
    return None


def _cap(gpus: int, max_node_gpus: int | None) -> int:
    if max_node_gpus is None:
        return max(gpus, 1)
    return max(min(gpus, max_node_gpus), 1)


def generate_alternatives(recommended: int, max_node_gpus: int | None) -> list[int]:
    """Common node sizes that evenly divide the largest node, nearest first."""
    if not max_node_gpus:
        return []
    divisors = [
        size
        for size in COMMON_NODE_GPU_SIZES
        if size <= max_node_gpus and max_node_gpus % size == 0 and size != recommended
    ]
    divisors.sort(key=lambda size: abs(size - recommended))
    return divisors[:MAX_ALTERNATIVES]


def recommend_gpus(model: Any, capacity: Any) -> GpuRecommendation:
    """Recommend GPUs per replica for a model on this cluster.

    Args:
        model: Catalog ``Model``, ``ModelSizing`` or a camelCase mapping.
        capacity: ``ClusterGpuCapacity`` or a camelCase mapping.

    Returns:
        A recommendation that is never below one GPU.
    """
    if model is None or capacity is None:
        return GpuRecommendation(recommended_gpus=1, reason=DEFAULT_REASON)

    sizing = _to_sizing(model)
    cluster = _to_capacity(capacity)
    max_node_gpus = cluster.max_node_gpu_capacity
    gpu_memory_gb = cluster.gpu_memory_gb

    params = _parameter_count(sizing)
    memory_hint = _memory_hint_gb(sizing)

    if params is None:
        if memory_hint and gpu_memory_gb:
            needed = math.ceil(memory_hint / gpu_memory_gb)
            capped = _cap(needed, max_node_gpus)
            reason = f"Model needs ~{memory_hint:.0f}GB memory"
            if capped < needed:
                reason += f" - needs {needed} GPUs but cluster nodes only have {max_node_gpus}"
            return GpuRecommendation(
                recommended_gpus=capped,
                reason=reason,
                alternatives=generate_alternatives(capped, max_node_gpus),
            )
        return GpuRecommendation(recommended_gpus=1, reason=UNKNOWN_SIZE_REASON)

    params_b = params / 1_000_000_000
    required_gb = memory_hint if memory_hint else params_b * BYTES_PER_PARAM_FP16 * MEMORY_OVERHEAD

    if gpu_memory_gb and gpu_memory_gb > 0:
        needed = math.ceil(required_gb / gpu_memory_gb)
        capped = _cap(needed, max_node_gpus)
        reason = f"~{required_gb:.0f}GB needed ({params_b:.1f}B params)"
    else:
        needed, category = _LARGEST_TIER
        for upper, gpus, label in _SIZE_TIERS:
            if params_b < upper:
                needed, category = gpus, label
                break
        capped = _cap(needed, max_node_gpus)
        reason = f"{category} model ({params_b:.1f}B params)"

    if capped < needed:
        reason += f" - needs {needed} GPUs but cluster nodes only have {max_node_gpus}"

    return GpuRecommendation(
        recommended_gpus=capped,
        reason=reason,
        alternatives=generate_alternatives(capped, max_node_gpus),
    )


def calculate_required_gpus(config: Any) -> GpuRequirements:
    """Total and per-pod GPUs requested by a deployment configuration."""
    per_replica = config.gpus_per_replica

    if config.mode == DeploymentMode.DISAGGREGATED:
        prefill = config.prefill_gpus
        decode = config.decode_gpus
        return GpuRequirements(
            total=config.prefill_replicas * prefill + config.decode_replicas * decode,
            max_per_worker=max(prefill, decode),
            prefill_per_worker=prefill,
            decode_per_worker=decode,
        )

    return GpuRequirements(
        total=config.replicas * per_replica,
        max_per_worker=per_replica,
        prefill_per_worker=per_replica,
        decode_per_worker=per_replica,
    )


def check_fit(config: Any, capacity: Any, model_min_gpus: int = 1) -> GpuFitResult:
    """Check whether a deployment fits the cluster's GPU capacity.

    A pod larger than every node can never be scheduled and is flagged as
    severe. Requesting more GPUs than are currently free is a softer
    warning, since autoscaling may still add capacity. The result is
    advisory; cluster admission has the final word.
    """
    cluster = _to_capacity(capacity)
    required = calculate_required_gpus(config)
    warnings: list[GpuFitWarning] = []

    if required.total == 0:
        # CPU-only workload
        return GpuFitResult(fits=True, warnings=[], requirements=required)

    max_node = cluster.max_node_gpu_capacity
    if max_node is not None and required.max_per_worker > max_node:
        warnings.append(
            GpuFitWarning(
                type=GpuWarningType.NODE_CAPACITY_EXCEEDED,
                message=(
                    f"Each worker requires {required.max_per_worker} GPU(s) but the largest "
                    f"node in the cluster only has {max_node} GPU(s)"
                ),
                required=required.max_per_worker,
                available=max_node,
                severe=True,
            )
        )
    elif required.max_per_worker > cluster.max_contiguous_available:
        warnings.append(
            GpuFitWarning(
                type=GpuWarningType.CONTIGUOUS_INSUFFICIENT,
                message=(
                    f"Each worker requires {required.max_per_worker} GPU(s) but the largest "
                    f"available block on any node is {cluster.max_contiguous_available} GPU(s)"
                ),
                required=required.max_per_worker,
                available=cluster.max_contiguous_available,
            )
        )

    if required.total > cluster.available_gpus:
        warnings.append(
            GpuFitWarning(
                type=GpuWarningType.TOTAL_INSUFFICIENT,
                message=(
                    f"Deployment requires {required.total} GPU(s) but only "
                    f"{cluster.available_gpus} are available in the cluster"
                ),
                required=required.total,
                available=cluster.available_gpus,
            )
        )

    if config.mode == DeploymentMode.DISAGGREGATED:
        configured = min(required.prefill_per_worker, required.decode_per_worker)
    else:
        configured = required.max_per_worker
    if configured < model_min_gpus:
        warnings.append(
            GpuFitWarning(
                type=GpuWarningType.MODEL_MINIMUM,
                message=(
                    f"Model requires at least {model_min_gpus} GPU(s) per worker but "
                    f"configuration specifies {configured}"
                ),
                required=model_min_gpus,
                available=configured,
            )
        )

    if warnings:
        logger.debug(f"GPU fit check for '{config.name}' raised {len(warnings)} warning(s)")
    return GpuFitResult(fits=not warnings, warnings=warnings, requirements=required)


def format_gpu_warnings(result: GpuFitResult) -> list[str]:
    """Prefix each warning with its category for display."""
    return [
        f"{_WARNING_PREFIXES.get(warning.type, 'Warning')}: {warning.message}"
        for warning in result.warnings
    ]
