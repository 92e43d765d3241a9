"""Tests for GPU capacity planning."""

import pytest

from kubefoundry.domains.capacity.models import ClusterGpuCapacity, GpuWarningType
from kubefoundry.domains.capacity.planner import (
    DEFAULT_REASON,
    UNKNOWN_SIZE_REASON,
    calculate_required_gpus,
    check_fit,
    estimate_gpu_memory,
    format_gpu_count,
    format_gpu_memory,
    format_gpu_warnings,
    generate_alternatives,
    parse_gpu_memory,
    recommend_gpus,
)
from kubefoundry.domains.catalog import find_model
from kubefoundry.domains.providers.models import DynamoDeploymentConfig, KaitoDeploymentConfig


def _dynamo(**overrides: object) -> DynamoDeploymentConfig:
    fields = {
        "name": "qwen",
        "namespace": "default",
        "model_id": "Qwen/Qwen3-0.6B",
        "engine": "vllm",
        "hf_token_secret": "hf",
    }
    fields.update(overrides)
    return DynamoDeploymentConfig(**fields)


def _capacity(
    available: int = 16,
    contiguous: int = 8,
    max_node: int | None = 8,
    total: int = 16,
) -> ClusterGpuCapacity:
    return ClusterGpuCapacity(
        total_gpus=total,
        available_gpus=available,
        max_contiguous_available=contiguous,
        max_node_gpu_capacity=max_node,
    )


class TestFormatting:
    """Test display helpers."""

    @pytest.mark.parametrize("gpus,expected", [(1, "1 GPU"), (0, "0 GPUs"), (8, "8 GPUs")])
    def test_format_gpu_count(self, gpus: int, expected: str) -> None:
        assert format_gpu_count(gpus) == expected

    def test_format_gpu_memory(self) -> None:
        assert format_gpu_memory(16) == "16GB"
        assert format_gpu_memory(24.5) == "24.5GB"

    def test_parse_gpu_memory(self) -> None:
        assert parse_gpu_memory("16GB") == 16
        assert parse_gpu_memory("512MB") == 0.5
        assert parse_gpu_memory("1TB") == 1024
        assert parse_gpu_memory("40") == 40
        assert parse_gpu_memory("lots") is None
        assert parse_gpu_memory(None) is None

    def test_estimate_gpu_memory(self) -> None:
        """FP16 weights plus 20% overhead, rounded up."""
        assert estimate_gpu_memory(7_000_000_000) == 16
        assert estimate_gpu_memory(1_000_000_000) == 3


class TestRecommendGpus:
    """Test GPU recommendations."""

    def test_fits_single_gpu_with_memory_info(self) -> None:
        """An 8B model needs ~19GB, which fits on one 24GB GPU."""
        capacity = ClusterGpuCapacity(max_node_gpu_capacity=8, gpu_memory_gb=24)

        result = recommend_gpus({"size": "8B"}, capacity)

        assert result.recommended_gpus == 1
        assert result.reason == "~19GB needed (8.0B params)"
        assert result.alternatives == [2, 4]

    def test_size_tier_without_memory_info(self) -> None:
        """Without per-GPU memory, size tiers decide."""
        result = recommend_gpus({"size": "7B"}, ClusterGpuCapacity(max_node_gpu_capacity=4))

        assert result.recommended_gpus == 2
        assert result.reason == "medium model (7.0B params)"
        assert result.alternatives == [1, 4]

    def test_capped_at_largest_node(self) -> None:
        """Recommendations never exceed the largest node."""
        result = recommend_gpus({"size": "70B"}, ClusterGpuCapacity(max_node_gpu_capacity=4))

        assert result.recommended_gpus == 4
        assert "needs 8 GPUs but cluster nodes only have 4" in result.reason
        assert result.alternatives == [2, 1]

    def test_camel_case_parameter_count(self) -> None:
        result = recommend_gpus({"parameterCount": 8e9}, {"totalMemoryGb": 80})

        assert result.recommended_gpus == 1
        assert result.reason == "~19GB needed (8.0B params)"
        assert result.alternatives == []

    def test_camel_case_estimate_capped_by_node(self) -> None:
        result = recommend_gpus(
            {"parameterCount": 70e9, "estimatedGpuMemoryGb": 160},
            {"totalMemoryGb": 80, "maxNodeGpuCapacity": 1},
        )

        assert result.recommended_gpus == 1
        assert result.reason == (
            "~160GB needed (70.0B params) - needs 2 GPUs but cluster nodes only have 1"
        )

    def test_memory_hint_only(self) -> None:
        capacity = ClusterGpuCapacity(max_node_gpu_capacity=8, gpu_memory_gb=24)

        result = recommend_gpus({"minGpuMemory": "48GB"}, capacity)

        assert result.recommended_gpus == 2
        assert result.reason == "Model needs ~48GB memory"

    def test_catalog_model_estimate(self) -> None:
        """An explicit memory estimate takes precedence over parameter count."""
        model = find_model("meta-llama/Llama-3.1-70B-Instruct")
        capacity = ClusterGpuCapacity(max_node_gpu_capacity=8, gpu_memory_gb=80)

        result = recommend_gpus(model, capacity)

        assert result.recommended_gpus == 2

    def test_unknown_size(self) -> None:
        result = recommend_gpus({}, ClusterGpuCapacity(max_node_gpu_capacity=8))

        assert result.recommended_gpus == 1
        assert result.reason == UNKNOWN_SIZE_REASON

    def test_no_model(self) -> None:
        result = recommend_gpus(None, ClusterGpuCapacity())

        assert result.recommended_gpus == 1
        assert result.reason == DEFAULT_REASON

    def test_alternatives_need_node_size(self) -> None:
        assert generate_alternatives(1, None) == []
        assert generate_alternatives(8, 8) == [4, 2]


class TestCalculateRequiredGpus:
    def test_aggregated(self) -> None:
        required = calculate_required_gpus(_dynamo(replicas=3, resources={"gpu": 2}))

        assert required.total == 6
        assert required.max_per_worker == 2

    def test_disaggregated(self) -> None:
        required = calculate_required_gpus(
            _dynamo(
                mode="disaggregated",
                prefill_replicas=2,
                prefill_gpus=2,
                decode_replicas=1,
                decode_gpus=4,
            )
        )

        assert required.total == 8
        assert required.max_per_worker == 4
        assert required.prefill_per_worker == 2
        assert required.decode_per_worker == 4


class TestCheckFit:
    """Test advisory GPU fit checks."""

    def test_fits(self) -> None:
        result = check_fit(_dynamo(replicas=2, resources={"gpu": 4}), _capacity())

        assert result.fits is True
        assert result.warnings == []
        assert result.requirements.total == 8

    def test_worker_larger_than_any_node(self) -> None:
        """A pod larger than every node is a severe warning."""
        result = check_fit(_dynamo(resources={"gpu": 8}), _capacity(max_node=4))

        assert result.fits is False
        assert len(result.warnings) == 1
        warning = result.warnings[0]
        assert warning.type == GpuWarningType.NODE_CAPACITY_EXCEEDED
        assert warning.severe is True
        assert warning.required == 8
        assert warning.available == 4

    def test_no_contiguous_block(self) -> None:
        result = check_fit(
            _dynamo(resources={"gpu": 4}), _capacity(available=6, contiguous=2, max_node=8)
        )

        assert [w.type for w in result.warnings] == [GpuWarningType.CONTIGUOUS_INSUFFICIENT]
        assert result.warnings[0].severe is False

    def test_total_insufficient(self) -> None:
        result = check_fit(
            _dynamo(replicas=3, resources={"gpu": 2}),
            _capacity(available=4, contiguous=4, max_node=8),
        )

        assert [w.type for w in result.warnings] == [GpuWarningType.TOTAL_INSUFFICIENT]
        assert result.warnings[0].required == 6
        assert result.warnings[0].available == 4

    def test_model_minimum(self) -> None:
        result = check_fit(_dynamo(), _capacity(), model_min_gpus=2)

        assert [w.type for w in result.warnings] == [GpuWarningType.MODEL_MINIMUM]
        assert result.warnings[0].required == 2
        assert result.warnings[0].available == 1

    def test_unknown_largest_node(self) -> None:
        """Without a known node size only the free block is checked."""
        result = check_fit(
            _dynamo(resources={"gpu": 4}), _capacity(available=8, contiguous=8, max_node=None)
        )

        assert result.fits is True

    def test_cpu_only_always_fits(self) -> None:
        config = KaitoDeploymentConfig(
            name="llama",
            namespace="default",
            model_source="premade",
            premade_model="llama3.2:1b",
        )

        result = check_fit(config, ClusterGpuCapacity())

        assert result.fits is True
        assert result.requirements.total == 0

    def test_accepts_capacity_mapping(self) -> None:
        result = check_fit(
            _dynamo(),
            {"availableGpus": 0, "maxContiguousAvailable": 0, "maxNodeGpuCapacity": 0},
        )

        assert result.fits is False
        assert result.warnings[0].type == GpuWarningType.NODE_CAPACITY_EXCEEDED

    def test_format_warnings(self) -> None:
        result = check_fit(_dynamo(resources={"gpu": 8}), _capacity(max_node=4))

        messages = format_gpu_warnings(result)

        assert messages == [
            "Cannot schedule: Each worker requires 8 GPU(s) but the largest node in the "
            "cluster only has 4 GPU(s)"
        ]
