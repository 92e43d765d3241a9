"""Static model catalog and KAITO premade (AIKit) catalog.

Both catalogs are immutable and loaded at import time.
"""

from __future__ import annotations

from kubefoundry.domains.catalog.models import Model, PremadeModel

# Runner image used for KAITO "direct" GGUF mode; the model file is pulled at start-up.
GGUF_RUNNER_IMAGE = "ghcr.io/kaito-project/aikit/runners/llama-cpp:latest"

_MODELS: tuple[Model, ...] = (
    Model(
        id="Qwen/Qwen3-0.6B",
        name="Qwen3 0.6B",
        description="Small, efficient model ideal for development and testing",
        size="0.6B",
        task="text-generation",
        context_length=32768,
        license="apache-2.0",
        supported_engines=("vllm", "sglang", "trtllm"),
        min_gpu_memory="4GB",
    ),
    Model(
        id="Qwen/Qwen2.5-1.5B-Instruct",
        name="Qwen2.5 1.5B Instruct",
        description="Instruction-tuned model with strong performance",
        size="1.5B",
        task="chat",
        context_length=32768,
        license="apache-2.0",
        supported_engines=("vllm", "sglang", "trtllm"),
        min_gpu_memory="6GB",
    ),
    Model(
        id="deepseek-ai/DeepSeek-R1-Distill-Llama-8B",
        name="DeepSeek R1 Distill 8B",
        description="Reasoning-focused model with strong analytical capabilities",
        size="8B",
        task="chat",
        context_length=16384,
        license="mit",
        supported_engines=("vllm", "sglang"),
        min_gpu_memory="16GB",
    ),
    Model(
        id="meta-llama/Llama-3.2-1B-Instruct",
        name="Llama 3.2 1B Instruct",
        description="Compact Llama model optimized for instruction following",
        size="1B",
        task="chat",
        context_length=131072,
        license="llama3.2",
        supported_engines=("vllm", "sglang", "trtllm"),
        min_gpu_memory="4GB",
        gated=True,
    ),
    Model(
        id="meta-llama/Llama-3.2-3B-Instruct",
        name="Llama 3.2 3B Instruct",
        description="Balanced Llama model for various tasks",
        size="3B",
        task="chat",
        context_length=131072,
        license="llama3.2",
        supported_engines=("vllm", "sglang", "trtllm"),
        min_gpu_memory="8GB",
        gated=True,
    ),
    Model(
        id="meta-llama/Llama-3.1-70B-Instruct",
        name="Llama 3.1 70B Instruct",
        description="Large Llama model for demanding workloads",
        size="70B",
        task="chat",
        parameter_count=70_000_000_000,
        context_length=131072,
        license="llama3.1",
        supported_engines=("vllm", "sglang", "trtllm"),
        estimated_gpu_memory_gb=160,
        min_gpus=2,
        gated=True,
    ),
    Model(
        id="mistralai/Mistral-7B-Instruct-v0.3",
        name="Mistral 7B Instruct v0.3",
        description="Powerful instruction-tuned model from Mistral AI",
        size="7B",
        task="chat",
        context_length=32768,
        license="apache-2.0",
        supported_engines=("vllm", "sglang", "trtllm"),
        min_gpu_memory="16GB",
    ),
    Model(
        id="microsoft/Phi-3-mini-4k-instruct",
        name="Phi-3 Mini 4K Instruct",
        description="Microsoft's efficient small language model",
        size="3.8B",
        task="chat",
        context_length=4096,
        license="mit",
        supported_engines=("vllm", "sglang"),
        min_gpu_memory="8GB",
    ),
    Model(
        id="TinyLlama/TinyLlama-1.1B-Chat-v1.0",
        name="TinyLlama 1.1B Chat",
        description="Lightweight chat model for resource-constrained environments",
        size="1.1B",
        task="chat",
        context_length=2048,
        license="apache-2.0",
        supported_engines=("vllm", "sglang", "trtllm"),
        min_gpu_memory="4GB",
    ),
)

_PREMADE_MODELS: tuple[PremadeModel, ...] = (
    PremadeModel(
        id="llama3.2:1b",
        name="Llama 3.2 1B",
        size="1B",
        image="ghcr.io/kaito-project/aikit/llama-3.2:1b",
        model_name="llama-3.2-1b-instruct",
        license="Llama",
        description="Compact Llama model that runs comfortably on CPU",
    ),
    PremadeModel(
        id="llama3.2:3b",
        name="Llama 3.2 3B",
        size="3B",
        image="ghcr.io/kaito-project/aikit/llama-3.2:3b",
        model_name="llama-3.2-3b-instruct",
        license="Llama",
        description="Balanced Llama model for CPU inference",
    ),
    PremadeModel(
        id="llama3.1:8b",
        name="Llama 3.1 8B",
        size="8B",
        image="ghcr.io/kaito-project/aikit/llama-3.1:8b",
        model_name="llama-3.1-8b-instruct",
        license="Llama",
        compute_type="gpu",
    ),
    PremadeModel(
        id="gemma2:2b",
        name="Gemma 2 2B",
        size="2B",
        image="ghcr.io/kaito-project/aikit/gemma2:2b",
        model_name="gemma-2-2b-instruct",
        license="Gemma",
    ),
    PremadeModel(
        id="phi3.5:3.8b",
        name="Phi 3.5 3.8B",
        size="3.8B",
        image="ghcr.io/kaito-project/aikit/phi3.5:3.8b",
        model_name="phi-3.5-3.8b-instruct",
        license="MIT",
    ),
    PremadeModel(
        id="mistral:7b",
        name="Mistral 7B",
        size="7B",
        image="ghcr.io/kaito-project/aikit/mistral:7b",
        model_name="mistral-7b-instruct",
        license="Apache-2.0",
        compute_type="gpu",
    ),
)

_MODELS_BY_ID = {model.id: model for model in _MODELS}
_PREMADE_BY_ID = {model.id: model for model in _PREMADE_MODELS}


def list_models() -> list[Model]:
    """Return every catalog model."""
    return list(_MODELS)


def find_model(model_id: str) -> Model | None:
    """Look up a catalog model by id."""
    return _MODELS_BY_ID.get(model_id)


def list_premade_models() -> list[PremadeModel]:
    """Return every premade KAITO model."""
    return list(_PREMADE_MODELS)


def get_premade_model(premade_id: str) -> PremadeModel | None:
    """Look up a premade KAITO model by catalog id."""
    return _PREMADE_BY_ID.get(premade_id)


def find_premade_by_image(image: str) -> PremadeModel | None:
    """Reverse lookup used when parsing live Workspaces."""
    for model in _PREMADE_MODELS:
        if model.image == image:
            return model
    return None
