"""Model catalog domain.

Static lookup of deployable models and of KAITO's premade images.
"""

from kubefoundry.domains.catalog.catalog import (
    GGUF_RUNNER_IMAGE,
    find_model,
    find_premade_by_image,
    get_premade_model,
    list_models,
    list_premade_models,
)
from kubefoundry.domains.catalog.models import Model, PremadeModel

__all__ = [
    "GGUF_RUNNER_IMAGE",
    "Model",
    "PremadeModel",
    "find_model",
    "find_premade_by_image",
    "get_premade_model",
    "list_models",
    "list_premade_models",
]
