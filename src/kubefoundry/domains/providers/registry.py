"""Process-wide provider registry.

The registry is populated once at startup by :func:`initialize_registry`
and read without locking afterwards. The underlying mapping is private;
callers go through the accessor functions.
"""

from __future__ import annotations

import logging

from kubefoundry.config import get_config
from kubefoundry.domains.providers.base import Provider, provider_info
from kubefoundry.domains.providers.models import ProviderInfo
from kubefoundry.utils.errors import NotFoundError

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_ID = "dynamo"

_providers: dict[str, Provider] = {}


def register_provider(provider: Provider) -> None:
    """Register a provider; the last registration for an id wins."""
    if provider.id in _providers:
        logger.warning(f"Provider '{provider.id}' is already registered. Overwriting.")
    _providers[provider.id] = provider
    logger.debug(f"Registered provider: {provider.id}")


def initialize_registry() -> None:
    """Register the built-in providers.

    Idempotent: calling it again replaces the built-ins with fresh instances
    and leaves any extra registrations alone.
    """
    from kubefoundry.domains.providers.dynamo import DynamoProvider
    from kubefoundry.domains.providers.kaito import KaitoProvider
    from kubefoundry.domains.providers.kuberay import KubeRayProvider

    for provider in (DynamoProvider(), KubeRayProvider(), KaitoProvider()):
        _providers[provider.id] = provider
    logger.info(f"Provider registry initialized: {', '.join(_providers)}")


def get_provider(provider_id: str) -> Provider:
    """Look up a provider by id.

    Raises:
        NotFoundError: If no provider has that id. The message lists the
            registered ids.
    """
    provider = _providers.get(provider_id)
    if provider is None:
        raise NotFoundError(
            "Provider",
            provider_id,
            hint=f"Available providers: {', '.join(_providers) or 'none'}",
        )
    return provider


def get_provider_or_none(provider_id: str) -> Provider | None:
    return _providers.get(provider_id)


def has_provider(provider_id: str) -> bool:
    return provider_id in _providers


def list_providers() -> list[Provider]:
    return list(_providers.values())


def list_provider_ids() -> list[str]:
    return list(_providers)


def list_provider_info() -> list[ProviderInfo]:
    """Id, name, description and default namespace of each provider."""
    return [provider_info(provider) for provider in _providers.values()]


def get_default_provider_id() -> str:
    """Configured default provider, falling back to Dynamo."""
    return get_config().default_provider or DEFAULT_PROVIDER_ID
