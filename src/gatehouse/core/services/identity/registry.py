"""Registry of the identity providers enabled for this deployment."""

from collections.abc import Callable

import httpx
from loguru import logger

from src.gatehouse.core.exceptions import ConfigurationError, ProviderError
from src.gatehouse.core.models.provider import ProviderType
from src.gatehouse.core.security import decode_state_provider
from src.gatehouse.core.services.identity.base import IdentityProvider, ProviderServices
from src.gatehouse.core.services.identity.oauth2 import OAuth2Provider
from src.gatehouse.core.services.identity.oidc import OidcProvider
from src.gatehouse.core.services.identity.saml import SamlProvider
from src.gatehouse.runtime.config.config_data import IdentityConfig

ProviderFactory = Callable[..., IdentityProvider]

PROVIDER_FACTORIES: dict[ProviderType, ProviderFactory] = {
    ProviderType.OIDC: OidcProvider,
    ProviderType.OKTA: OidcProvider,
    ProviderType.OAUTH: OAuth2Provider,
    ProviderType.SAML: SamlProvider,
}


class ProviderRegistry:
    """Providers keyed by type, with one of them acting as the default."""

    def __init__(self) -> None:
        self._providers: dict[ProviderType, IdentityProvider] = {}
        self._default_type: ProviderType | None = None

    def register(self, provider: IdentityProvider) -> None:
        self._providers[provider.provider_type] = provider
        logger.info("Registered identity provider {}", provider.provider_type)

    def get(self, provider_type: str | None) -> IdentityProvider | None:
        if not provider_type:
            return None
        try:
            return self._providers.get(ProviderType(provider_type))
        except ValueError:
            return None

    def get_default(self) -> IdentityProvider | None:
        """The explicitly chosen default, else the first provider registered."""
        if self._default_type is not None:
            return self._providers[self._default_type]
        return next(iter(self._providers.values()), None)

    def get_all(self) -> list[IdentityProvider]:
        return list(self._providers.values())

    def set_default(self, provider_type: str) -> None:
        provider = self.get(provider_type)
        if provider is None:
            raise ConfigurationError(f"Cannot make unregistered provider '{provider_type}' the default")
        self._default_type = provider.provider_type

    def resolve_for_login(self, hint: str | None = None) -> IdentityProvider | None:
        """Provider named by the login request; the default only when none is named.

        A hint naming an unregistered provider resolves to None.
        """
        if not hint:
            return self.get_default()
        return self.get(hint)

    def resolve_for_callback(self, state: str | None) -> IdentityProvider | None:
        """Provider tagged in the callback state; the default when no tag can be read.

        A readable tag naming an unregistered provider resolves to None.
        """
        provider_tag = decode_state_provider(state)
        if provider_tag is None:
            return self.get_default()
        return self.get(provider_tag)


async def build_provider_registry(
    identity_config: IdentityConfig, services: ProviderServices
) -> ProviderRegistry:
    """Construct, set up and register every enabled provider.

    A provider whose setup fails (for example, its discovery endpoint is down)
    is still registered; its setup is retried on the next login.

    Raises:
        ConfigurationError: If no provider is enabled
    """
    registry = ProviderRegistry()
    explicit_default: ProviderType | None = None

    for provider_config in identity_config.enabled_providers():
        provider_type = ProviderType(provider_config.type)
        provider = PROVIDER_FACTORIES[provider_type](provider_config, services)
        try:
            await provider.setup()
        except (ProviderError, httpx.HTTPError, ValueError) as e:
            logger.error("Setup of identity provider {} failed: {}", provider_type, e)
        registry.register(provider)
        if provider_config.is_default and explicit_default is None:
            explicit_default = provider_type

    if not registry.get_all():
        raise ConfigurationError("No identity provider is enabled")

    default_type = explicit_default or identity_config.default_provider
    if default_type is not None:
        registry.set_default(default_type)

    logger.info(
        "Identity providers ready: {} (default: {})",
        ", ".join(p.provider_type for p in registry.get_all()),
        registry.get_default().provider_type,
    )
    return registry
