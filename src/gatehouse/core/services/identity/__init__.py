from src.gatehouse.core.services.identity.base import (
    HostStrategy,
    IdentityProvider,
    LoginCompletion,
    ProviderServices,
)
from src.gatehouse.core.services.identity.caches import DocumentCache, HostStrategyCache
from src.gatehouse.core.services.identity.oauth2 import OAuth2Provider
from src.gatehouse.core.services.identity.oidc import OidcProvider
from src.gatehouse.core.services.identity.registry import (
    PROVIDER_FACTORIES,
    ProviderRegistry,
    build_provider_registry,
)
from src.gatehouse.core.services.identity.saml import SamlProvider

__all__ = [
    "PROVIDER_FACTORIES",
    "DocumentCache",
    "HostStrategy",
    "HostStrategyCache",
    "IdentityProvider",
    "LoginCompletion",
    "OAuth2Provider",
    "OidcProvider",
    "ProviderRegistry",
    "ProviderServices",
    "SamlProvider",
    "build_provider_registry",
]
