"""Core models."""

from .provider import IdentityAssertion, ProviderType, TokenResponse
from .session import LoginFlow, UserSession

__all__ = ["IdentityAssertion", "ProviderType", "TokenResponse", "LoginFlow", "UserSession"]
