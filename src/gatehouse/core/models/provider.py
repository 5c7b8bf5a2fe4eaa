"""Identity provider types and the normalized identity they produce."""

import time
from enum import StrEnum

from pydantic import BaseModel, Field


class ProviderType(StrEnum):
    """Supported external identity provider types.

    Each value maps to exactly one adapter constructor in the provider factory
    table. Config entries naming any other type fail validation at startup.
    """

    OIDC = "oidc"
    OKTA = "okta"
    OAUTH = "oauth"
    SAML = "saml"


class IdentityAssertion(BaseModel):
    """Normalized identity asserted by an external provider after a successful login."""

    provider_type: ProviderType = Field(description="Provider type that asserted this identity")
    external_id: str = Field(description="Stable subject identifier at the provider")
    email: str | None = Field(default=None, description="Email address claimed by the provider")
    first_name: str | None = Field(default=None, description="Given name")
    last_name: str | None = Field(default=None, description="Family name")
    display_name: str | None = Field(default=None, description="Display name")
    profile_image_url: str | None = Field(default=None, description="Avatar URL")

    def minimal_claims(self) -> dict[str, str | None]:
        """Claims kept in the server-side session."""
        return {
            "sub": self.external_id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
        }


class TokenResponse(BaseModel):
    """OAuth2/OIDC token endpoint response."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int | None = None
    refresh_token: str | None = None
    id_token: str | None = None

    @property
    def expires_at(self) -> int | None:
        """Absolute expiry timestamp of the access token, if the provider sent one."""
        if self.expires_in is None:
            return None
        return int(time.time()) + self.expires_in
