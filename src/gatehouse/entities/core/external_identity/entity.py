"""External identity domain entity."""

from datetime import datetime

from pydantic import Field

from src.gatehouse.entities._base import Entity


class ExternalIdentity(Entity):
    """Link between an identity at an external provider and an internal account.

    ``(provider_type, external_id)`` is unique, and an account holds at most one
    identity per provider type.
    """

    provider_type: str = Field(description="Provider type that owns the external ID")
    external_id: str = Field(description="Subject identifier at the provider")
    user_id: str = Field(description="Internal account this identity maps to")
    email: str | None = Field(default=None, description="Email as last asserted by the provider")
    display_name: str | None = Field(default=None, description="Display name as last asserted")
    profile_image_url: str | None = Field(default=None, description="Avatar URL as last asserted")
    last_used_at: datetime | None = Field(default=None, description="Last login through this identity")
