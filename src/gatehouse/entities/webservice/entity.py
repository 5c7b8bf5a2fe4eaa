"""Webservice domain entities: Bundle -> Client -> Credential / IpRule."""

import re
from datetime import datetime
from enum import StrEnum

from pydantic import Field, field_validator

from src.gatehouse.entities._base import Entity, as_utc, utc_now

BUNDLE_CODE_PATTERN = re.compile(r"^[a-z][a-z0-9-]*$")


class BundleStatus(StrEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    DEPRECATED = "deprecated"


class ClientStatus(StrEnum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    REVOKED = "revoked"


class WsBundle(Entity):
    """A named, versioned group of webservice endpoints a client may call."""

    code: str = Field(max_length=50, description="Stable lowercase code used in routes")
    name: str = Field(description="Display name")
    description: str | None = Field(default=None)
    version: str = Field(default="1.0.0")
    status: BundleStatus = Field(default=BundleStatus.ACTIVE)

    @field_validator("code")
    @classmethod
    def _valid_code(cls, value: str) -> str:
        if not BUNDLE_CODE_PATTERN.match(value):
            raise ValueError(
                "Bundle code must start with a lowercase letter and contain only "
                "lowercase letters, digits and hyphens"
            )
        return value


class WsClient(Entity):
    """An external system allowed to call the endpoints of one bundle."""

    name: str = Field(description="Display name")
    description: str | None = Field(default=None)
    bundle_id: str = Field(description="Bundle this client is entitled to")
    status: ClientStatus = Field(default=ClientStatus.ACTIVE)
    ip_allowlist_enabled: bool = Field(
        default=False, description="Only accept calls from active IP rules"
    )


class WsClientCredential(Entity):
    """A key/secret pair. Only the salted hash of the secret is stored."""

    client_id: str = Field(description="Owning client")
    client_key: str = Field(description="Public key identifier sent by the caller")
    secret_hash: str = Field(description="Argon2 hash of the client secret")
    label: str | None = Field(default=None)
    is_active: bool = Field(default=True)
    expires_at: datetime | None = Field(default=None)
    last_used_at: datetime | None = Field(default=None)

    def is_expired(self, now: datetime | None = None) -> bool:
        expires_at = as_utc(self.expires_at)
        if expires_at is None:
            return False
        return expires_at <= (now or utc_now())


class WsClientIpRule(Entity):
    """One allow-listed source address for a client."""

    client_id: str = Field(description="Owning client")
    ip_address: str = Field(description="Exact source address")
    description: str | None = Field(default=None)
    is_active: bool = Field(default=True)
