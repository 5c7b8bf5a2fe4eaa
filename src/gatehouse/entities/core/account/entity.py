"""Account domain entity."""

from datetime import datetime
from enum import StrEnum

from pydantic import Field

from src.gatehouse.entities._base import Entity


class AccountStatus(StrEnum):
    PENDING = "pending"
    LINKED = "linked"


class Account(Entity):
    """Internal user account.

    Accounts are provisioned by an administrator (or, for providers that opt in,
    on first external login) and linked to external identities by email on the
    first successful login. Inactive accounts never receive a session.
    """

    email: str = Field(description="Unique email address used for linking")
    is_active: bool = Field(default=True, description="Inactive accounts cannot log in")
    first_name: str | None = Field(default=None, description="Given name")
    last_name: str | None = Field(default=None, description="Family name")
    profile_image_url: str | None = Field(default=None, description="Avatar URL")
    account_status: AccountStatus = Field(
        default=AccountStatus.PENDING,
        description="Whether an external identity has been linked yet",
    )
    last_login_at: datetime | None = Field(default=None, description="Last successful login")

    @property
    def display_name(self) -> str:
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or self.email
