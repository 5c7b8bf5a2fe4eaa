"""External identity database table model."""

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy import UniqueConstraint
from sqlmodel import Field

from src.gatehouse.entities._base import EntityTable


class ExternalIdentityTable(EntityTable, table=True):
    """Database persistence model for external identities."""

    __tablename__ = "external_identities"
    __table_args__ = (
        UniqueConstraint("provider_type", "external_id", name="uq_identity_provider_external_id"),
        UniqueConstraint("user_id", "provider_type", name="uq_identity_user_provider"),
    )

    provider_type: str = Field(max_length=20, index=True)
    external_id: str = Field(max_length=512, index=True)
    user_id: str = Field(foreign_key="accounts.id", index=True)
    email: str | None = Field(default=None, max_length=320)
    display_name: str | None = Field(default=None, max_length=255)
    profile_image_url: str | None = Field(default=None, max_length=2048)
    last_used_at: datetime | None = Field(
        default=None, sa_type=sa.DateTime(timezone=True)
    )
