"""Account database table model."""

from datetime import datetime

import sqlalchemy as sa
from sqlmodel import Field

from src.gatehouse.entities._base import EntityTable


class AccountTable(EntityTable, table=True):
    """Database persistence model for accounts."""

    __tablename__ = "accounts"

    email: str = Field(sa_column=sa.Column(sa.String(320), nullable=False, unique=True, index=True))
    is_active: bool = Field(default=True)
    first_name: str | None = Field(default=None, max_length=255)
    last_name: str | None = Field(default=None, max_length=255)
    profile_image_url: str | None = Field(default=None, max_length=2048)
    account_status: str = Field(default="pending", max_length=20)
    last_login_at: datetime | None = Field(
        default=None, sa_type=sa.DateTime(timezone=True)
    )
