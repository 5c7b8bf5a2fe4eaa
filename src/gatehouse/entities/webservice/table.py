"""Webservice database table models."""

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy import UniqueConstraint
from sqlmodel import Field

from src.gatehouse.entities._base import EntityTable


class WsBundleTable(EntityTable, table=True):
    __tablename__ = "ws_bundles"

    code: str = Field(max_length=50, unique=True, index=True)
    name: str = Field(max_length=255)
    description: str | None = Field(default=None)
    version: str = Field(default="1.0.0", max_length=20)
    status: str = Field(default="active", max_length=20)


class WsClientTable(EntityTable, table=True):
    __tablename__ = "ws_clients"

    name: str = Field(max_length=255)
    description: str | None = Field(default=None)
    bundle_id: str = Field(foreign_key="ws_bundles.id", index=True)
    status: str = Field(default="active", max_length=20)
    ip_allowlist_enabled: bool = Field(default=False)


class WsClientCredentialTable(EntityTable, table=True):
    __tablename__ = "ws_client_credentials"

    client_id: str = Field(foreign_key="ws_clients.id", index=True)
    client_key: str = Field(max_length=64, unique=True, index=True)
    secret_hash: str = Field(max_length=255)
    label: str | None = Field(default=None, max_length=255)
    is_active: bool = Field(default=True)
    expires_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))
    last_used_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))


class WsClientIpRuleTable(EntityTable, table=True):
    __tablename__ = "ws_client_ip_rules"
    __table_args__ = (
        UniqueConstraint("client_id", "ip_address", name="uq_ws_ip_rule_client_address"),
    )

    client_id: str = Field(foreign_key="ws_clients.id", index=True)
    ip_address: str = Field(max_length=45)
    description: str | None = Field(default=None)
    is_active: bool = Field(default=True)
