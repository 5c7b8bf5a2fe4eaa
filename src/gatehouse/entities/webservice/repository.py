"""Webservice repositories for data access operations."""

from datetime import datetime

from sqlmodel import Session, select

from src.gatehouse.entities._base import utc_now
from src.gatehouse.entities.webservice.entity import (
    BundleStatus,
    ClientStatus,
    WsBundle,
    WsClient,
    WsClientCredential,
    WsClientIpRule,
)
from src.gatehouse.entities.webservice.table import (
    WsBundleTable,
    WsClientCredentialTable,
    WsClientIpRuleTable,
    WsClientTable,
)


class WsBundleRepository:
    """Data-access layer for bundles."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, bundle_id: str) -> WsBundle | None:
        row = self._session.get(WsBundleTable, bundle_id)
        if row is None:
            return None
        return WsBundle.model_validate(row, from_attributes=True)

    def get_by_code(self, code: str) -> WsBundle | None:
        row = self._session.exec(select(WsBundleTable).where(WsBundleTable.code == code)).first()
        if row is None:
            return None
        return WsBundle.model_validate(row, from_attributes=True)

    def create(self, bundle: WsBundle) -> WsBundle:
        row = WsBundleTable.model_validate(bundle.model_dump())
        self._session.add(row)
        self._session.flush()
        self._session.refresh(row)
        return WsBundle.model_validate(row, from_attributes=True)

    def set_status(self, bundle_id: str, status: BundleStatus) -> None:
        row = self._session.get(WsBundleTable, bundle_id)
        if row is None:
            raise ValueError(f"Bundle {bundle_id} not found")
        row.status = status
        row.updated_at = utc_now()
        self._session.add(row)
        self._session.flush()


class WsClientRepository:
    """Data-access layer for webservice clients."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, client_id: str) -> WsClient | None:
        row = self._session.get(WsClientTable, client_id)
        if row is None:
            return None
        return WsClient.model_validate(row, from_attributes=True)

    def create(self, client: WsClient) -> WsClient:
        row = WsClientTable.model_validate(client.model_dump())
        self._session.add(row)
        self._session.flush()
        self._session.refresh(row)
        return WsClient.model_validate(row, from_attributes=True)

    def set_status(self, client_id: str, status: ClientStatus) -> None:
        row = self._session.get(WsClientTable, client_id)
        if row is None:
            raise ValueError(f"Client {client_id} not found")
        row.status = status
        row.updated_at = utc_now()
        self._session.add(row)
        self._session.flush()

    def set_ip_allowlist(self, client_id: str, enabled: bool) -> None:
        row = self._session.get(WsClientTable, client_id)
        if row is None:
            raise ValueError(f"Client {client_id} not found")
        row.ip_allowlist_enabled = enabled
        row.updated_at = utc_now()
        self._session.add(row)
        self._session.flush()


class WsClientCredentialRepository:
    """Data-access layer for client credentials.

    Credentials are immutable apart from ``is_active`` and ``last_used_at``.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, credential_id: str) -> WsClientCredential | None:
        row = self._session.get(WsClientCredentialTable, credential_id)
        if row is None:
            return None
        return WsClientCredential.model_validate(row, from_attributes=True)

    def get_by_client_key(self, client_key: str) -> WsClientCredential | None:
        statement = select(WsClientCredentialTable).where(
            WsClientCredentialTable.client_key == client_key
        )
        row = self._session.exec(statement).first()
        if row is None:
            return None
        return WsClientCredential.model_validate(row, from_attributes=True)

    def list_for_client(self, client_id: str) -> list[WsClientCredential]:
        statement = select(WsClientCredentialTable).where(
            WsClientCredentialTable.client_id == client_id
        )
        rows = self._session.exec(statement).all()
        return [WsClientCredential.model_validate(row, from_attributes=True) for row in rows]

    def create(self, credential: WsClientCredential) -> WsClientCredential:
        row = WsClientCredentialTable.model_validate(credential.model_dump())
        self._session.add(row)
        self._session.flush()
        self._session.refresh(row)
        return WsClientCredential.model_validate(row, from_attributes=True)

    def deactivate(self, credential_id: str) -> bool:
        row = self._session.get(WsClientCredentialTable, credential_id)
        if row is None:
            return False
        row.is_active = False
        self._session.add(row)
        self._session.flush()
        return True

    def record_usage(self, credential_id: str, used_at: datetime | None = None) -> None:
        row = self._session.get(WsClientCredentialTable, credential_id)
        if row is None:
            raise ValueError(f"Credential {credential_id} not found")
        row.last_used_at = used_at or utc_now()
        self._session.add(row)
        self._session.flush()


class WsClientIpRuleRepository:
    """Data-access layer for client IP allow-list rules."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def is_allowed(self, client_id: str, ip_address: str) -> bool:
        """True when an active rule for exactly this address exists."""
        statement = select(WsClientIpRuleTable).where(
            (WsClientIpRuleTable.client_id == client_id)
            & (WsClientIpRuleTable.ip_address == ip_address)
            & (WsClientIpRuleTable.is_active == True)  # noqa: E712
        )
        return self._session.exec(statement).first() is not None

    def list_for_client(self, client_id: str) -> list[WsClientIpRule]:
        statement = select(WsClientIpRuleTable).where(WsClientIpRuleTable.client_id == client_id)
        rows = self._session.exec(statement).all()
        return [WsClientIpRule.model_validate(row, from_attributes=True) for row in rows]

    def create(self, rule: WsClientIpRule) -> WsClientIpRule:
        row = WsClientIpRuleTable.model_validate(rule.model_dump())
        self._session.add(row)
        self._session.flush()
        self._session.refresh(row)
        return WsClientIpRule.model_validate(row, from_attributes=True)

    def deactivate(self, client_id: str, ip_address: str) -> bool:
        statement = select(WsClientIpRuleTable).where(
            (WsClientIpRuleTable.client_id == client_id)
            & (WsClientIpRuleTable.ip_address == ip_address)
        )
        row = self._session.exec(statement).first()
        if row is None:
            return False
        row.is_active = False
        row.updated_at = utc_now()
        self._session.add(row)
        self._session.flush()
        return True
