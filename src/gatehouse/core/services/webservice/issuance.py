"""Administration of webservice bundles, clients, credentials and IP rules."""

import ipaddress
import secrets
from dataclasses import dataclass
from datetime import datetime

from argon2 import PasswordHasher
from loguru import logger

from src.gatehouse.core.services.database.db_session import DbSessionService
from src.gatehouse.core.services.webservice.authenticator import build_password_hasher
from src.gatehouse.entities.webservice import (
    ClientStatus,
    WsBundle,
    WsBundleRepository,
    WsClient,
    WsClientCredential,
    WsClientCredentialRepository,
    WsClientIpRule,
    WsClientIpRuleRepository,
    WsClientRepository,
)


@dataclass(frozen=True)
class IssuedCredential:
    """A freshly issued credential. ``client_secret`` is never retrievable again."""

    credential: WsClientCredential
    client_key: str
    client_secret: str


@dataclass(frozen=True)
class ClientAccess:
    """Everything that decides whether a client can call in: its credentials and IP rules."""

    client: WsClient
    credentials: list[WsClientCredential]
    ip_rules: list[WsClientIpRule]


class CredentialIssuanceService:
    def __init__(
        self, database_service: DbSessionService, hasher: PasswordHasher | None = None
    ) -> None:
        self._database = database_service
        self._hasher = hasher or build_password_hasher()

    def create_bundle(
        self,
        code: str,
        name: str,
        description: str | None = None,
        version: str = "1.0.0",
    ) -> WsBundle:
        bundle = WsBundle(code=code, name=name, description=description, version=version)
        with self._database.session_scope() as db:
            repository = WsBundleRepository(db)
            if repository.get_by_code(code) is not None:
                raise ValueError(f"Bundle '{code}' already exists")
            bundle = repository.create(bundle)
        logger.info("Created webservice bundle {}", bundle.code)
        return bundle

    def create_client(
        self,
        bundle_code: str,
        name: str,
        description: str | None = None,
        ip_allowlist_enabled: bool = False,
    ) -> WsClient:
        with self._database.session_scope() as db:
            bundle = WsBundleRepository(db).get_by_code(bundle_code)
            if bundle is None:
                raise ValueError(f"Bundle '{bundle_code}' not found")
            client = WsClientRepository(db).create(
                WsClient(
                    name=name,
                    description=description,
                    bundle_id=bundle.id,
                    ip_allowlist_enabled=ip_allowlist_enabled,
                )
            )
        logger.info("Created webservice client {} in bundle {}", client.id, bundle_code)
        return client

    def set_client_status(self, client_id: str, client_status: ClientStatus) -> None:
        with self._database.session_scope() as db:
            WsClientRepository(db).set_status(client_id, client_status)
        logger.info("Webservice client {} is now {}", client_id, client_status)

    def issue_credential(
        self,
        client_id: str,
        label: str | None = None,
        expires_at: datetime | None = None,
    ) -> IssuedCredential:
        """Generate a key/secret pair for a client and store only the secret's hash."""
        client_key = secrets.token_hex(16)
        client_secret = secrets.token_hex(32)

        with self._database.session_scope() as db:
            if WsClientRepository(db).get(client_id) is None:
                raise ValueError(f"Client {client_id} not found")
            credential = WsClientCredentialRepository(db).create(
                WsClientCredential(
                    client_id=client_id,
                    client_key=client_key,
                    secret_hash=self._hasher.hash(client_secret),
                    label=label,
                    expires_at=expires_at,
                )
            )
        logger.info("Issued credential {} for webservice client {}", credential.id, client_id)
        return IssuedCredential(
            credential=credential, client_key=client_key, client_secret=client_secret
        )

    def revoke_credential(self, credential_id: str) -> bool:
        with self._database.session_scope() as db:
            revoked = WsClientCredentialRepository(db).deactivate(credential_id)
        if revoked:
            logger.info("Revoked webservice credential {}", credential_id)
        return revoked

    def allow_ip(
        self, client_id: str, ip_address: str, description: str | None = None
    ) -> WsClientIpRule:
        """Add an allow-list rule and switch the client's allow-list on."""
        address = str(ipaddress.ip_address(ip_address.strip()))
        with self._database.session_scope() as db:
            clients = WsClientRepository(db)
            if clients.get(client_id) is None:
                raise ValueError(f"Client {client_id} not found")
            rule = WsClientIpRuleRepository(db).create(
                WsClientIpRule(client_id=client_id, ip_address=address, description=description)
            )
            clients.set_ip_allowlist(client_id, True)
        logger.info("Allowed {} for webservice client {}", address, client_id)
        return rule

    def remove_ip(self, client_id: str, ip_address: str) -> bool:
        with self._database.session_scope() as db:
            return WsClientIpRuleRepository(db).deactivate(client_id, ip_address.strip())

    def describe_client(self, client_id: str) -> ClientAccess:
        with self._database.session_scope() as db:
            client = WsClientRepository(db).get(client_id)
            if client is None:
                raise ValueError(f"Client {client_id} not found")
            return ClientAccess(
                client=client,
                credentials=WsClientCredentialRepository(db).list_for_client(client_id),
                ip_rules=WsClientIpRuleRepository(db).list_for_client(client_id),
            )
