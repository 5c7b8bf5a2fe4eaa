"""Machine-to-machine authentication with client key/secret credentials."""

import base64
import binascii
import secrets
from enum import StrEnum

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from fastapi import Request
from loguru import logger
from pydantic import BaseModel
from starlette import status
from starlette.concurrency import run_in_threadpool

from src.gatehouse.core.exceptions import WebserviceAuthError
from src.gatehouse.core.security import extract_client_ip
from src.gatehouse.core.services.database.db_session import DbSessionService
from src.gatehouse.entities.webservice import (
    BundleStatus,
    ClientStatus,
    WsBundleRepository,
    WsClientCredentialRepository,
    WsClientIpRuleRepository,
    WsClientRepository,
)
from src.gatehouse.runtime.config.config_data import WebserviceConfig
from src.gatehouse.runtime.context import get_config
from src.gatehouse.runtime.request_context import WebServiceContext


class WsAuthCode(StrEnum):
    MISSING_CREDENTIALS = "MISSING_CREDENTIALS"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    CLIENT_NOT_FOUND = "CLIENT_NOT_FOUND"
    CLIENT_INACTIVE = "CLIENT_INACTIVE"
    BUNDLE_INACTIVE = "BUNDLE_INACTIVE"
    BUNDLE_MISMATCH = "BUNDLE_MISMATCH"
    IP_NOT_ALLOWED = "IP_NOT_ALLOWED"


_MESSAGES = {
    WsAuthCode.MISSING_CREDENTIALS: "Webservice credentials required",
    WsAuthCode.INVALID_CREDENTIALS: "Invalid webservice credentials",
    WsAuthCode.CLIENT_NOT_FOUND: "Invalid webservice credentials",
    WsAuthCode.CLIENT_INACTIVE: "Webservice client is not active",
    WsAuthCode.BUNDLE_INACTIVE: "Webservice bundle is not active",
    WsAuthCode.BUNDLE_MISMATCH: "Client is not entitled to this webservice",
    WsAuthCode.IP_NOT_ALLOWED: "Caller address is not allowed",
}


class WebserviceAuthResult(BaseModel):
    """Outcome of one authentication attempt."""

    code: WsAuthCode | None = None
    context: WebServiceContext | None = None

    @property
    def success(self) -> bool:
        return self.code is None and self.context is not None

    @property
    def status_code(self) -> int:
        if self.code in (WsAuthCode.IP_NOT_ALLOWED, WsAuthCode.BUNDLE_MISMATCH):
            return status.HTTP_403_FORBIDDEN
        return status.HTTP_401_UNAUTHORIZED

    def to_error(self) -> WebserviceAuthError:
        return WebserviceAuthError(self.code.value, _MESSAGES[self.code], self.status_code)

    @classmethod
    def fail(cls, code: WsAuthCode) -> "WebserviceAuthResult":
        return cls(code=code)


def build_password_hasher(config: WebserviceConfig | None = None) -> PasswordHasher:
    """Argon2id hasher for client secrets."""
    config = config or get_config().webservice
    return PasswordHasher(
        time_cost=config.argon2_time_cost,
        memory_cost=config.argon2_memory_cost,
        parallelism=config.argon2_parallelism,
    )


class WebserviceAuthenticator:
    def __init__(
        self, database_service: DbSessionService, hasher: PasswordHasher | None = None
    ) -> None:
        self._database = database_service
        self._hasher = hasher or build_password_hasher()
        # Unknown keys are verified against this so they cost the same as known ones
        self._dummy_hash = self._hasher.hash(secrets.token_urlsafe(24))

    @staticmethod
    def extract_credentials(request: Request) -> tuple[str, str] | None:
        """Key and secret from the client headers, else from HTTP Basic auth."""
        config = get_config().webservice
        client_key = request.headers.get(config.key_header)
        client_secret = request.headers.get(config.secret_header)
        if client_key and client_secret:
            return client_key, client_secret

        authorization = request.headers.get("authorization", "")
        scheme, _, encoded = authorization.partition(" ")
        if scheme.lower() != "basic" or not encoded:
            return None
        try:
            decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            return None
        client_key, separator, client_secret = decoded.partition(":")
        if not separator or not client_key or not client_secret:
            return None
        return client_key, client_secret

    def _verify_secret(self, secret_hash: str, client_secret: str) -> bool:
        try:
            return self._hasher.verify(secret_hash, client_secret)
        except (VerificationError, InvalidHashError):
            return False

    def authenticate(
        self,
        client_key: str,
        client_secret: str,
        ip_address: str | None,
        bundle_code: str | None = None,
    ) -> WebserviceAuthResult:
        """Check a credential against the store and the route's requirements.

        ``last_used_at`` is written only when every check passes.
        """
        with self._database.session_scope() as db:
            credentials = WsClientCredentialRepository(db)
            credential = credentials.get_by_client_key(client_key)
            if credential is None:
                self._verify_secret(self._dummy_hash, client_secret)
                return WebserviceAuthResult.fail(WsAuthCode.INVALID_CREDENTIALS)

            if not self._verify_secret(credential.secret_hash, client_secret):
                return WebserviceAuthResult.fail(WsAuthCode.INVALID_CREDENTIALS)
            if not credential.is_active or credential.is_expired():
                return WebserviceAuthResult.fail(WsAuthCode.INVALID_CREDENTIALS)

            client = WsClientRepository(db).get(credential.client_id)
            if client is None:
                return WebserviceAuthResult.fail(WsAuthCode.CLIENT_NOT_FOUND)
            if client.status != ClientStatus.ACTIVE:
                return WebserviceAuthResult.fail(WsAuthCode.CLIENT_INACTIVE)

            bundle = WsBundleRepository(db).get(client.bundle_id)
            if bundle is None or bundle.status != BundleStatus.ACTIVE:
                return WebserviceAuthResult.fail(WsAuthCode.BUNDLE_INACTIVE)
            if bundle_code is not None and bundle.code != bundle_code:
                return WebserviceAuthResult.fail(WsAuthCode.BUNDLE_MISMATCH)

            if client.ip_allowlist_enabled and (
                not ip_address or not WsClientIpRuleRepository(db).is_allowed(client.id, ip_address)
            ):
                return WebserviceAuthResult.fail(WsAuthCode.IP_NOT_ALLOWED)

            credentials.record_usage(credential.id)

        return WebserviceAuthResult(
            context=WebServiceContext(
                client_id=client.id,
                client_name=client.name,
                bundle_id=bundle.id,
                bundle_code=bundle.code,
                credential_id=credential.id,
                ip_address=ip_address,
            )
        )

    async def authenticate_request(
        self, request: Request, bundle_code: str | None = None
    ) -> WebserviceAuthResult:
        """Authenticate the caller of ``request``; store errors become a generic denial.

        Hashing and the database lookups run in the threadpool.
        """
        ip_address = extract_client_ip(request)
        credentials = self.extract_credentials(request)

        if credentials is None:
            result = WebserviceAuthResult.fail(WsAuthCode.MISSING_CREDENTIALS)
        else:
            try:
                result = await run_in_threadpool(
                    self.authenticate, *credentials, ip_address, bundle_code
                )
            except Exception:
                logger.exception("Webservice authentication failed unexpectedly")
                result = WebserviceAuthResult.fail(WsAuthCode.INVALID_CREDENTIALS)

        log = logger.bind(ip_address=ip_address, method=request.method, path=request.url.path)
        if result.success:
            log.info(
                "Webservice client {} authenticated for bundle {}",
                result.context.client_id,
                result.context.bundle_code,
            )
        else:
            log.warning("Webservice authentication rejected: {}", result.code)
        return result
