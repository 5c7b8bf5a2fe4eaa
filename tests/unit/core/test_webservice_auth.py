"""Tests for webservice credential authentication."""

import base64
import time
from datetime import timedelta

import pytest
from argon2 import PasswordHasher

from src.gatehouse.core.exceptions import WebserviceAuthError
from src.gatehouse.core.services.webservice import (
    WebserviceAuthenticator,
    WebserviceAuthResult,
    WsAuthCode,
)
from src.gatehouse.entities._base import utc_now
from src.gatehouse.entities.webservice import (
    BundleStatus,
    ClientStatus,
    WsBundleRepository,
    WsClientCredentialRepository,
)
from tests.utils import count_loop_ticks


@pytest.fixture
def issued(test_config, issuance_service):
    """An active bundle ``payroll`` with one active client and credential."""
    issuance_service.create_bundle("payroll", "Payroll")
    client = issuance_service.create_client("payroll", "Acme HR")
    return issuance_service.issue_credential(client.id, label="primary")


class SlowPasswordHasher(PasswordHasher):
    """Cheap parameters, but every verify holds its thread for a while."""

    def __init__(self) -> None:
        super().__init__(time_cost=1, memory_cost=8, parallelism=1)

    def verify(self, hash, password) -> bool:
        time.sleep(0.2)
        return super().verify(hash, password)


def _last_used(database_service, credential_id):
    with database_service.session_scope() as db:
        return WsClientCredentialRepository(db).get(credential_id).last_used_at


class TestAuthenticate:
    def test_valid_credentials(self, issued, webservice_authenticator, database_service):
        result = webservice_authenticator.authenticate(
            issued.client_key, issued.client_secret, "203.0.113.9"
        )

        assert result.success
        assert result.context.client_id == issued.credential.client_id
        assert result.context.client_name == "Acme HR"
        assert result.context.bundle_code == "payroll"
        assert result.context.credential_id == issued.credential.id
        assert result.context.ip_address == "203.0.113.9"
        assert _last_used(database_service, issued.credential.id) is not None

    def test_wrong_secret(self, issued, webservice_authenticator, database_service):
        result = webservice_authenticator.authenticate(issued.client_key, "wrong", "203.0.113.9")

        assert result.code == WsAuthCode.INVALID_CREDENTIALS
        assert _last_used(database_service, issued.credential.id) is None

    def test_unknown_key(self, issued, webservice_authenticator):
        result = webservice_authenticator.authenticate("0" * 32, issued.client_secret, None)

        assert result.code == WsAuthCode.INVALID_CREDENTIALS

    def test_revoked_credential(self, issued, issuance_service, webservice_authenticator):
        issuance_service.revoke_credential(issued.credential.id)

        result = webservice_authenticator.authenticate(issued.client_key, issued.client_secret, None)

        assert result.code == WsAuthCode.INVALID_CREDENTIALS

    def test_expired_credential(self, test_config, issuance_service, webservice_authenticator):
        issuance_service.create_bundle("payroll", "Payroll")
        client = issuance_service.create_client("payroll", "Acme HR")
        expired = issuance_service.issue_credential(
            client.id, expires_at=utc_now() - timedelta(minutes=1)
        )

        result = webservice_authenticator.authenticate(expired.client_key, expired.client_secret, None)

        assert result.code == WsAuthCode.INVALID_CREDENTIALS

    def test_suspended_client(self, issued, issuance_service, webservice_authenticator, database_service):
        issuance_service.set_client_status(issued.credential.client_id, ClientStatus.SUSPENDED)

        result = webservice_authenticator.authenticate(issued.client_key, issued.client_secret, None)

        assert result.code == WsAuthCode.CLIENT_INACTIVE
        assert result.status_code == 401
        assert _last_used(database_service, issued.credential.id) is None

    def test_inactive_bundle(self, issued, webservice_authenticator, database_service):
        with database_service.session_scope() as db:
            bundles = WsBundleRepository(db)
            bundles.set_status(bundles.get_by_code("payroll").id, BundleStatus.DEPRECATED)

        result = webservice_authenticator.authenticate(issued.client_key, issued.client_secret, None)

        assert result.code == WsAuthCode.BUNDLE_INACTIVE

    def test_bundle_mismatch(self, issued, webservice_authenticator):
        result = webservice_authenticator.authenticate(
            issued.client_key, issued.client_secret, None, bundle_code="benefits"
        )

        assert result.code == WsAuthCode.BUNDLE_MISMATCH
        assert result.status_code == 403

    def test_matching_bundle_code(self, issued, webservice_authenticator):
        result = webservice_authenticator.authenticate(
            issued.client_key, issued.client_secret, None, bundle_code="payroll"
        )

        assert result.success

    def test_ip_not_allowed(self, issued, issuance_service, webservice_authenticator, database_service):
        issuance_service.allow_ip(issued.credential.client_id, "198.51.100.10")

        result = webservice_authenticator.authenticate(
            issued.client_key, issued.client_secret, "203.0.113.9"
        )

        assert result.code == WsAuthCode.IP_NOT_ALLOWED
        assert result.status_code == 403
        assert _last_used(database_service, issued.credential.id) is None

    def test_allow_listed_ip(self, issued, issuance_service, webservice_authenticator):
        issuance_service.allow_ip(issued.credential.client_id, "198.51.100.10")

        result = webservice_authenticator.authenticate(
            issued.client_key, issued.client_secret, "198.51.100.10"
        )

        assert result.success

    def test_restricted_client_without_caller_ip(self, issued, issuance_service, webservice_authenticator):
        issuance_service.allow_ip(issued.credential.client_id, "198.51.100.10")

        result = webservice_authenticator.authenticate(issued.client_key, issued.client_secret, None)

        assert result.code == WsAuthCode.IP_NOT_ALLOWED

    def test_removed_ip_rule(self, issued, issuance_service, webservice_authenticator):
        issuance_service.allow_ip(issued.credential.client_id, "198.51.100.10")
        assert issuance_service.remove_ip(issued.credential.client_id, "198.51.100.10")

        result = webservice_authenticator.authenticate(
            issued.client_key, issued.client_secret, "198.51.100.10"
        )

        assert result.code == WsAuthCode.IP_NOT_ALLOWED


class TestExtractCredentials:
    def test_headers(self, test_config, request_factory):
        request = request_factory({"X-Ws-Client-Key": "key", "X-Ws-Client-Secret": "secret"})

        assert WebserviceAuthenticator.extract_credentials(request) == ("key", "secret")

    def test_basic_auth_splits_on_first_colon(self, test_config, request_factory):
        encoded = base64.b64encode(b"key:sec:ret").decode()
        request = request_factory({"Authorization": f"Basic {encoded}"})

        assert WebserviceAuthenticator.extract_credentials(request) == ("key", "sec:ret")

    def test_missing_or_malformed(self, test_config, request_factory):
        assert WebserviceAuthenticator.extract_credentials(request_factory()) is None
        assert (
            WebserviceAuthenticator.extract_credentials(
                request_factory({"Authorization": "Basic !!notbase64"})
            )
            is None
        )
        assert (
            WebserviceAuthenticator.extract_credentials(
                request_factory({"Authorization": f"Basic {base64.b64encode(b'nocolon').decode()}"})
            )
            is None
        )
        assert (
            WebserviceAuthenticator.extract_credentials(request_factory({"Authorization": "Bearer abc"}))
            is None
        )


class TestAuthenticateRequest:
    @pytest.mark.asyncio
    async def test_missing_credentials(self, test_config, webservice_authenticator, request_factory):
        result = await webservice_authenticator.authenticate_request(request_factory())

        assert result.code == WsAuthCode.MISSING_CREDENTIALS

    @pytest.mark.asyncio
    async def test_uses_forwarded_caller_ip(
        self, issued, webservice_authenticator, request_factory
    ):
        request = request_factory(
            {
                "X-Ws-Client-Key": issued.client_key,
                "X-Ws-Client-Secret": issued.client_secret,
                "X-Forwarded-For": "203.0.113.50, 10.0.0.2",
            }
        )

        result = await webservice_authenticator.authenticate_request(request)

        assert result.success
        assert result.context.ip_address == "203.0.113.50"

    @pytest.mark.asyncio
    async def test_store_failure_is_generic_denial(
        self, issued, webservice_authenticator, request_factory, monkeypatch
    ):
        def broken(*args, **kwargs):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(webservice_authenticator, "authenticate", broken)
        request = request_factory(
            {"X-Ws-Client-Key": issued.client_key, "X-Ws-Client-Secret": issued.client_secret}
        )

        result = await webservice_authenticator.authenticate_request(request)

        assert result.code == WsAuthCode.INVALID_CREDENTIALS

    @pytest.mark.asyncio
    async def test_secret_check_does_not_block_the_event_loop(
        self, issued, database_service, request_factory
    ):
        authenticator = WebserviceAuthenticator(database_service, SlowPasswordHasher())
        request = request_factory(
            {"X-Ws-Client-Key": issued.client_key, "X-Ws-Client-Secret": issued.client_secret}
        )

        result, ticks = await count_loop_ticks(authenticator.authenticate_request(request))

        assert result.success
        assert ticks >= 5


def test_error_mapping():
    error = WebserviceAuthResult.fail(WsAuthCode.CLIENT_NOT_FOUND).to_error()

    assert isinstance(error, WebserviceAuthError)
    assert error.code == "CLIENT_NOT_FOUND"
    assert error.message == "Invalid webservice credentials"
    assert error.status_code == 401
