"""Tests for webservice credential issuance."""

import pytest
from pydantic import ValidationError

from src.gatehouse.entities.webservice import WsClientCredentialRepository, WsClientRepository


class TestCredentialIssuanceService:
    def test_issue_credential_stores_only_hash(
        self, test_config, issuance_service, database_service, password_hasher
    ):
        issuance_service.create_bundle("payroll", "Payroll")
        client = issuance_service.create_client("payroll", "Acme HR")

        issued = issuance_service.issue_credential(client.id, label="primary")

        assert len(issued.client_key) == 32
        assert len(issued.client_secret) == 64
        with database_service.session_scope() as db:
            stored = WsClientCredentialRepository(db).get_by_client_key(issued.client_key)
        assert stored.secret_hash != issued.client_secret
        assert password_hasher.verify(stored.secret_hash, issued.client_secret)

    def test_duplicate_bundle_code(self, test_config, issuance_service):
        issuance_service.create_bundle("payroll", "Payroll")

        with pytest.raises(ValueError, match="already exists"):
            issuance_service.create_bundle("payroll", "Payroll again")

    def test_invalid_bundle_code(self, test_config, issuance_service):
        with pytest.raises(ValidationError):
            issuance_service.create_bundle("Payroll API", "Payroll")

    def test_client_needs_existing_bundle(self, test_config, issuance_service):
        with pytest.raises(ValueError, match="not found"):
            issuance_service.create_client("missing", "Acme HR")

    def test_credential_needs_existing_client(self, test_config, issuance_service):
        with pytest.raises(ValueError, match="not found"):
            issuance_service.issue_credential("no-such-client")

    def test_revoke_unknown_credential(self, test_config, issuance_service):
        assert issuance_service.revoke_credential("no-such-credential") is False

    def test_allow_ip_enables_allowlist(self, test_config, issuance_service, database_service):
        issuance_service.create_bundle("payroll", "Payroll")
        client = issuance_service.create_client("payroll", "Acme HR")

        rule = issuance_service.allow_ip(client.id, " 2001:db8::1 ")

        assert rule.ip_address == "2001:db8::1"
        with database_service.session_scope() as db:
            assert WsClientRepository(db).get(client.id).ip_allowlist_enabled is True

    def test_allow_ip_rejects_garbage(self, test_config, issuance_service):
        issuance_service.create_bundle("payroll", "Payroll")
        client = issuance_service.create_client("payroll", "Acme HR")

        with pytest.raises(ValueError):
            issuance_service.allow_ip(client.id, "not-an-address")

    def test_describe_client(self, test_config, issuance_service):
        issuance_service.create_bundle("payroll", "Payroll")
        client = issuance_service.create_client("payroll", "Acme HR")
        first = issuance_service.issue_credential(client.id, label="primary")
        second = issuance_service.issue_credential(client.id, label="rotation")
        issuance_service.revoke_credential(first.credential.id)
        issuance_service.allow_ip(client.id, "203.0.113.7")

        access = issuance_service.describe_client(client.id)

        assert access.client.ip_allowlist_enabled is True
        active = {c.id: c.is_active for c in access.credentials}
        assert active == {first.credential.id: False, second.credential.id: True}
        assert [rule.ip_address for rule in access.ip_rules] == ["203.0.113.7"]

    def test_describe_unknown_client(self, test_config, issuance_service):
        with pytest.raises(ValueError, match="not found"):
            issuance_service.describe_client("no-such-client")
