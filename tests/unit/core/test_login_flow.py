"""Tests for login flow state."""

from unittest.mock import patch

import pytest

from src.gatehouse.runtime.config.config_data import ConfigData, SessionConfig
from src.gatehouse.runtime.context import with_context


async def _create(login_flow_service, **overrides):
    values = {
        "provider_type": "oidc",
        "state": "state-1",
        "callback_url": "https://app.test/callback",
        "client_fingerprint_hash": "fp-1",
        "return_to": "/dashboard",
        "nonce": "nonce-1",
        "pkce_verifier": "verifier-1",
    }
    return await login_flow_service.create_flow(**{**values, **overrides})


class TestLoginFlowService:
    @pytest.mark.asyncio
    async def test_consume_returns_flow_once(self, test_config, login_flow_service):
        flow = await _create(login_flow_service)

        consumed = await login_flow_service.consume_flow(flow.id, "state-1", "fp-1")
        replayed = await login_flow_service.consume_flow(flow.id, "state-1", "fp-1")

        assert consumed is not None
        assert consumed.nonce == "nonce-1"
        assert consumed.pkce_verifier == "verifier-1"
        assert consumed.return_to == "/dashboard"
        assert replayed is None

    @pytest.mark.asyncio
    async def test_state_mismatch_burns_flow(self, test_config, login_flow_service):
        flow = await _create(login_flow_service)

        assert await login_flow_service.consume_flow(flow.id, "forged", "fp-1") is None
        assert await login_flow_service.consume_flow(flow.id, "state-1", "fp-1") is None

    @pytest.mark.asyncio
    async def test_fingerprint_mismatch(self, test_config, login_flow_service):
        flow = await _create(login_flow_service)

        assert await login_flow_service.consume_flow(flow.id, "state-1", "other-browser") is None

    @pytest.mark.asyncio
    async def test_fingerprint_binding_can_be_disabled(self, test_config, login_flow_service):
        flow = await _create(login_flow_service)

        with with_context(ConfigData(session=SessionConfig(bind_flow_to_client=False))):
            consumed = await login_flow_service.consume_flow(flow.id, "state-1", "other-browser")

        assert consumed is not None

    @pytest.mark.asyncio
    async def test_expired_flow(self, test_config, login_flow_service):
        flow = await _create(login_flow_service)

        with patch("src.gatehouse.core.models.session.time.time", return_value=flow.expires_at + 1):
            assert await login_flow_service.get_flow(flow.id) is None

    @pytest.mark.asyncio
    async def test_missing_cookie_or_state(self, test_config, login_flow_service):
        flow = await _create(login_flow_service)

        assert await login_flow_service.consume_flow(None, "state-1", "fp-1") is None
        assert await login_flow_service.consume_flow(flow.id, None, "fp-1") is None

    @pytest.mark.asyncio
    async def test_open_redirect_is_sanitized(self, test_config, login_flow_service):
        flow = await _create(login_flow_service, return_to="https://evil.example/")

        assert flow.return_to == "/"
