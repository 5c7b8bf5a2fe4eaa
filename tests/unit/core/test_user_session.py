"""Tests for user session management."""

import time

import pytest

from src.gatehouse.core.models.provider import IdentityAssertion, ProviderType
from src.gatehouse.core.models.session import UserSession
from src.gatehouse.entities.core.account import Account


def _assertion() -> IdentityAssertion:
    return IdentityAssertion(
        provider_type=ProviderType.OIDC,
        external_id="ext-1",
        email="a@x.com",
        first_name="Ada",
        last_name="Lovelace",
    )


class TestUserSessionService:
    @pytest.mark.asyncio
    async def test_create_and_get(self, test_config, user_session_service):
        account = Account(email="a@x.com")

        created = await user_session_service.create_user_session(
            _assertion(),
            account=account,
            access_token="at",
            refresh_token="rt",
            expires_at=int(time.time()) + 60,
        )
        loaded = await user_session_service.get_user_session(created.id)

        assert loaded is not None
        assert loaded.user_id == account.id
        assert loaded.account.email == "a@x.com"
        assert loaded.claims == {
            "sub": "ext-1",
            "email": "a@x.com",
            "first_name": "Ada",
            "last_name": "Lovelace",
        }
        assert loaded.refresh_token == "rt"

    @pytest.mark.asyncio
    async def test_login_rotates_session_id(self, test_config, user_session_service):
        first = await user_session_service.create_user_session(_assertion())

        second = await user_session_service.create_user_session(
            _assertion(), replaces_session_id=first.id
        )

        assert second.id != first.id
        assert await user_session_service.get_user_session(first.id) is None
        assert await user_session_service.get_user_session(second.id) is not None

    @pytest.mark.asyncio
    async def test_save_and_delete(self, test_config, user_session_service):
        user_session = await user_session_service.create_user_session(_assertion())
        user_session.update_tokens(access_token="new-at", expires_at=123)

        await user_session_service.save_user_session(user_session)
        reloaded = await user_session_service.get_user_session(user_session.id)
        await user_session_service.delete_user_session(user_session.id)

        assert reloaded.access_token == "new-at"
        assert reloaded.expires_at == 123
        assert await user_session_service.get_user_session(user_session.id) is None

    @pytest.mark.asyncio
    async def test_list_by_account(self, test_config, user_session_service):
        ada = Account(email="a@x.com")
        bob = Account(email="b@x.com")
        await user_session_service.create_user_session(_assertion(), account=ada)
        await user_session_service.create_user_session(_assertion(), account=ada)
        await user_session_service.create_user_session(_assertion(), account=bob)

        assert len(await user_session_service.list_user_sessions()) == 3
        assert len(await user_session_service.list_user_sessions(ada.id)) == 2


class TestUserSessionModel:
    def _session(self, expires_at):
        return UserSession.create("s", "oidc", "ext-1", {}, expires_at=expires_at)

    def test_is_expired(self):
        assert self._session(int(time.time()) - 1).is_expired()
        assert not self._session(int(time.time()) + 60).is_expired()

    def test_no_expiry_is_not_expired(self):
        assert not self._session(None).is_expired()

    def test_update_tokens_keeps_unset_values(self):
        user_session = self._session(10)
        user_session.refresh_token = "rt"

        user_session.update_tokens(access_token="at")

        assert user_session.refresh_token == "rt"
        assert user_session.expires_at == 10
