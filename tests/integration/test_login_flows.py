"""End-to-end browser login flows against in-process fake identity providers."""

import time

import pytest

from src.gatehouse.core.security import unsign_session_id
from src.gatehouse.entities.core.account import AccountRepository, AccountStatus
from src.gatehouse.entities.core.external_identity import ExternalIdentityRepository
from tests.fixtures.core import ISSUER, OAUTH_BASE, SAML_IDP_ISSUER, SP_ENTITY_ID
from tests.utils import build_saml_response, decode_authn_request, query_params

CALLBACK_URL = "https://app.test/callback"


async def _oauth_login(client, fake_idp, provider: str | None = None, return_to: str = "/home"):
    """Run login -> provider consent -> callback; returns the callback response."""
    params = {"return_to": return_to}
    if provider:
        params["provider"] = provider
    login = await client.get("/login", params=params)
    assert login.status_code == 302

    return await client.get("/callback", params=fake_idp.authorize(login.headers["location"]))


def _session_id(client, test_config) -> str | None:
    return unsign_session_id(client.cookies.get(test_config.session.cookie_name))


class TestOidcLogin:
    @pytest.mark.asyncio
    async def test_full_login(self, client, fake_idp, account_admin, test_config):
        account_admin.create_account("a@x.com")

        callback = await _oauth_login(client, fake_idp)

        assert callback.status_code == 302
        assert callback.headers["location"] == "/home"
        assert _session_id(client, test_config)

        me = await client.get("/auth/me")
        assert me.status_code == 200
        assert me.json()["email"] == "a@x.com"
        assert me.json()["first_name"] == "Ada"
        assert me.json()["provider_type"] == "oidc"

    @pytest.mark.asyncio
    async def test_unprovisioned_account_rejected(self, client, fake_idp, test_config):
        callback = await _oauth_login(client, fake_idp)

        assert callback.status_code == 302
        assert callback.headers["location"] == "/auth-error"
        assert _session_id(client, test_config) is None
        assert (await client.get("/auth/me")).status_code == 401

    @pytest.mark.asyncio
    async def test_auto_provision(self, client, fake_idp, app_dependencies, database_service):
        app_dependencies.provider_registry.get("oidc").config.auto_provision = True

        callback = await _oauth_login(client, fake_idp)

        assert callback.headers["location"] == "/home"
        with database_service.session_scope() as db:
            account = AccountRepository(db).get_by_email("a@x.com")
        assert account is not None
        assert account.first_name == "Ada"

    @pytest.mark.asyncio
    async def test_replayed_callback_rejected(self, client, fake_idp, account_admin):
        account_admin.create_account("a@x.com")
        login = await client.get("/login")
        flow_cookie = login.cookies
        params = fake_idp.authorize(login.headers["location"])
        assert (await client.get("/callback", params=params)).headers["location"] == "/"

        client.cookies.update(flow_cookie)
        replay = await client.get("/callback", params=params)

        assert replay.headers["location"] == "/auth-error"

    @pytest.mark.asyncio
    async def test_provider_error_response(self, client, fake_idp, account_admin):
        account_admin.create_account("a@x.com")
        login = await client.get("/login")
        state = query_params(login.headers["location"])["state"]

        callback = await client.get("/callback", params={"error": "access_denied", "state": state})

        assert callback.headers["location"] == "/auth-error"
        assert fake_idp.count("/token") == 0

    @pytest.mark.asyncio
    async def test_login_rotates_session(self, client, fake_idp, account_admin, test_config, app_dependencies):
        account_admin.create_account("a@x.com")
        await _oauth_login(client, fake_idp)
        first = _session_id(client, test_config)

        await _oauth_login(client, fake_idp)
        second = _session_id(client, test_config)

        assert second != first
        assert await app_dependencies.user_session_service.get_user_session(first) is None

    @pytest.mark.asyncio
    async def test_expired_session_is_refreshed(
        self, client, fake_idp, account_admin, test_config, app_dependencies
    ):
        account_admin.create_account("a@x.com")
        await _oauth_login(client, fake_idp)
        user_sessions = app_dependencies.user_session_service
        user_session = await user_sessions.get_user_session(_session_id(client, test_config))
        user_session.expires_at = int(time.time()) - 1
        await user_sessions.save_user_session(user_session)

        me = await client.get("/auth/me")

        assert me.status_code == 200
        assert fake_idp.count("/token") == 2
        refreshed = await user_sessions.get_user_session(user_session.id)
        assert refreshed.access_token == "access-2"
        assert not refreshed.is_expired()

    @pytest.mark.asyncio
    async def test_expired_session_without_refresh_token(
        self, client, fake_idp, account_admin, test_config, app_dependencies
    ):
        fake_idp.refresh_token = None
        account_admin.create_account("a@x.com")
        await _oauth_login(client, fake_idp)
        user_sessions = app_dependencies.user_session_service
        user_session = await user_sessions.get_user_session(_session_id(client, test_config))
        user_session.expires_at = int(time.time()) - 1
        await user_sessions.save_user_session(user_session)

        me = await client.get("/auth/me")

        assert me.status_code == 401
        assert fake_idp.count("/token") == 1

    @pytest.mark.asyncio
    async def test_logout(self, client, fake_idp, account_admin, audit_sink, app_dependencies, test_config):
        account_admin.create_account("a@x.com")
        await _oauth_login(client, fake_idp)
        session_id = _session_id(client, test_config)

        logout = await client.get("/logout")
        await app_dependencies.audit_service.drain()

        assert logout.status_code == 302
        location = logout.headers["location"]
        assert location.startswith(f"{ISSUER}/logout?")
        assert query_params(location)["id_token_hint"]
        assert await app_dependencies.user_session_service.get_user_session(session_id) is None
        assert audit_sink.actions() == ["login.account_linked", "logout"]
        assert audit_sink.events[1].email == "a@x.com"
        assert (await client.get("/auth/me")).status_code == 401


class TestOktaLogin:
    @pytest.mark.asyncio
    async def test_first_login_links_account(
        self, client, fake_idp, account_admin, audit_sink, app_dependencies, database_service
    ):
        account = account_admin.create_account("a@x.com")

        callback = await _oauth_login(client, fake_idp, provider="okta")
        await app_dependencies.audit_service.drain()

        assert callback.headers["location"] == "/home"
        with database_service.session_scope() as db:
            identity = ExternalIdentityRepository(db).get_by_provider_external_id("okta", "ext-1")
            linked = AccountRepository(db).get(account.id)
        assert identity.user_id == account.id
        assert linked.account_status == AccountStatus.LINKED

        sessions = await app_dependencies.user_session_service.list_user_sessions(account.id)
        assert [s.provider_type for s in sessions] == ["okta"]

        login_event = audit_sink.events[0]
        assert login_event.action == "login.account_linked"
        assert login_event.provider_type == "okta"
        assert login_event.details["account_linked"] is True
        assert fake_idp.count("/oauth2/default/token") == 1


class TestOAuth2Login:
    @pytest.mark.asyncio
    async def test_full_login(self, client, fake_idp, account_admin):
        account_admin.create_account("a@x.com")

        login = await client.get("/login", params={"provider": "oauth"})
        assert login.headers["location"].startswith(f"{OAUTH_BASE}/authorize?")
        callback = await client.get("/callback", params=fake_idp.authorize(login.headers["location"]))

        assert callback.headers["location"] == "/"
        me = await client.get("/auth/me")
        assert me.status_code == 200
        assert me.json()["provider_type"] == "oauth"
        assert fake_idp.count("/userinfo") == 1


class TestSamlLogin:
    async def _login(self, client):
        login = await client.get("/login", params={"provider": "saml", "return_to": "/reports"})
        location = login.headers["location"]
        return decode_authn_request(location).get("ID"), query_params(location)["RelayState"]

    @pytest.mark.asyncio
    async def test_full_login(self, client, account_admin):
        account_admin.create_account("jane@example.com")
        request_id, relay_state = await self._login(client)
        saml_response = build_saml_response(
            request_id, CALLBACK_URL, SP_ENTITY_ID, issuer=SAML_IDP_ISSUER
        )

        callback = await client.post(
            "/callback", data={"SAMLResponse": saml_response, "RelayState": relay_state}
        )

        assert callback.status_code == 302
        assert callback.headers["location"] == "/reports"
        me = await client.get("/auth/me")
        assert me.json()["email"] == "jane@example.com"
        assert me.json()["provider_type"] == "saml"

    @pytest.mark.asyncio
    async def test_response_for_another_request(self, client, account_admin):
        account_admin.create_account("jane@example.com")
        _, relay_state = await self._login(client)
        saml_response = build_saml_response(
            "_unsolicited", CALLBACK_URL, SP_ENTITY_ID, issuer=SAML_IDP_ISSUER
        )

        callback = await client.post(
            "/callback", data={"SAMLResponse": saml_response, "RelayState": relay_state}
        )

        assert callback.headers["location"] == "/auth-error"
        assert (await client.get("/auth/me")).status_code == 401

    @pytest.mark.asyncio
    async def test_local_logout(self, client, account_admin):
        account_admin.create_account("jane@example.com")
        request_id, relay_state = await self._login(client)
        saml_response = build_saml_response(
            request_id, CALLBACK_URL, SP_ENTITY_ID, issuer=SAML_IDP_ISSUER
        )
        await client.post("/callback", data={"SAMLResponse": saml_response, "RelayState": relay_state})

        logout = await client.get("/logout")

        assert logout.headers["location"] == "/"
        assert (await client.get("/auth/me")).status_code == 401
