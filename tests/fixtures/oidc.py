"""Fake identity provider answering discovery, JWKS, token and userinfo calls."""

from typing import Any
from urllib.parse import parse_qsl

import httpx
import pytest

from tests.fixtures.core import CLIENT_ID, HS_KEY, KID
from tests.utils import id_token_claims, query_params, sign_id_token

DISCOVERY_SUFFIX = "/.well-known/openid-configuration"


class FakeIdentityProvider:
    """In-process stand-in for every issuer a test talks to.

    Endpoints live under the issuer URL (``{issuer}/token``, ``{issuer}/jwks``
    and so on), so one instance serves the OIDC, Okta and OAuth2 test issuers.
    Plug ``transport`` into the adapters' httpx clients.
    """

    def __init__(self, jwks: dict[str, Any]) -> None:
        self.jwks = jwks
        self.requests: list[httpx.Request] = []
        self.token_requests: list[dict[str, str]] = []
        self.subject = "ext-1"
        self.claims: dict[str, Any] = {
            "email": "a@x.com",
            "given_name": "Ada",
            "family_name": "Lovelace",
            "name": "Ada Lovelace",
        }
        self.userinfo_claims: dict[str, Any] | None = None
        self.nonce: str | None = None
        self.include_id_token = True
        self.id_token_lifetime = 3600
        self.token_status = 200
        self.discovery_status = 200
        self.refresh_token = "refresh-1"
        self._issued = 0

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def authorize(self, location: str) -> dict[str, str]:
        """Play the user consenting at the authorization endpoint.

        Returns the query parameters the provider would send to the callback.
        """
        params = query_params(location)
        self.nonce = params.get("nonce")
        return {"code": f"code-{len(self.token_requests) + 1}", "state": params["state"]}

    def count(self, path_suffix: str) -> int:
        return sum(1 for request in self.requests if request.url.path.endswith(path_suffix))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url).split("?", 1)[0]

        if url.endswith(DISCOVERY_SUFFIX):
            if self.discovery_status != 200:
                return httpx.Response(self.discovery_status)
            return httpx.Response(200, json=self.discovery(url[: -len(DISCOVERY_SUFFIX)]))
        if url.endswith("/jwks"):
            return httpx.Response(200, json=self.jwks)
        if url.endswith("/token"):
            return self._token(request, url[: -len("/token")])
        if url.endswith("/userinfo"):
            claims = self.userinfo_claims if self.userinfo_claims is not None else self.claims
            return httpx.Response(200, json={"sub": self.subject, **claims})
        return httpx.Response(404)

    def discovery(self, issuer: str) -> dict[str, Any]:
        return {
            "issuer": issuer,
            "authorization_endpoint": f"{issuer}/authorize",
            "token_endpoint": f"{issuer}/token",
            "userinfo_endpoint": f"{issuer}/userinfo",
            "end_session_endpoint": f"{issuer}/logout",
            "jwks_uri": f"{issuer}/jwks",
            "id_token_signing_alg_values_supported": ["HS256"],
        }

    def id_token(self, issuer: str, nonce: str | None = None, **overrides: Any) -> str:
        claims = id_token_claims(
            issuer, CLIENT_ID, self.subject, nonce=nonce, lifetime=self.id_token_lifetime, **self.claims
        )
        claims.update(overrides)
        return sign_id_token(claims, HS_KEY, KID)

    def _token(self, request: httpx.Request, issuer: str) -> httpx.Response:
        form = dict(parse_qsl(request.content.decode("utf-8")))
        self.token_requests.append(form)
        if self.token_status != 200:
            return httpx.Response(self.token_status, json={"error": "invalid_grant"})

        self._issued += 1
        body: dict[str, Any] = {
            "access_token": f"access-{self._issued}",
            "token_type": "Bearer",
            "expires_in": 3600,
            "refresh_token": self.refresh_token,
        }
        if self.include_id_token:
            nonce = self.nonce if form.get("grant_type") == "authorization_code" else None
            body["id_token"] = self.id_token(issuer, nonce)
        return httpx.Response(200, json=body)


@pytest.fixture
def fake_idp(jwks_data: dict[str, Any]) -> FakeIdentityProvider:
    return FakeIdentityProvider(jwks_data)
