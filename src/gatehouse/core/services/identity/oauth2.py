"""OAuth2 authorization code adapter with explicitly configured endpoints."""

import base64
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

from loguru import logger
from starlette.requests import Request

from src.gatehouse.core.exceptions import ProviderError
from src.gatehouse.core.models.provider import IdentityAssertion, ProviderType, TokenResponse
from src.gatehouse.core.models.session import LoginFlow, UserSession
from src.gatehouse.core.security import encode_state, generate_pkce_pair
from src.gatehouse.core.services.identity.base import IdentityProvider, LoginCompletion
from src.gatehouse.runtime.config.config_data import OAuth2ProviderConfig


@dataclass(frozen=True)
class ProviderEndpoints:
    """Endpoints of an authorization server, configured or discovered."""

    authorization_endpoint: str
    token_endpoint: str
    userinfo_endpoint: str | None = None
    end_session_endpoint: str | None = None
    jwks_uri: str | None = None
    issuer: str | None = None


def claims_to_assertion(provider_type: ProviderType, claims: dict[str, Any]) -> IdentityAssertion:
    """Normalize ID token or userinfo claims.

    Handles the OIDC standard claims as well as the common non-standard
    ``id``/``name``/``avatar_url`` shape of plain OAuth2 userinfo endpoints.
    """
    external_id = claims.get("sub") or claims.get("id")
    if not external_id:
        raise ProviderError("Provider returned no subject identifier")

    first_name = claims.get("given_name")
    last_name = claims.get("family_name")
    name = claims.get("name")
    if name and not (first_name or last_name):
        first_name, _, rest = name.partition(" ")
        last_name = rest or None

    display_name = name or " ".join(part for part in (first_name, last_name) if part) or None
    return IdentityAssertion(
        provider_type=provider_type,
        external_id=str(external_id),
        email=claims.get("email"),
        first_name=first_name,
        last_name=last_name,
        display_name=display_name,
        profile_image_url=claims.get("picture") or claims.get("avatar_url"),
    )


class OAuth2Provider(IdentityProvider[OAuth2ProviderConfig]):
    """Authorization code flow (PKCE S256) with claims read from the userinfo endpoint."""

    supports_refresh = True

    async def endpoints(self) -> ProviderEndpoints:
        return ProviderEndpoints(
            authorization_endpoint=self.config.authorization_endpoint,
            token_endpoint=self.config.token_endpoint,
            userinfo_endpoint=self.config.userinfo_endpoint,
        )

    def login_nonce(self) -> str | None:
        """Nonce to bind into the login; plain OAuth2 has none."""
        return None

    async def start_login(
        self,
        request: Request,
        *,
        callback_url: str,
        return_to: str | None,
        client_fingerprint: str,
    ) -> tuple[str, LoginFlow]:
        endpoints = await self.endpoints()
        state = encode_state(self.provider_type)
        params = {
            "client_id": self.config.client_id,
            "response_type": "code",
            "redirect_uri": callback_url,
            "scope": " ".join(self.config.scopes),
            "state": state,
        }

        nonce = self.login_nonce()
        if nonce:
            params["nonce"] = nonce

        pkce_verifier = None
        if self.config.use_pkce:
            pkce_verifier, code_challenge = generate_pkce_pair()
            params["code_challenge"] = code_challenge
            params["code_challenge_method"] = "S256"

        flow = await self._services.login_flows.create_flow(
            provider_type=self.provider_type,
            state=state,
            callback_url=callback_url,
            client_fingerprint_hash=client_fingerprint,
            return_to=return_to,
            nonce=nonce,
            pkce_verifier=pkce_verifier,
        )
        return f"{endpoints.authorization_endpoint}?{urlencode(params)}", flow

    async def authenticate_callback(
        self, request: Request, params: dict[str, str], flow: LoginFlow
    ) -> LoginCompletion:
        code = params.get("code")
        if not code:
            raise ProviderError("Callback carried no authorization code")

        endpoints = await self.endpoints()
        grant = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": flow.callback_url,
        }
        if flow.pkce_verifier:
            grant["code_verifier"] = flow.pkce_verifier
        tokens = await self.token_request(endpoints, grant)

        assertion, expires_at = await self.identify(tokens, flow, endpoints)
        return LoginCompletion(
            assertion=assertion,
            expires_at=expires_at,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            id_token=tokens.id_token,
        )

    async def identify(
        self, tokens: TokenResponse, flow: LoginFlow, endpoints: ProviderEndpoints
    ) -> tuple[IdentityAssertion, int | None]:
        """Identity and credential expiry for a fresh token response."""
        if not endpoints.userinfo_endpoint:
            raise ProviderError("No userinfo endpoint to read claims from")
        claims = await self.userinfo(endpoints.userinfo_endpoint, tokens.access_token)
        return claims_to_assertion(self.provider_type, claims), tokens.expires_at

    async def userinfo(self, userinfo_endpoint: str, access_token: str) -> dict[str, Any]:
        return await self.get_json(
            userinfo_endpoint, headers={"Authorization": f"Bearer {access_token}"}
        )

    async def token_request(
        self, endpoints: ProviderEndpoints, grant: dict[str, str]
    ) -> TokenResponse:
        """POST to the token endpoint, authenticating the client with HTTP Basic when it has a secret."""
        data = {**grant, "client_id": self.config.client_id}
        headers = {"Content-Type": "application/x-www-form-urlencoded"}

        if self.config.client_secret:
            credentials = f"{self.config.client_id}:{self.config.client_secret}"
            encoded_credentials = base64.b64encode(credentials.encode()).decode()
            headers["Authorization"] = f"Basic {encoded_credentials}"

        async with self.http_client() as client:
            response = await client.post(endpoints.token_endpoint, data=data, headers=headers)
            response.raise_for_status()
            return TokenResponse(**response.json())

    async def refresh_token(self, user_session: UserSession) -> UserSession | None:
        if not user_session.refresh_token:
            return None

        try:
            endpoints = await self.endpoints()
            tokens = await self.token_request(
                endpoints,
                {"grant_type": "refresh_token", "refresh_token": user_session.refresh_token},
            )
            expires_at = await self.refreshed_expiry(tokens, endpoints)
        except Exception as e:
            logger.warning("Token refresh failed for {}: {}", self.provider_type, e)
            return None

        user_session.update_tokens(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_at=expires_at or self.default_expiry(),
        )
        if tokens.id_token:
            user_session.id_token = tokens.id_token
        return user_session

    async def refreshed_expiry(
        self, tokens: TokenResponse, endpoints: ProviderEndpoints
    ) -> int | None:
        return tokens.expires_at

    async def provider_logout_url(self, request: Request, user_session: UserSession) -> str | None:
        if not self.config.logout_url:
            return None
        params = {"client_id": self.config.client_id, "logout_uri": self.origin(request)}
        return f"{self.config.logout_url}?{urlencode(params)}"
