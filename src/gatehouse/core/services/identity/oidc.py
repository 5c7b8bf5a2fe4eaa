"""OpenID Connect adapter (generic OIDC issuers and Okta tenants)."""

import base64
import json
import secrets
from typing import Any
from urllib.parse import urlencode

from authlib.jose import JoseError, JsonWebKey, jwt
from loguru import logger
from starlette.requests import Request

from src.gatehouse.core.exceptions import ProviderError
from src.gatehouse.core.models.provider import IdentityAssertion, TokenResponse
from src.gatehouse.core.models.session import LoginFlow, UserSession
from src.gatehouse.core.security import generate_nonce
from src.gatehouse.core.services.identity.oauth2 import (
    OAuth2Provider,
    ProviderEndpoints,
    claims_to_assertion,
)
from src.gatehouse.runtime.config.config_data import OidcProviderConfig


def _read_jwt_header(token: str) -> dict[str, Any]:
    """Unverified JOSE header, used only to pick the algorithm and key."""
    segment = token.split(".", 1)[0]
    try:
        header = json.loads(base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4)))
    except (ValueError, UnicodeError) as e:
        raise ProviderError("Malformed ID token header") from e
    if not isinstance(header, dict):
        raise ProviderError("Malformed ID token header")
    return header


class OidcProvider(OAuth2Provider):
    """Endpoints come from the issuer's discovery document; identity comes from a verified ID token."""

    config: OidcProviderConfig

    @property
    def discovery_url(self) -> str:
        return f"{self.config.issuer.rstrip('/')}/.well-known/openid-configuration"

    async def _setup(self) -> None:
        await self.discovery()

    async def discovery(self) -> dict[str, Any]:
        """Discovery document, fetched once per issuer per cache window."""
        return await self._services.discovery_cache.get(self.config.issuer, self._fetch_discovery)

    async def _fetch_discovery(self) -> dict[str, Any]:
        document = await self.get_json(self.discovery_url)
        issuer = str(document.get("issuer", "")).rstrip("/")
        if issuer != self.config.issuer.rstrip("/"):
            raise ProviderError(f"Discovery issuer {issuer!r} does not match {self.config.issuer!r}")
        for required in ("authorization_endpoint", "token_endpoint", "jwks_uri"):
            if not document.get(required):
                raise ProviderError(f"Discovery document has no {required}")
        logger.info("Discovered OIDC configuration for {}", issuer)
        return document

    async def endpoints(self) -> ProviderEndpoints:
        document = await self.discovery()
        return ProviderEndpoints(
            authorization_endpoint=document["authorization_endpoint"],
            token_endpoint=document["token_endpoint"],
            userinfo_endpoint=document.get("userinfo_endpoint"),
            end_session_endpoint=document.get("end_session_endpoint"),
            jwks_uri=document["jwks_uri"],
            issuer=document["issuer"],
        )

    def login_nonce(self) -> str | None:
        return generate_nonce()

    async def identify(
        self, tokens: TokenResponse, flow: LoginFlow, endpoints: ProviderEndpoints
    ) -> tuple[IdentityAssertion, int | None]:
        if not tokens.id_token:
            raise ProviderError("Token response carried no ID token")

        claims = await self.verify_id_token(tokens.id_token, endpoints, flow.nonce)

        if not claims.get("email") and endpoints.userinfo_endpoint:
            userinfo = await self.userinfo(endpoints.userinfo_endpoint, tokens.access_token)
            if userinfo.get("sub") and userinfo["sub"] != claims["sub"]:
                raise ProviderError("Userinfo subject does not match the ID token")
            claims = {**userinfo, **{k: v for k, v in claims.items() if v is not None}}

        expires_at = claims.get("exp")
        return (
            claims_to_assertion(self.provider_type, claims),
            int(expires_at) if expires_at is not None else tokens.expires_at,
        )

    async def verify_id_token(
        self, id_token: str, endpoints: ProviderEndpoints, nonce: str | None
    ) -> dict[str, Any]:
        """Verify signature and registered claims of an ID token.

        The algorithm must be on the configured allowlist, the key is selected
        from the discovered JWKS by ``kid``, and issuer, audience, expiry (with
        clock skew) and nonce must all match.
        """
        header = _read_jwt_header(id_token)
        if header.get("alg") not in self.config.allowed_algorithms:
            raise ProviderError(f"Disallowed ID token algorithm {header.get('alg')!r}")

        jwks_uri = endpoints.jwks_uri
        jwks = await self._services.jwks_cache.get(jwks_uri, lambda: self.get_json(jwks_uri))
        kid = header.get("kid")
        keys = [k for k in jwks.get("keys", []) if not kid or k.get("kid") == kid]
        if not keys:
            raise ProviderError(f"No JWK matches kid={kid}")
        key = JsonWebKey.import_key(keys[0]) if len(keys) == 1 else JsonWebKey.import_key_set({"keys": keys})

        claims_options = {
            "iss": {"essential": True, "values": [endpoints.issuer]},
            "aud": {"essential": True, "values": [self.config.client_id]},
            "sub": {"essential": True},
            "exp": {"essential": True},
        }
        try:
            claims = jwt.decode(id_token, key, claims_options=claims_options)
            claims.validate(leeway=self.config.clock_skew_seconds)
        except (JoseError, ValueError) as exc:
            raise ProviderError(f"ID token rejected: {exc}") from exc

        if nonce is not None:
            token_nonce = claims.get("nonce")
            if not token_nonce or not secrets.compare_digest(str(token_nonce), nonce):
                raise ProviderError("Invalid or missing ID token nonce")

        return dict(claims)

    async def refreshed_expiry(
        self, tokens: TokenResponse, endpoints: ProviderEndpoints
    ) -> int | None:
        # A refreshed ID token carries the new credential expiry.
        if not tokens.id_token:
            return tokens.expires_at
        claims = await self.verify_id_token(tokens.id_token, endpoints, None)
        return int(claims["exp"])

    async def provider_logout_url(self, request: Request, user_session: UserSession) -> str | None:
        try:
            end_session_endpoint = (await self.endpoints()).end_session_endpoint
        except Exception as e:
            logger.warning("Skipping {} central logout: {}", self.provider_type, e)
            return None
        if not end_session_endpoint:
            return None

        params = {
            "client_id": self.config.client_id,
            "post_logout_redirect_uri": self.origin(request),
        }
        if user_session.id_token:
            params["id_token_hint"] = user_session.id_token
        return f"{end_session_endpoint}?{urlencode(params)}"
