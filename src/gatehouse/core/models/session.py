"""Server-side session models."""

import time
from typing import Any

from pydantic import BaseModel, Field

from src.gatehouse.entities.core.account import Account


class LoginFlow(BaseModel):
    """Short-lived state for one in-progress external login. Single use."""

    id: str = Field(description="Flow identifier (stored in the flow cookie)")
    provider_type: str = Field(description="Provider that started the flow")
    state: str = Field(description="State/RelayState value echoed by the provider")
    nonce: str | None = Field(default=None, description="OIDC nonce bound into the ID token")
    pkce_verifier: str | None = Field(default=None, description="PKCE code verifier")
    saml_request_id: str | None = Field(default=None, description="AuthnRequest ID for InResponseTo")
    callback_url: str = Field(description="Callback URL sent to the provider")
    return_to: str = Field(default="/", description="Sanitized post-login redirect")
    client_fingerprint_hash: str = Field(description="Client context fingerprint")
    created_at: int = Field(description="Creation timestamp")
    expires_at: int = Field(description="Expiration timestamp")
    used: bool = Field(default=False, description="Whether the flow has been consumed")

    @classmethod
    def create(
        cls,
        flow_id: str,
        provider_type: str,
        state: str,
        callback_url: str,
        client_fingerprint_hash: str,
        return_to: str = "/",
        nonce: str | None = None,
        pkce_verifier: str | None = None,
        saml_request_id: str | None = None,
        ttl_seconds: int = 600,
    ) -> "LoginFlow":
        now = int(time.time())
        return cls(
            id=flow_id,
            provider_type=provider_type,
            state=state,
            nonce=nonce,
            pkce_verifier=pkce_verifier,
            saml_request_id=saml_request_id,
            callback_url=callback_url,
            return_to=return_to,
            client_fingerprint_hash=client_fingerprint_hash,
            created_at=now,
            expires_at=now + ttl_seconds,
        )

    def is_expired(self) -> bool:
        return time.time() > self.expires_at


class UserSession(BaseModel):
    """Authenticated human session.

    ``expires_at`` is when the provider-issued credentials stop being valid; the
    session record itself lives in storage for the configured session TTL.
    """

    id: str = Field(description="Session identifier")
    provider_type: str = Field(description="Provider that authenticated the user")
    external_id: str = Field(description="Subject at the provider")
    user_id: str | None = Field(default=None, description="Resolved account ID")
    claims: dict[str, Any] = Field(default_factory=dict, description="Minimal subject claims")
    access_token: str | None = Field(default=None, description="Provider access token")
    refresh_token: str | None = Field(default=None, description="Provider refresh token")
    id_token: str | None = Field(default=None, description="OIDC ID token (logout hint)")
    expires_at: int | None = Field(default=None, description="Credential expiry timestamp")
    account: Account | None = Field(default=None, description="Cached account snapshot")
    created_at: int = Field(description="Creation timestamp")
    last_accessed_at: int = Field(description="Last access timestamp")

    @classmethod
    def create(
        cls,
        session_id: str,
        provider_type: str,
        external_id: str,
        claims: dict[str, Any],
        account: Account | None = None,
        access_token: str | None = None,
        refresh_token: str | None = None,
        id_token: str | None = None,
        expires_at: int | None = None,
    ) -> "UserSession":
        now = int(time.time())
        return cls(
            id=session_id,
            provider_type=provider_type,
            external_id=external_id,
            user_id=account.id if account else None,
            claims=claims,
            access_token=access_token,
            refresh_token=refresh_token,
            id_token=id_token,
            expires_at=expires_at,
            account=account,
            created_at=now,
            last_accessed_at=now,
        )

    def is_expired(self, now: float | None = None) -> bool:
        """True when the credential expiry has passed. A session with no expiry is not 'expired'."""
        if self.expires_at is None:
            return False
        return (now if now is not None else time.time()) >= self.expires_at

    def update_tokens(
        self,
        access_token: str | None = None,
        refresh_token: str | None = None,
        expires_at: int | None = None,
    ) -> None:
        if access_token is not None:
            self.access_token = access_token
        if refresh_token is not None:
            self.refresh_token = refresh_token
        if expires_at is not None:
            self.expires_at = expires_at
        self.last_accessed_at = int(time.time())
