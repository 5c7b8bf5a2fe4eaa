import secrets

from loguru import logger

from src.gatehouse.core.models.session import LoginFlow
from src.gatehouse.core.security import sanitize_return_url
from src.gatehouse.core.storage.session_storage import SessionStorage
from src.gatehouse.runtime.context import get_config


class LoginFlowService:
    """Server-side state for logins in progress, keyed ``flow:<id>``."""

    def __init__(self, session_storage: SessionStorage) -> None:
        self._storage = session_storage

    async def create_flow(
        self,
        provider_type: str,
        state: str,
        callback_url: str,
        client_fingerprint_hash: str,
        return_to: str | None = None,
        nonce: str | None = None,
        pkce_verifier: str | None = None,
        saml_request_id: str | None = None,
    ) -> LoginFlow:
        """Persist a new login flow.

        Args:
            provider_type: Provider that is starting the login
            state: Opaque state (or SAML RelayState) the provider will echo back
            callback_url: Callback URL sent to the provider for this host
            client_fingerprint_hash: Fingerprint of the browser starting the login
            return_to: Requested post-login destination (sanitized here)
            nonce: OIDC nonce
            pkce_verifier: PKCE code verifier
            saml_request_id: ID of the SAML AuthnRequest

        Returns:
            The stored flow
        """
        config = get_config()
        ttl = config.session.flow_ttl_seconds

        flow = LoginFlow.create(
            flow_id=secrets.token_urlsafe(32),
            provider_type=provider_type,
            state=state,
            callback_url=callback_url,
            client_fingerprint_hash=client_fingerprint_hash,
            return_to=sanitize_return_url(
                return_to, allowed_hosts=config.identity.allowed_redirect_hosts
            ),
            nonce=nonce,
            pkce_verifier=pkce_verifier,
            saml_request_id=saml_request_id,
            ttl_seconds=ttl,
        )
        await self._storage.set(f"flow:{flow.id}", flow, ttl)
        return flow

    async def get_flow(self, flow_id: str) -> LoginFlow | None:
        flow = await self._storage.get(f"flow:{flow_id}", LoginFlow)
        if flow is None:
            return None
        if flow.used or flow.is_expired():
            await self._storage.delete(f"flow:{flow_id}")
            return None
        return flow

    async def consume_flow(
        self,
        flow_id: str | None,
        state: str | None,
        client_fingerprint_hash: str,
    ) -> LoginFlow | None:
        """Validate and retire a flow in one step.

        The flow is deleted whether or not validation succeeds, so a state value
        can never be replayed.

        Returns:
            The flow if ``state`` and the client fingerprint match, else None
        """
        if not flow_id or not state:
            return None

        flow = await self.get_flow(flow_id)
        await self._storage.delete(f"flow:{flow_id}")
        if flow is None:
            logger.info("Login flow missing, expired or already used")
            return None

        if not secrets.compare_digest(state, flow.state):
            logger.warning("Login flow state mismatch for provider {}", flow.provider_type)
            return None

        if get_config().session.bind_flow_to_client and not secrets.compare_digest(
            client_fingerprint_hash, flow.client_fingerprint_hash
        ):
            logger.warning("Login flow client fingerprint mismatch for provider {}", flow.provider_type)
            return None

        return flow

    async def purge_expired(self) -> None:
        await self._storage.cleanup_expired()
