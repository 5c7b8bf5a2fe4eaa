import secrets

from src.gatehouse.core.models.provider import IdentityAssertion
from src.gatehouse.core.models.session import UserSession
from src.gatehouse.core.storage.session_storage import SessionStorage
from src.gatehouse.entities.core.account import Account
from src.gatehouse.runtime.context import get_config


class UserSessionService:
    """Service for managing authenticated user sessions, keyed ``user:<id>``."""

    def __init__(self, session_storage: SessionStorage) -> None:
        self._storage = session_storage

    @staticmethod
    def _key(session_id: str) -> str:
        return f"user:{session_id}"

    async def create_user_session(
        self,
        assertion: IdentityAssertion,
        account: Account | None = None,
        access_token: str | None = None,
        refresh_token: str | None = None,
        id_token: str | None = None,
        expires_at: int | None = None,
        replaces_session_id: str | None = None,
    ) -> UserSession:
        """Establish a new session after a successful login.

        Args:
            assertion: Identity asserted by the provider
            account: Resolved account, cached on the session
            access_token: Provider access token
            refresh_token: Provider refresh token
            id_token: OIDC ID token, kept for the logout hint
            expires_at: Credential expiry timestamp
            replaces_session_id: Previous session of this browser, destroyed so
                the session ID always rotates on login

        Returns:
            The stored session
        """
        if replaces_session_id:
            await self.delete_user_session(replaces_session_id)

        user_session = UserSession.create(
            session_id=secrets.token_urlsafe(32),
            provider_type=assertion.provider_type,
            external_id=assertion.external_id,
            claims=assertion.minimal_claims(),
            account=account,
            access_token=access_token,
            refresh_token=refresh_token,
            id_token=id_token,
            expires_at=expires_at,
        )
        await self.save_user_session(user_session)
        return user_session

    async def get_user_session(self, session_id: str) -> UserSession | None:
        """Load a session by ID; None if it does not exist or its storage TTL lapsed."""
        return await self._storage.get(self._key(session_id), UserSession)

    async def save_user_session(self, user_session: UserSession) -> None:
        """Write a session back, for example after a token refresh."""
        await self._storage.set(
            self._key(user_session.id), user_session, get_config().session.ttl_seconds
        )

    async def delete_user_session(self, session_id: str) -> None:
        await self._storage.delete(self._key(session_id))

    async def list_user_sessions(self, user_id: str | None = None) -> list[UserSession]:
        """List live sessions, optionally only those of one account."""
        sessions = await self._storage.list_sessions("user:*", UserSession)
        if user_id is not None:
            sessions = [s for s in sessions if s.user_id == user_id]
        return sessions

    async def purge_expired(self) -> None:
        await self._storage.cleanup_expired()
