"""Authentication gate for cookie sessions."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from loguru import logger
from starlette.concurrency import run_in_threadpool

from src.gatehouse.core.models.session import UserSession
from src.gatehouse.core.services.account.resolution import AccountResolutionService
from src.gatehouse.core.services.session.user_session import UserSessionService
from src.gatehouse.entities.core.account import Account

if TYPE_CHECKING:
    from src.gatehouse.core.services.identity.registry import ProviderRegistry


class SessionGate:
    """Turns a session ID into an authenticated account, or None.

    A session whose provider credentials have expired gets exactly one refresh
    attempt through the adapter that created it; no refresh token, or an
    adapter without refresh support, means no network call at all.
    """

    def __init__(
        self,
        user_sessions: UserSessionService,
        resolution: AccountResolutionService,
        providers: ProviderRegistry,
    ) -> None:
        self._user_sessions = user_sessions
        self._resolution = resolution
        self._providers = providers

    async def authenticate(self, session_id: str | None) -> tuple[UserSession, Account] | None:
        if not session_id:
            return None

        user_session = await self._user_sessions.get_user_session(session_id)
        if user_session is None or user_session.expires_at is None:
            return None

        if user_session.is_expired():
            user_session = await self._refresh_once(user_session)
            if user_session is None:
                return None

        account = await self.resolve_account(user_session)
        if account is None:
            return None

        user_session.last_accessed_at = int(time.time())
        return user_session, account

    async def _refresh_once(self, user_session: UserSession) -> UserSession | None:
        provider = self._providers.get(user_session.provider_type)
        if provider is None or not provider.supports_refresh or not user_session.refresh_token:
            logger.debug("Session {} expired without a usable refresh token", user_session.id)
            return None

        refreshed = await provider.refresh_token(user_session)
        if refreshed is None or refreshed.is_expired():
            logger.info("Refresh failed for expired {} session", user_session.provider_type)
            return None

        await self._user_sessions.save_user_session(refreshed)
        return refreshed

    async def resolve_account(self, user_session: UserSession) -> Account | None:
        """Account for a session: the cached snapshot, else looked up from the identity link."""
        if user_session.account is not None:
            return user_session.account
        try:
            return await run_in_threadpool(
                self._resolution.load_account,
                user_session.provider_type,
                user_session.external_id,
            )
        except Exception:
            logger.exception("Could not resolve account for session {}", user_session.id)
            return None
