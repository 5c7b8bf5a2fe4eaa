"""Common contract for external identity provider adapters."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

import httpx
from loguru import logger
from starlette import status
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response

from src.gatehouse.core.exceptions import ProviderError
from src.gatehouse.core.models.provider import IdentityAssertion, ProviderType
from src.gatehouse.core.models.session import LoginFlow, UserSession
from src.gatehouse.core.security import extract_client_fingerprint, request_host
from src.gatehouse.core.services.account.resolution import AccountResolutionService
from src.gatehouse.core.services.audit import AuditService
from src.gatehouse.core.services.identity.caches import DocumentCache, HostStrategyCache
from src.gatehouse.core.services.session import cookies
from src.gatehouse.core.services.session.login_flow import LoginFlowService
from src.gatehouse.core.services.session.user_session import UserSessionService
from src.gatehouse.runtime.config.config_data import BaseProviderConfig
from src.gatehouse.runtime.context import get_config

Handler = Callable[[Request], Awaitable[Response]]
# (raw SAML response XML, IdP certificate PEM) -> XML of the element the signature covers
SamlSignatureVerifier = Callable[[bytes, str], bytes]
ConfigT = TypeVar("ConfigT", bound=BaseProviderConfig)


@dataclass
class ProviderServices:
    """Collaborators shared by every adapter, built once at startup."""

    login_flows: LoginFlowService
    user_sessions: UserSessionService
    resolution: AccountResolutionService
    audit: AuditService
    discovery_cache: DocumentCache
    jwks_cache: DocumentCache
    strategy_cache: HostStrategyCache = field(default_factory=HostStrategyCache)
    http_transport: httpx.AsyncBaseTransport | None = None
    saml_signature_verifier: SamlSignatureVerifier | None = None


@dataclass(frozen=True)
class HostStrategy:
    """Protocol settings bound to one host the application is served under."""

    host: str
    callback_url: str


@dataclass
class LoginCompletion:
    """What an adapter learned from a successful callback."""

    assertion: IdentityAssertion
    expires_at: int | None = None
    access_token: str | None = None
    refresh_token: str | None = None
    id_token: str | None = None


class IdentityProvider(ABC, Generic[ConfigT]):
    """Base adapter.

    Subclasses implement the protocol-specific parts (``start_login``,
    ``authenticate_callback``, optionally ``refresh_token`` and
    ``provider_logout_url``); flow validation, account resolution, session
    establishment and logout bookkeeping are shared here.
    """

    provider_type: ProviderType
    state_param: str = "state"
    supports_refresh: bool = False
    callback_is_cross_site_post: bool = False

    def __init__(self, config: ConfigT, services: ProviderServices) -> None:
        self.config = config
        self.provider_type = ProviderType(config.type)
        self._services = services
        self._ready = False

    # -- lifecycle ---------------------------------------------------------

    async def setup(self) -> None:
        """One-time initialization; safe to call more than once."""
        if self._ready:
            return
        await self._setup()
        self._ready = True

    async def _setup(self) -> None:
        """Protocol specific initialization, such as discovery."""

    # -- handlers ----------------------------------------------------------

    def get_login_handler(self) -> Handler:
        return self.login

    def get_callback_handler(self) -> Handler:
        return self.callback

    def get_logout_handler(self) -> Handler:
        return self.logout

    async def login(self, request: Request) -> Response:
        """Redirect the browser to the provider with a fresh login flow."""
        return_to = request.query_params.get("return_to")
        try:
            await self.setup()
            strategy = await self.strategy_for(request)
            redirect_url, flow = await self.start_login(
                request,
                callback_url=strategy.callback_url,
                return_to=return_to,
                client_fingerprint=extract_client_fingerprint(request),
            )
        except (ProviderError, httpx.HTTPError):
            logger.exception("Could not start {} login", self.provider_type)
            return self._error_redirect()

        response = RedirectResponse(url=redirect_url, status_code=status.HTTP_302_FOUND)
        cookies.set_flow_cookie(response, flow.id, cross_site_post=self.callback_is_cross_site_post)
        return response

    async def callback(self, request: Request) -> Response:
        """Validate the provider's answer, resolve the account and open a session."""
        params = await self._callback_params(request)
        flow = await self._services.login_flows.consume_flow(
            request.cookies.get(get_config().session.flow_cookie_name),
            params.get(self.state_param),
            extract_client_fingerprint(request),
        )
        if flow is None or flow.provider_type != self.provider_type:
            logger.warning("Rejected {} callback without a valid login flow", self.provider_type)
            return self._error_redirect()

        if params.get("error"):
            logger.info(
                "{} returned an error: {}", self.provider_type, params.get("error")
            )
            return self._error_redirect()

        try:
            await self.setup()
            completion = await self.authenticate_callback(request, params, flow)
            return await self._complete_login(request, flow, completion)
        except Exception:
            logger.exception("{} callback failed", self.provider_type)
            return self._error_redirect()

    async def logout(self, request: Request) -> Response:
        """End the local session, record it, then hand off to the provider if it has central logout."""
        user_sessions = self._services.user_sessions
        session_id = cookies.read_session_id(request)
        user_session = await user_sessions.get_user_session(session_id) if session_id else None

        redirect_url = "/"
        if user_session is not None:
            account = user_session.account
            audit_fields = {
                "user_id": user_session.user_id,
                "provider_type": user_session.provider_type,
                "external_id": user_session.external_id,
                "email": account.email if account else user_session.claims.get("email"),
            }
            await user_sessions.delete_user_session(user_session.id)
            self._services.audit.emit("logout", **audit_fields)
            redirect_url = await self.provider_logout_url(request, user_session) or "/"

        response = RedirectResponse(url=redirect_url, status_code=status.HTTP_302_FOUND)
        cookies.clear_session_cookie(response)
        return response

    # -- protocol hooks ----------------------------------------------------

    @abstractmethod
    async def start_login(
        self,
        request: Request,
        *,
        callback_url: str,
        return_to: str | None,
        client_fingerprint: str,
    ) -> tuple[str, LoginFlow]:
        """Create the login flow and return the provider URL to redirect to."""

    @abstractmethod
    async def authenticate_callback(
        self, request: Request, params: dict[str, str], flow: LoginFlow
    ) -> LoginCompletion:
        """Turn a validated callback into an identity assertion.

        Raises:
            ProviderError: When the provider's answer cannot be trusted or used
        """

    async def refresh_token(self, user_session: UserSession) -> UserSession | None:
        """Refresh provider credentials; None on any failure. Not supported by default."""
        return None

    async def provider_logout_url(self, request: Request, user_session: UserSession) -> str | None:
        """Centralized logout URL, or None for local-only logout."""
        return None

    # -- helpers -----------------------------------------------------------

    def origin(self, request: Request) -> str:
        """``scheme://host`` of the request, https when callbacks are forced to https."""
        scheme = "https" if get_config().identity.force_https_callbacks else request.url.scheme
        return f"{scheme}://{request_host(request)}"

    def callback_url(self, request: Request) -> str:
        """Callback URL for the host this request addressed."""
        return f"{self.origin(request)}{get_config().identity.callback_path}"

    def strategy_key(self, request: Request) -> str:
        return f"{self.provider_type}:{request_host(request)}"

    async def strategy_for(self, request: Request) -> HostStrategy:
        """Strategy for the request's host, created on first use and then reused."""

        async def build() -> HostStrategy:
            return HostStrategy(host=request_host(request), callback_url=self.callback_url(request))

        return await self._services.strategy_cache.get_or_create(self.strategy_key(request), build)

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=get_config().identity.http_timeout_seconds,
            transport=self._services.http_transport,
        )

    async def get_json(self, url: str, headers: dict[str, str] | None = None) -> dict[str, Any]:
        async with self.http_client() as client:
            response = await client.get(url, headers=headers)
            response.raise_for_status()
            return response.json()

    def default_expiry(self) -> int:
        return int(time.time()) + get_config().session.ttl_seconds

    async def _callback_params(self, request: Request) -> dict[str, str]:
        params: dict[str, Any] = dict(request.query_params)
        if request.method == "POST":
            form = await request.form()
            params.update({k: v for k, v in form.items() if isinstance(v, str)})
        return params

    async def _complete_login(
        self, request: Request, flow: LoginFlow, completion: LoginCompletion
    ) -> Response:
        result = await self._services.resolution.resolve(
            completion.assertion, auto_provision=self.config.auto_provision
        )
        if not result.accepted:
            return self._error_redirect()

        user_session = await self._services.user_sessions.create_user_session(
            assertion=completion.assertion,
            account=result.account,
            access_token=completion.access_token,
            refresh_token=completion.refresh_token,
            id_token=completion.id_token,
            expires_at=completion.expires_at or self.default_expiry(),
            replaces_session_id=cookies.read_session_id(request),
        )
        logger.bind(provider_type=self.provider_type, user_id=result.account.id).info(
            "Login succeeded"
        )

        response = RedirectResponse(url=flow.return_to or "/", status_code=status.HTTP_302_FOUND)
        cookies.set_session_cookie(response, user_session.id)
        cookies.clear_flow_cookie(response)
        return response

    def _error_redirect(self) -> RedirectResponse:
        response = RedirectResponse(
            url=get_config().identity.error_redirect, status_code=status.HTTP_302_FOUND
        )
        cookies.clear_flow_cookie(response)
        return response
