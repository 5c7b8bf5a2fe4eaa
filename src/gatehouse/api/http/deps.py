"""FastAPI dependency implementations."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from fastapi import Depends, HTTPException, Request

from src.gatehouse.api.http.app_data import ApplicationDependencies
from src.gatehouse.core.services.identity import IdentityProvider, ProviderRegistry
from src.gatehouse.core.services.session.cookies import read_session_id
from src.gatehouse.core.services.session.session_gate import SessionGate
from src.gatehouse.core.services.session.user_session import UserSessionService
from src.gatehouse.core.services.webservice import WebserviceAuthenticator
from src.gatehouse.entities.core.account import Account
from src.gatehouse.runtime.request_context import (
    WebServiceContext,
    get_request_context,
    set_current_account,
    set_webservice_context,
)


def get_app_dependencies(request: Request) -> ApplicationDependencies:
    """Services wired at startup and stored on ``app.state``."""
    return request.app.state.app_dependencies


def get_provider_registry(request: Request) -> ProviderRegistry:
    """Get the identity provider registry."""
    return get_app_dependencies(request).provider_registry


def get_user_session_service(request: Request) -> UserSessionService:
    """Get the User Session service instance."""
    return get_app_dependencies(request).user_session_service


def get_session_gate(request: Request) -> SessionGate:
    return get_app_dependencies(request).session_gate


def get_webservice_authenticator(request: Request) -> WebserviceAuthenticator:
    return get_app_dependencies(request).webservice_authenticator


def resolve_login_provider(
    request: Request, registry: ProviderRegistry = Depends(get_provider_registry)
) -> IdentityProvider:
    """Provider named by ``?provider=``, else the default; an unknown name is a 400."""
    provider = registry.resolve_for_login(request.query_params.get("provider"))
    if provider is None:
        raise HTTPException(status_code=400, detail="No auth provider available")
    return provider


async def resolve_callback_provider(
    request: Request, registry: ProviderRegistry = Depends(get_provider_registry)
) -> IdentityProvider:
    """Provider tagged in ``state`` (or SAML ``RelayState``), else the default; an unknown tag is a 400."""
    state = request.query_params.get("state") or request.query_params.get("RelayState")
    if state is None and request.method == "POST":
        form = await request.form()
        state = form.get("RelayState") or form.get("state")
    provider = registry.resolve_for_callback(state if isinstance(state, str) else None)
    if provider is None:
        raise HTTPException(status_code=400, detail="No auth provider available")
    return provider


async def require_authenticated_account(
    request: Request, gate: SessionGate = Depends(get_session_gate)
) -> Account:
    """Authenticate the request by its session cookie.

    An expired session is refreshed at most once; anything else that is not
    a live session with a resolvable, active account is a 401.
    """
    authenticated = await gate.authenticate(read_session_id(request))
    if authenticated is None:
        raise HTTPException(status_code=401, detail="Unauthorized")

    user_session, account = authenticated
    if get_request_context() is not None:
        set_current_account(account, user_session.provider_type)
    request.state.user_session = user_session
    return account


def require_webservice_auth(
    bundle_code: str | None = None,
) -> Callable[..., Awaitable[WebServiceContext]]:
    """Dependency factory guarding a webservice route, optionally pinned to one bundle."""

    async def dependency(
        request: Request,
        authenticator: WebserviceAuthenticator = Depends(get_webservice_authenticator),
    ) -> WebServiceContext:
        result = await authenticator.authenticate_request(request, bundle_code)
        if not result.success:
            raise result.to_error()
        if get_request_context() is not None:
            set_webservice_context(result.context)
        return result.context

    return dependency
