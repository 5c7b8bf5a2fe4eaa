"""Browser login, callback and logout routes, dispatched to the selected identity provider."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response

from src.gatehouse.api.http.deps import (
    get_provider_registry,
    get_user_session_service,
    require_authenticated_account,
    resolve_callback_provider,
    resolve_login_provider,
)
from src.gatehouse.core.models.provider import ProviderType
from src.gatehouse.core.services.identity import IdentityProvider, ProviderRegistry, SamlProvider
from src.gatehouse.core.services.session.cookies import read_session_id
from src.gatehouse.core.services.session.user_session import UserSessionService
from src.gatehouse.entities.core.account import Account

router = APIRouter(tags=["auth"])


@router.get("/login")
async def login(
    request: Request, provider: IdentityProvider = Depends(resolve_login_provider)
) -> Response:
    """Start a login with ``?provider=<type>`` or the default provider."""
    return await provider.get_login_handler()(request)


async def callback(
    request: Request, provider: IdentityProvider = Depends(resolve_callback_provider)
) -> Response:
    """Provider callback (GET for OIDC/OAuth2, POST for SAML).

    Mounted in the app factory at ``identity.callback_path``.
    """
    return await provider.get_callback_handler()(request)


@router.get("/logout")
async def logout(
    request: Request,
    registry: ProviderRegistry = Depends(get_provider_registry),
    user_sessions: UserSessionService = Depends(get_user_session_service),
) -> Response:
    """Log out through the provider that created the current session."""
    session_id = read_session_id(request)
    user_session = await user_sessions.get_user_session(session_id) if session_id else None

    provider = registry.get(user_session.provider_type) if user_session else None
    provider = provider or registry.get_default()
    if provider is None:
        raise HTTPException(status_code=400, detail="No auth provider available")
    return await provider.get_logout_handler()(request)


@router.get("/auth/providers")
async def list_providers(
    registry: ProviderRegistry = Depends(get_provider_registry),
) -> dict[str, Any]:
    default = registry.get_default()
    return {
        "providers": [
            {"type": provider.provider_type.value, "is_default": provider is default}
            for provider in registry.get_all()
        ],
        "default_provider": default.provider_type.value if default else None,
    }


@router.get("/auth/me")
async def me(
    request: Request, account: Account = Depends(require_authenticated_account)
) -> dict[str, Any]:
    """The account behind the current session."""
    return {
        "id": account.id,
        "email": account.email,
        "first_name": account.first_name,
        "last_name": account.last_name,
        "display_name": account.display_name,
        "profile_image_url": account.profile_image_url,
        "provider_type": request.state.user_session.provider_type,
    }


@router.get("/auth/saml/metadata")
async def saml_metadata(
    request: Request, registry: ProviderRegistry = Depends(get_provider_registry)
) -> Response:
    """Service provider metadata for the configured SAML IdP."""
    provider = registry.get(ProviderType.SAML)
    if not isinstance(provider, SamlProvider):
        raise HTTPException(status_code=404, detail="SAML is not configured")
    return Response(content=provider.metadata_xml(request), media_type="application/samlmetadata+xml")
