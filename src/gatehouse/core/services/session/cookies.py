"""Session and login flow cookies."""

from typing import Any

from starlette.requests import Request
from starlette.responses import Response

from src.gatehouse.core.security import sign_session_id, unsign_session_id
from src.gatehouse.runtime.context import get_config


def secure_cookie_settings() -> dict[str, Any]:
    """Cookie attributes shared by the session and flow cookies.

    SameSite=Lax still sends the cookie on top-level GET navigations, which is
    how OIDC and OAuth2 callbacks arrive. SAML responses arrive as a
    cross-site POST, so the flow cookie uses ``flow_cookie_settings`` instead.
    """
    return {
        "httponly": True,
        "secure": get_config().app.environment == "production",
        "samesite": "lax",
        "path": "/",
    }


def flow_cookie_settings(cross_site_post: bool = False) -> dict[str, Any]:
    settings = secure_cookie_settings()
    if cross_site_post and get_config().app.environment == "production":
        settings["samesite"] = "none"
    return settings


def read_session_id(request: Request) -> str | None:
    """Session ID from the signed session cookie; None if absent or tampered."""
    return unsign_session_id(request.cookies.get(get_config().session.cookie_name))


def set_session_cookie(response: Response, session_id: str) -> None:
    config = get_config()
    response.set_cookie(
        key=config.session.cookie_name,
        value=sign_session_id(session_id),
        max_age=config.session.ttl_seconds,
        **secure_cookie_settings(),
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(get_config().session.cookie_name, path="/")


def set_flow_cookie(response: Response, flow_id: str, cross_site_post: bool = False) -> None:
    config = get_config()
    response.set_cookie(
        key=config.session.flow_cookie_name,
        value=flow_id,
        max_age=config.session.flow_ttl_seconds,
        **flow_cookie_settings(cross_site_post),
    )


def clear_flow_cookie(response: Response) -> None:
    response.delete_cookie(get_config().session.flow_cookie_name, path="/")
