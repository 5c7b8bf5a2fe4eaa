"""Security utilities for login flows, session cookies and caller identification."""

import base64
import binascii
import hashlib
import hmac
import json
import secrets
from urllib.parse import urlparse

from fastapi import Request

from src.gatehouse.runtime.context import get_config

_DEV_SESSION_SECRET = "gatehouse-dev-session-secret"


def generate_secure_token(length: int = 32) -> str:
    """Generate a cryptographically secure random token.

    Args:
        length: Number of random bytes to generate (default 32)

    Returns:
        URL-safe base64 encoded token
    """
    return (
        base64.urlsafe_b64encode(secrets.token_bytes(length))
        .decode("utf-8")
        .rstrip("=")
    )


def generate_nonce() -> str:
    """Generate a nonce for OIDC ID token binding (256 bits of entropy)."""
    return generate_secure_token(32)


def generate_pkce_pair() -> tuple[str, str]:
    """Generate PKCE code verifier and S256 challenge pair.

    Returns:
        Tuple of (code_verifier, code_challenge)
    """
    code_verifier = generate_secure_token(32)
    challenge_bytes = hashlib.sha256(code_verifier.encode("utf-8")).digest()
    code_challenge = (
        base64.urlsafe_b64encode(challenge_bytes).decode("utf-8").rstrip("=")
    )
    return code_verifier, code_challenge


def encode_state(provider_type: str) -> str:
    """Build an opaque callback state that carries the provider tag.

    The state is base64url JSON ``{"p": <provider type>, "n": <random>}`` so the
    callback can be routed to the provider that started the login.
    """
    payload = json.dumps({"p": provider_type, "n": generate_secure_token(24)}, separators=(",", ":"))
    return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii").rstrip("=")


def decode_state_provider(state: str | None) -> str | None:
    """Return the provider tag from a state value, or None if it cannot be read."""
    if not state:
        return None
    try:
        padded = state + "=" * (-len(state) % 4)
        payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (binascii.Error, ValueError, UnicodeError):
        return None
    if not isinstance(payload, dict):
        return None
    provider = payload.get("p")
    return provider if isinstance(provider, str) else None


def _session_secret() -> bytes:
    secret = get_config().app.session_secret
    return (secret or _DEV_SESSION_SECRET).encode("utf-8")


def sign_session_id(session_id: str) -> str:
    """Return the cookie value for a session ID: ``<id>.<hmac>``."""
    signature = hmac.new(_session_secret(), session_id.encode("utf-8"), hashlib.sha256).hexdigest()
    return f"{session_id}.{signature}"


def unsign_session_id(cookie_value: str | None) -> str | None:
    """Verify a session cookie and return the session ID, or None if unsigned or tampered."""
    if not cookie_value or "." not in cookie_value:
        return None
    session_id, signature = cookie_value.rsplit(".", 1)
    expected = hmac.new(_session_secret(), session_id.encode("utf-8"), hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected, signature):
        return None
    return session_id


def sanitize_return_url(
    return_to: str | None, allowed_hosts: list[str] | None = None
) -> str:
    """Sanitize return URL to prevent open redirects.

    Args:
        return_to: User-provided return URL
        allowed_hosts: Optional list of allowed hosts for absolute URLs

    Returns:
        Sanitized return URL (relative path or allowed absolute URL)
    """
    if not return_to:
        return "/"

    return_to = return_to.strip()

    if return_to.startswith("/") and not return_to.startswith("//"):
        if all(ord(c) >= 32 for c in return_to) and "\\" not in return_to:
            return return_to

    if allowed_hosts and return_to.startswith(("http://", "https://")):
        parsed = urlparse(return_to)
        if parsed.hostname in allowed_hosts:
            return return_to

    return "/"


def extract_client_ip(request: Request) -> str | None:
    """Caller IP: first ``X-Forwarded-For`` entry, else ``X-Real-IP``, else the socket peer."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host
    return None


def request_host(request: Request) -> str:
    """Host the caller addressed, as used for per-host callback URLs."""
    return request.headers.get("host") or request.url.netloc


def hash_client_fingerprint(
    user_agent: str | None, client_ip: str | None = None
) -> str:
    """Create a stable fingerprint for client context binding.

    Args:
        user_agent: Client User-Agent header
        client_ip: Optional client IP (be careful with proxies)

    Returns:
        SHA256 hash of client characteristics
    """
    components = []

    if user_agent:
        components.append(user_agent.strip())

    if client_ip:
        components.append(client_ip.strip())

    if not components:
        components.append("unknown-client")

    fingerprint_data = "|".join(components)
    return hashlib.sha256(fingerprint_data.encode("utf-8")).hexdigest()


def extract_client_fingerprint(request: Request) -> str:
    """Hash of User-Agent and caller IP for binding a login flow to one browser."""
    return hash_client_fingerprint(request.headers.get("user-agent"), extract_client_ip(request))
