import asyncio
import base64
import time
import zlib
from collections.abc import Awaitable
from typing import Any
from urllib.parse import parse_qs, urlparse

from authlib.jose import jwt
from lxml import etree


def oct_jwk(key: bytes, kid: str) -> dict[str, str]:
    return {
        "kty": "oct",
        "k": base64.urlsafe_b64encode(key).rstrip(b"=").decode("ascii"),
        "alg": "HS256",
        "kid": kid,
    }


def sign_id_token(claims: dict[str, Any], key: bytes, kid: str, alg: str = "HS256") -> str:
    header = {"alg": alg, "kid": kid, "typ": "JWT"}
    return jwt.encode(header, claims, key).decode("ascii")


def id_token_claims(
    issuer: str,
    audience: str,
    subject: str,
    nonce: str | None = None,
    lifetime: int = 3600,
    **extra: Any,
) -> dict[str, Any]:
    now = int(time.time())
    claims = {
        "iss": issuer,
        "aud": audience,
        "sub": subject,
        "iat": now,
        "exp": now + lifetime,
        **extra,
    }
    if nonce is not None:
        claims["nonce"] = nonce
    return claims


def query_params(url: str) -> dict[str, str]:
    """Single-valued query parameters of a redirect location."""
    return {key: values[0] for key, values in parse_qs(urlparse(url).query).items()}


def decode_authn_request(url: str) -> etree._Element:
    """Inflate the SAMLRequest of an HTTP-Redirect binding URL."""
    encoded = query_params(url)["SAMLRequest"]
    return etree.fromstring(zlib.decompress(base64.b64decode(encoded), -15))


def _iso(timestamp: float) -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(timestamp))


def build_saml_response(
    in_response_to: str | None,
    recipient: str,
    audience: str,
    name_id: str = "jane@example.com",
    attributes: dict[str, str] | None = None,
    issuer: str = "https://idp.example.com",
    status: str = "urn:oasis:names:tc:SAML:2.0:status:Success",
    not_before_offset: int = -60,
    not_on_or_after_offset: int = 300,
    session_lifetime: int | None = 3600,
    include_conditions: bool = True,
) -> str:
    """Base64 SAMLResponse as posted by an IdP (unsigned; tests plug in a pass-through verifier)."""
    now = time.time()
    in_response = f' InResponseTo="{in_response_to}"' if in_response_to else ""
    attribute_xml = "".join(
        f'<saml:Attribute Name="{name}"><saml:AttributeValue>{value}</saml:AttributeValue></saml:Attribute>'
        for name, value in (attributes or {}).items()
    )
    conditions = (
        f'<saml:Conditions NotBefore="{_iso(now + not_before_offset)}"'
        f' NotOnOrAfter="{_iso(now + not_on_or_after_offset)}">'
        f"<saml:AudienceRestriction><saml:Audience>{audience}</saml:Audience></saml:AudienceRestriction>"
        "</saml:Conditions>"
        if include_conditions
        else ""
    )
    session_end = (
        f' SessionNotOnOrAfter="{_iso(now + session_lifetime)}"' if session_lifetime else ""
    )
    xml = (
        '<samlp:Response xmlns:samlp="urn:oasis:names:tc:SAML:2.0:protocol"'
        ' xmlns:saml="urn:oasis:names:tc:SAML:2.0:assertion"'
        f' ID="_resp1" Version="2.0" IssueInstant="{_iso(now)}"{in_response}>'
        f"<saml:Issuer>{issuer}</saml:Issuer>"
        f'<samlp:Status><samlp:StatusCode Value="{status}"/></samlp:Status>'
        f'<saml:Assertion ID="_assert1" Version="2.0" IssueInstant="{_iso(now)}">'
        f"<saml:Issuer>{issuer}</saml:Issuer>"
        f"<saml:Subject><saml:NameID>{name_id}</saml:NameID>"
        '<saml:SubjectConfirmation Method="urn:oasis:names:tc:SAML:2.0:cm:bearer">'
        f'<saml:SubjectConfirmationData{in_response} Recipient="{recipient}"'
        f' NotOnOrAfter="{_iso(now + 300)}"/>'
        "</saml:SubjectConfirmation></saml:Subject>"
        f"{conditions}"
        f'<saml:AuthnStatement AuthnInstant="{_iso(now)}"{session_end}/>'
        f"<saml:AttributeStatement>{attribute_xml}</saml:AttributeStatement>"
        "</saml:Assertion>"
        "</samlp:Response>"
    )
    return base64.b64encode(xml.encode("utf-8")).decode("ascii")


async def count_loop_ticks(awaitable: Awaitable[Any], interval: float = 0.01) -> tuple[Any, int]:
    """Await ``awaitable`` while a sibling task ticks; returns its result and the tick count."""
    ticks = 0
    finished = asyncio.Event()

    async def ticker() -> None:
        nonlocal ticks
        while not finished.is_set():
            await asyncio.sleep(interval)
            ticks += 1

    task = asyncio.create_task(ticker())
    try:
        result = await awaitable
    finally:
        finished.set()
        await task
    return result, ticks
