"""SAML 2.0 service provider adapter.

AuthnRequests go out over the HTTP-Redirect binding; responses come back to
the callback route over HTTP-POST. Only the element covered by a valid IdP
signature is trusted for identity, conditions and audience.
"""

import base64
import binascii
import secrets
import textwrap
import zlib
from datetime import datetime, timedelta
from typing import Any
from urllib.parse import urlencode
from xml.sax.saxutils import escape

from lxml import etree
from signxml import InvalidSignature, XMLVerifier
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request

from src.gatehouse.core.exceptions import ProviderError
from src.gatehouse.core.models.provider import IdentityAssertion
from src.gatehouse.core.models.session import LoginFlow
from src.gatehouse.core.security import encode_state
from src.gatehouse.core.services.identity.base import IdentityProvider, LoginCompletion
from src.gatehouse.entities._base import as_utc, utc_now
from src.gatehouse.runtime.config.config_data import SamlProviderConfig

SAML_PROTOCOL_NS = "urn:oasis:names:tc:SAML:2.0:protocol"
SAML_ASSERTION_NS = "urn:oasis:names:tc:SAML:2.0:assertion"
SAML_METADATA_NS = "urn:oasis:names:tc:SAML:2.0:metadata"
NS = {"samlp": SAML_PROTOCOL_NS, "saml": SAML_ASSERTION_NS}

STATUS_SUCCESS = "urn:oasis:names:tc:SAML:2.0:status:Success"
HTTP_POST_BINDING = "urn:oasis:names:tc:SAML:2.0:bindings:HTTP-POST"

_CLAIMS = "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/"
EXTERNAL_ID_KEYS = ("nameID", _CLAIMS + "nameidentifier")
EMAIL_KEYS = ("email", _CLAIMS + "emailaddress", "nameID")
FIRST_NAME_KEYS = ("firstName", _CLAIMS + "givenname", "User.FirstName")
LAST_NAME_KEYS = ("lastName", _CLAIMS + "surname", "User.LastName")
DISPLAY_NAME_KEYS = ("displayName", _CLAIMS + "name")

_PARSER = etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=False)


def pem_certificate(value: str) -> str:
    """Normalize a bare base64 certificate body or a PEM block into PEM."""
    body = "".join(
        line.strip()
        for line in value.strip().splitlines()
        if line.strip() and "CERTIFICATE-----" not in line
    )
    wrapped = "\n".join(textwrap.wrap(body, 64))
    return f"-----BEGIN CERTIFICATE-----\n{wrapped}\n-----END CERTIFICATE-----"


def verify_signed_xml(xml: bytes, certificate: str) -> bytes:
    """Verify the enveloped signature with the IdP certificate and return the signed element."""
    try:
        result = XMLVerifier().verify(etree.fromstring(xml, parser=_PARSER), x509_cert=certificate)
    except (etree.XMLSyntaxError, InvalidSignature, ValueError) as exc:
        raise ProviderError(f"SAML signature verification failed: {exc}") from exc
    return etree.tostring(result.signed_xml)


def _attr(value: str) -> str:
    return escape(value, {'"': "&quot;"})


def _parse_instant(value: str) -> datetime:
    try:
        return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError as exc:
        raise ProviderError(f"Invalid SAML timestamp {value!r}") from exc


def _first(profile: dict[str, str], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = profile.get(key)
        if value:
            return value
    return None


class SamlProvider(IdentityProvider[SamlProviderConfig]):
    state_param = "RelayState"
    callback_is_cross_site_post = True

    def _verify(self, xml: bytes) -> bytes:
        verifier = self._services.saml_signature_verifier or verify_signed_xml
        return verifier(xml, pem_certificate(self.config.idp_cert))

    # -- login -------------------------------------------------------------

    def authn_request(self, request_id: str, callback_url: str) -> str:
        issue_instant = utc_now().strftime("%Y-%m-%dT%H:%M:%SZ")
        return (
            f'<samlp:AuthnRequest xmlns:samlp="{SAML_PROTOCOL_NS}" xmlns:saml="{SAML_ASSERTION_NS}"'
            f' ID="{request_id}" Version="2.0" IssueInstant="{issue_instant}"'
            f' Destination="{_attr(self.config.entry_point)}"'
            f' AssertionConsumerServiceURL="{_attr(callback_url)}"'
            f' ProtocolBinding="{HTTP_POST_BINDING}">'
            f"<saml:Issuer>{escape(self.config.sp_entity_id)}</saml:Issuer>"
            f'<samlp:NameIDPolicy Format="{_attr(self.config.name_id_format)}" AllowCreate="true"/>'
            f"</samlp:AuthnRequest>"
        )

    async def start_login(
        self,
        request: Request,
        *,
        callback_url: str,
        return_to: str | None,
        client_fingerprint: str,
    ) -> tuple[str, LoginFlow]:
        request_id = f"_{secrets.token_hex(16)}"
        relay_state = encode_state(self.provider_type)

        # HTTP-Redirect binding: raw deflate, then base64
        deflated = zlib.compress(self.authn_request(request_id, callback_url).encode("utf-8"))[2:-4]
        params = urlencode(
            {"SAMLRequest": base64.b64encode(deflated).decode("ascii"), "RelayState": relay_state}
        )

        flow = await self._services.login_flows.create_flow(
            provider_type=self.provider_type,
            state=relay_state,
            callback_url=callback_url,
            client_fingerprint_hash=client_fingerprint,
            return_to=return_to,
            saml_request_id=request_id,
        )
        separator = "&" if "?" in self.config.entry_point else "?"
        return f"{self.config.entry_point}{separator}{params}", flow

    # -- callback ----------------------------------------------------------

    async def authenticate_callback(
        self, request: Request, params: dict[str, str], flow: LoginFlow
    ) -> LoginCompletion:
        encoded = params.get("SAMLResponse")
        if not encoded:
            raise ProviderError("Callback carried no SAMLResponse")
        try:
            raw = base64.b64decode(encoded, validate=True)
            document = etree.fromstring(raw, parser=_PARSER)
        except (binascii.Error, ValueError, etree.XMLSyntaxError) as exc:
            raise ProviderError("Malformed SAMLResponse") from exc

        status_code = document.find("samlp:Status/samlp:StatusCode", NS)
        if status_code is None or status_code.get("Value") != STATUS_SUCCESS:
            raise ProviderError("SAML response status is not Success")

        signed = etree.fromstring(await run_in_threadpool(self._verify, raw), parser=_PARSER)
        if signed.tag == f"{{{SAML_ASSERTION_NS}}}Assertion":
            assertion = signed
        else:
            assertion = signed.find("saml:Assertion", NS)
        if assertion is None:
            raise ProviderError("No signed assertion in SAML response")

        now = utc_now()
        skew = timedelta(seconds=max(self.config.clock_skew_seconds, 0))
        self._check_issuer(assertion)
        self._check_subject_confirmation(assertion, signed, flow, now, skew)
        self._check_conditions(assertion, now, skew)

        profile = self._profile(assertion)
        session_end = assertion.find("saml:AuthnStatement", NS)
        expires_at = None
        if session_end is not None and session_end.get("SessionNotOnOrAfter"):
            expires_at = int(_parse_instant(session_end.get("SessionNotOnOrAfter")).timestamp())

        return LoginCompletion(assertion=self._to_assertion(profile), expires_at=expires_at)

    def _check_issuer(self, assertion: Any) -> None:
        if not self.config.idp_issuer:
            return
        issuer = (assertion.findtext("saml:Issuer", namespaces=NS) or "").strip()
        if issuer != self.config.idp_issuer:
            raise ProviderError(f"Unexpected SAML issuer {issuer!r}")

    def _check_subject_confirmation(
        self, assertion: Any, signed: Any, flow: LoginFlow, now: datetime, skew: timedelta
    ) -> None:
        data = assertion.find("saml:Subject/saml:SubjectConfirmation/saml:SubjectConfirmationData", NS)
        in_response_to = data.get("InResponseTo") if data is not None else None
        if in_response_to is None and signed.tag == f"{{{SAML_PROTOCOL_NS}}}Response":
            in_response_to = signed.get("InResponseTo")
        if not in_response_to or in_response_to != flow.saml_request_id:
            raise ProviderError("SAML InResponseTo does not match the login request")

        if data is None:
            return
        recipient = data.get("Recipient")
        if recipient and recipient != flow.callback_url:
            raise ProviderError(f"SAML recipient {recipient!r} is not this callback")
        if data.get("NotOnOrAfter") and now - skew >= _parse_instant(data.get("NotOnOrAfter")):
            raise ProviderError("SAML subject confirmation expired")

    def _check_conditions(self, assertion: Any, now: datetime, skew: timedelta) -> None:
        conditions = assertion.find("saml:Conditions", NS)
        if conditions is None:
            raise ProviderError("SAML assertion has no Conditions")

        if conditions.get("NotBefore") and now + skew < _parse_instant(conditions.get("NotBefore")):
            raise ProviderError("SAML assertion not yet valid")
        if conditions.get("NotOnOrAfter") and now - skew >= _parse_instant(conditions.get("NotOnOrAfter")):
            raise ProviderError("SAML assertion expired")

        audiences = [
            (node.text or "").strip()
            for node in conditions.findall("saml:AudienceRestriction/saml:Audience", NS)
        ]
        if self.config.sp_entity_id not in audiences:
            raise ProviderError(f"SAML audience {audiences!r} does not include this service provider")

    def _profile(self, assertion: Any) -> dict[str, str]:
        profile: dict[str, str] = {}
        name_id = assertion.findtext("saml:Subject/saml:NameID", namespaces=NS)
        if name_id:
            profile["nameID"] = name_id.strip()
        for attribute in assertion.findall("saml:AttributeStatement/saml:Attribute", NS):
            value = attribute.findtext("saml:AttributeValue", namespaces=NS)
            if not value:
                continue
            for key in (attribute.get("Name"), attribute.get("FriendlyName")):
                if key:
                    profile.setdefault(key, value.strip())
        return profile

    def _to_assertion(self, profile: dict[str, str]) -> IdentityAssertion:
        external_id = _first(profile, EXTERNAL_ID_KEYS)
        if not external_id:
            raise ProviderError("SAML assertion has no subject identifier")
        first_name = _first(profile, FIRST_NAME_KEYS)
        last_name = _first(profile, LAST_NAME_KEYS)
        display_name = _first(profile, DISPLAY_NAME_KEYS) or (
            " ".join(part for part in (first_name, last_name) if part) or None
        )
        return IdentityAssertion(
            provider_type=self.provider_type,
            external_id=external_id,
            email=_first(profile, EMAIL_KEYS),
            first_name=first_name,
            last_name=last_name,
            display_name=display_name,
        )

    # -- metadata ----------------------------------------------------------

    def metadata_xml(self, request: Request) -> str:
        """Service provider metadata for registering this application with the IdP."""
        acs_url = _attr(self.callback_url(request))
        return (
            '<?xml version="1.0" encoding="UTF-8"?>'
            f'<md:EntityDescriptor xmlns:md="{SAML_METADATA_NS}"'
            f' entityID="{_attr(self.config.sp_entity_id)}">'
            '<md:SPSSODescriptor AuthnRequestsSigned="false" WantAssertionsSigned="true"'
            f' protocolSupportEnumeration="{SAML_PROTOCOL_NS}">'
            f"<md:NameIDFormat>{escape(self.config.name_id_format)}</md:NameIDFormat>"
            f'<md:AssertionConsumerService Binding="{HTTP_POST_BINDING}" Location="{acs_url}" index="1"/>'
            "</md:SPSSODescriptor>"
            "</md:EntityDescriptor>"
        )
