"""Per-request trust context.

Every inbound request gets a fresh ``RequestContext`` held in a ``ContextVar``.
Anything running on behalf of that request, including code after an ``await``,
reads the same object; concurrent requests each see their own.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from src.gatehouse.entities.core.account import Account


class WebServiceContext(BaseModel):
    """Trust context of an authenticated machine client."""

    client_id: str = Field(description="Authenticated webservice client")
    client_name: str = Field(description="Client display name")
    bundle_id: str = Field(description="Bundle the client belongs to")
    bundle_code: str = Field(description="Bundle code")
    credential_id: str = Field(description="Credential used for this request")
    ip_address: str | None = Field(default=None, description="Caller IP as seen by us")


@dataclass
class RequestContext:
    """Identity and origin of one in-flight request. Never persisted or shared."""

    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    ip_address: str | None = None
    account: Account | None = None
    provider_type: str | None = None
    webservice: WebServiceContext | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.account is not None or self.webservice is not None


_request_context: ContextVar[RequestContext | None] = ContextVar(
    "request_context", default=None
)


@contextmanager
def request_scope(
    request_id: str | None = None, ip_address: str | None = None
) -> Iterator[RequestContext]:
    """Open a fresh context for one request and discard it afterwards."""
    context = RequestContext(ip_address=ip_address)
    if request_id:
        context.request_id = request_id
    token = _request_context.set(context)
    try:
        yield context
    finally:
        _request_context.reset(token)


def get_request_context() -> RequestContext | None:
    """Context of the request currently being served, or None outside a request."""
    return _request_context.get()


def get_current_account() -> Account | None:
    context = _request_context.get()
    return context.account if context else None


def get_webservice_context() -> WebServiceContext | None:
    context = _request_context.get()
    return context.webservice if context else None


def set_current_account(account: Account, provider_type: str | None = None) -> None:
    """Attach the resolved human caller to the current request."""
    context = _request_context.get()
    if context is None:
        raise RuntimeError("No request context is active")
    context.account = account
    context.provider_type = provider_type


def set_webservice_context(webservice: WebServiceContext) -> None:
    """Attach the authenticated machine caller to the current request."""
    context = _request_context.get()
    if context is None:
        raise RuntimeError("No request context is active")
    context.webservice = webservice
