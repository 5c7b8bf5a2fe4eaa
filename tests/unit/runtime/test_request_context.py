"""Tests for per-request context propagation."""

import asyncio

import pytest

from src.gatehouse.entities.core.account import Account
from src.gatehouse.runtime.request_context import (
    WebServiceContext,
    get_current_account,
    get_request_context,
    get_webservice_context,
    request_scope,
    set_current_account,
    set_webservice_context,
)


class TestRequestContext:
    def test_no_context_outside_a_request(self):
        assert get_request_context() is None
        assert get_current_account() is None
        assert get_webservice_context() is None

    def test_setters_need_an_active_request(self):
        with pytest.raises(RuntimeError):
            set_current_account(Account(email="a@x.com"))

    def test_scope_is_discarded(self):
        with request_scope(request_id="req-1", ip_address="203.0.113.1") as context:
            assert get_request_context() is context
            assert context.request_id == "req-1"
            assert not context.is_authenticated

        assert get_request_context() is None

    def test_webservice_caller(self):
        webservice = WebServiceContext(
            client_id="c1",
            client_name="Acme HR",
            bundle_id="b1",
            bundle_code="payroll",
            credential_id="k1",
        )
        with request_scope() as context:
            set_webservice_context(webservice)

            assert get_webservice_context() is webservice
            assert context.is_authenticated

    @pytest.mark.asyncio
    async def test_concurrent_requests_are_isolated(self):
        async def handle(email: str) -> str | None:
            with request_scope():
                set_current_account(Account(email=email), provider_type="oidc")
                await asyncio.sleep(0.01)
                account = get_current_account()
                return account.email if account else None

        results = await asyncio.gather(*(handle(f"user{i}@x.com") for i in range(20)))

        assert results == [f"user{i}@x.com" for i in range(20)]
