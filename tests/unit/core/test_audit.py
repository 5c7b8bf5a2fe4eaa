"""Tests for audit emission."""

import pytest

from src.gatehouse.core.services.audit import AuditEvent, AuditService, LoggingAuditSink
from src.gatehouse.runtime.request_context import request_scope


class FailingSink:
    async def write(self, event: AuditEvent) -> None:
        raise RuntimeError("audit store unavailable")


class TestAuditService:
    @pytest.mark.asyncio
    async def test_emit_writes_event(self, audit_service, audit_sink):
        audit_service.emit("logout", user_id="u1", provider_type="oidc")
        await audit_service.drain()

        assert audit_sink.actions() == ["logout"]
        assert audit_sink.events[0].user_id == "u1"
        assert audit_sink.events[0].ip_address is None

    @pytest.mark.asyncio
    async def test_ip_comes_from_request_context(self, audit_service, audit_sink):
        with request_scope(ip_address="203.0.113.7"):
            audit_service.emit("login", user_id="u1")
        await audit_service.drain()

        assert audit_sink.events[0].ip_address == "203.0.113.7"

    @pytest.mark.asyncio
    async def test_explicit_ip_wins(self, audit_service, audit_sink):
        with request_scope(ip_address="203.0.113.7"):
            audit_service.emit("login", ip_address="198.51.100.1")
        await audit_service.drain()

        assert audit_sink.events[0].ip_address == "198.51.100.1"

    @pytest.mark.asyncio
    async def test_failing_sink_is_swallowed(self):
        audit_service = AuditService(FailingSink())

        audit_service.emit("login", user_id="u1")
        await audit_service.drain()

    @pytest.mark.asyncio
    async def test_logging_sink(self):
        audit_service = AuditService(LoggingAuditSink())

        audit_service.emit("login", user_id="u1", details={"account_linked": True})
        await audit_service.drain()
