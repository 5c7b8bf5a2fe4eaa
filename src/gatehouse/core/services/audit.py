"""Audit trail for authentication events.

Audit emission is fire-and-forget: callers schedule the write and move on, and a
failing sink is logged but never fails or delays an authentication decision.
"""

import asyncio
from typing import Any, Protocol

from loguru import logger
from pydantic import BaseModel, Field

from src.gatehouse.entities._base import utc_now
from src.gatehouse.runtime.request_context import get_request_context


class AuditEvent(BaseModel):
    """One audit record."""

    action: str = Field(description="Event name, e.g. 'login' or 'logout'")
    user_id: str | None = Field(default=None, description="Account the event concerns")
    provider_type: str | None = Field(default=None)
    external_id: str | None = Field(default=None)
    email: str | None = Field(default=None)
    ip_address: str | None = Field(default=None)
    details: dict[str, Any] = Field(default_factory=dict)
    occurred_at: str = Field(default_factory=lambda: utc_now().isoformat())


class AuditSink(Protocol):
    async def write(self, event: AuditEvent) -> None: ...


class LoggingAuditSink:
    """Writes audit events as structured loguru records bound with ``audit=True``."""

    async def write(self, event: AuditEvent) -> None:
        logger.bind(audit=True, **event.model_dump(exclude={"action"})).info(
            "audit.{}", event.action
        )


class AuditService:
    """Schedules audit writes without awaiting them."""

    def __init__(self, sink: AuditSink) -> None:
        self._sink = sink
        self._pending: set[asyncio.Task] = set()

    def emit(self, action: str, **fields: Any) -> None:
        context = get_request_context()
        if context is not None and "ip_address" not in fields:
            fields["ip_address"] = context.ip_address
        event = AuditEvent(action=action, **fields)

        task = asyncio.get_running_loop().create_task(self._write(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write(self, event: AuditEvent) -> None:
        try:
            await self._sink.write(event)
        except Exception:
            logger.exception("Audit sink failed to record {}", event.action)

    async def drain(self) -> None:
        """Wait for scheduled writes (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
