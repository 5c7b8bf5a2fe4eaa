"""Per-request context and request logging."""

import time

from fastapi import Request
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from src.gatehouse.core.security import extract_client_ip
from src.gatehouse.runtime.request_context import request_scope


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Open a fresh ``RequestContext`` for every request and log its start and end.

    Everything downstream, including code after an ``await``, sees the same
    context; it is discarded when the response is produced.
    """

    async def dispatch(self, request: Request, call_next):
        client_ip = extract_client_ip(request)

        with request_scope(request.headers.get("X-Request-ID"), client_ip) as context:
            request_id = context.request_id
            base_ctx = {
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "client_ip": client_ip or "unknown",
                "user_agent": request.headers.get("user-agent", "unknown"),
            }

            start = time.perf_counter()
            with logger.contextualize(**base_ctx):
                try:
                    logger.info("request.start")
                    response = await call_next(request)
                except Exception as exc:
                    duration_ms = (time.perf_counter() - start) * 1000
                    logger.bind(
                        status_code=500,
                        duration_ms=round(duration_ms, 1),
                        error_type=type(exc).__name__,
                    ).exception("request.error")
                    return JSONResponse(
                        status_code=500,
                        content={"detail": "Internal Server Error", "request_id": request_id},
                        headers={"X-Request-ID": request_id},
                    )

                duration_ms = (time.perf_counter() - start) * 1000
                logger.bind(
                    status_code=response.status_code,
                    duration_ms=round(duration_ms, 1),
                    user_id=context.account.id if context.account else None,
                    ws_client_id=context.webservice.client_id if context.webservice else None,
                ).info("request.end")

                response.headers.setdefault("X-Request-ID", request_id)
                return response
