"""FastAPI application factory and setup."""

from contextlib import asynccontextmanager

import httpx
from argon2 import PasswordHasher
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from src.gatehouse.api.http.app_data import ApplicationDependencies
from src.gatehouse.api.http.middleware.request_context import RequestContextMiddleware
from src.gatehouse.api.http.routers import auth, health, webservice
from src.gatehouse.api.utils.app_startup import configure_logging
from src.gatehouse.core.exceptions import ConfigurationError, WebserviceAuthError
from src.gatehouse.core.services.account.resolution import AccountResolutionService
from src.gatehouse.core.services.audit import AuditService, AuditSink, LoggingAuditSink
from src.gatehouse.core.services.database.db_session import DbSessionService
from src.gatehouse.core.services.identity import (
    DocumentCache,
    HostStrategyCache,
    ProviderServices,
    build_provider_registry,
)
from src.gatehouse.core.services.identity.base import SamlSignatureVerifier
from src.gatehouse.core.services.session.login_flow import LoginFlowService
from src.gatehouse.core.services.session.session_gate import SessionGate
from src.gatehouse.core.services.session.user_session import UserSessionService
from src.gatehouse.core.services.webservice import WebserviceAuthenticator
from src.gatehouse.core.storage import SessionStorage, create_session_storage
from src.gatehouse.runtime.config.config_data import ConfigData
from src.gatehouse.runtime.context import get_config


# --- Security middleware ---
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault(
            "Referrer-Policy", "strict-origin-when-cross-origin"
        )
        response.headers.setdefault(
            "Permissions-Policy", "geolocation=(), microphone=()"
        )
        # HSTS only in prod
        if get_config().app.environment == "production":
            response.headers.setdefault(
                "Strict-Transport-Security",
                "max-age=31536000; includeSubDomains; preload",
            )
        return response


async def build_dependencies(
    config: ConfigData | None = None,
    *,
    database_service: DbSessionService | None = None,
    session_storage: SessionStorage | None = None,
    audit_sink: AuditSink | None = None,
    http_transport: httpx.AsyncBaseTransport | None = None,
    saml_signature_verifier: SamlSignatureVerifier | None = None,
    password_hasher: PasswordHasher | None = None,
) -> ApplicationDependencies:
    """Wire every application-wide service.

    Each collaborator can be passed in, which is how tests swap in an
    in-memory database, a mock identity provider transport or a test
    signature verifier.

    Raises:
        ConfigurationError: If no identity provider is enabled
    """
    config = config or get_config()

    database_service = database_service or DbSessionService()
    session_storage = session_storage or await create_session_storage(config.redis)
    audit_service = AuditService(audit_sink or LoggingAuditSink())
    login_flow_service = LoginFlowService(session_storage)
    user_session_service = UserSessionService(session_storage)
    resolution_service = AccountResolutionService(database_service, audit_service)

    provider_services = ProviderServices(
        login_flows=login_flow_service,
        user_sessions=user_session_service,
        resolution=resolution_service,
        audit=audit_service,
        discovery_cache=DocumentCache(ttl_seconds=config.identity.discovery_ttl_seconds),
        jwks_cache=DocumentCache(ttl_seconds=config.identity.discovery_ttl_seconds),
        strategy_cache=HostStrategyCache(),
        http_transport=http_transport,
        saml_signature_verifier=saml_signature_verifier,
    )
    provider_registry = await build_provider_registry(config.identity, provider_services)

    return ApplicationDependencies(
        database_service=database_service,
        session_storage=session_storage,
        audit_service=audit_service,
        login_flow_service=login_flow_service,
        user_session_service=user_session_service,
        account_resolution_service=resolution_service,
        provider_services=provider_services,
        provider_registry=provider_registry,
        session_gate=SessionGate(user_session_service, resolution_service, provider_registry),
        webservice_authenticator=WebserviceAuthenticator(database_service, password_hasher),
    )


# --- Lifecycle hooks ---
async def startup(app: FastAPI) -> None:
    configure_logging()
    config = get_config()
    logger.info("Starting up application in {} environment", config.app.environment)

    deps = await build_dependencies(config)
    if config.app.environment != "production":
        deps.database_service.create_all()
    app.state.app_dependencies = deps


async def shutdown(app: FastAPI) -> None:
    logger.info("Shutting down application")
    app_dependencies: ApplicationDependencies = app.state.app_dependencies
    await app_dependencies.login_flow_service.purge_expired()
    await app_dependencies.user_session_service.purge_expired()
    await app_dependencies.audit_service.drain()
    await app_dependencies.session_storage.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    await startup(app)
    try:
        yield
    finally:
        await shutdown(app)


async def webservice_auth_error_handler(request: Request, exc: WebserviceAuthError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code, content={"error": exc.message, "code": exc.code}
    )


def create_app() -> FastAPI:
    config = get_config()

    if config.app.environment == "production" and "*" in config.app.cors.origins:
        raise ConfigurationError(
            "CORS misconfigured: cannot use '*' with allow_credentials=True in production"
        )

    app = FastAPI(
        title="gatehouse",
        lifespan=lifespan,
        docs_url=None if config.app.environment == "production" else "/docs",
        redoc_url=None if config.app.environment == "production" else "/redoc",
    )

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.app.cors.origins,
        allow_credentials=config.app.cors.allow_credentials,
        allow_methods=config.app.cors.allow_methods,
        allow_headers=config.app.cors.allow_headers,
    )
    # Added last so it wraps everything else
    app.add_middleware(RequestContextMiddleware)

    app.add_exception_handler(WebserviceAuthError, webservice_auth_error_handler)

    app.include_router(health.router)
    app.include_router(auth.router)
    app.add_api_route(
        config.identity.callback_path, auth.callback, methods=["GET", "POST"], tags=["auth"]
    )
    app.include_router(webservice.router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=get_config().app.host,
        port=get_config().app.port,
        access_log=False,  # Request logging middleware covers access logs
    )
