"""Pydantic models for parsing the config.yaml configuration file.

This module contains Pydantic models that correspond to the structure of config.yaml.
These models handle validation and type conversion of the YAML configuration data.
Identity providers are a discriminated union on ``type``: an entry with an
unknown type fails validation, which the loader turns into a fatal
``ConfigurationError``.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, Field, computed_field, model_validator

from src.gatehouse.core.models.provider import ProviderType


class CORSConfig(BaseModel):
    """CORS configuration for the application."""

    origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"]
    )
    allow_credentials: bool = True
    allow_methods: list[str] = Field(
        default=["GET", "POST", "PUT", "DELETE", "OPTIONS"]
    )
    allow_headers: list[str] = Field(default=["*"])


class RedisConfig(BaseModel):
    """Redis configuration model."""

    enabled: bool = Field(default=False, description="Use Redis for session storage")
    url: str = Field(default="", description="Redis connection URL")
    password: str | None = Field(
        default=None, description="Password for Redis authentication"
    )
    decode_responses: bool = Field(
        default=True, description="Decode Redis responses to strings"
    )
    socket_timeout_seconds: float = Field(
        default=2.0, description="Connect and socket timeout for Redis calls"
    )

    @computed_field
    @property
    def connection_string(self) -> str:
        """Construct the Redis connection string with password if provided."""
        if self.password:
            if "@" in self.url:
                # URL already has auth info
                return self.url
            parts = self.url.split("://", 1)
            if len(parts) == 2:
                scheme, rest = parts
                return f"{scheme}://:{self.password}@{rest}"
        return self.url


class LoggingConfig(BaseModel):
    """Logging configuration model."""

    level: str = Field(default="INFO", description="Logging level")
    format: Literal["json", "plain"] = Field(default="json", description="Log format")
    file: str | None = Field(default="logs/gatehouse.log", description="Log file path")
    max_size_mb: int = Field(default=10, description="Maximum log file size in MB")
    backup_count: int = Field(
        default=5, description="Number of backup log files to keep"
    )


class DatabaseConfig(BaseModel):
    """Database configuration model."""

    url: str = Field(
        default="sqlite:///./gatehouse.db",
        description="Database connection URL",
    )
    pool_size: int = Field(default=20, description="Connection pool size")
    max_overflow: int = Field(default=10, description="Maximum pool overflow")
    pool_timeout: int = Field(default=30, description="Pool timeout in seconds")
    pool_recycle: int = Field(default=1800, description="Pool recycle time in seconds")
    password_file: str | None = Field(
        default=None,
        description="Path to file containing database password",
    )

    @computed_field
    @property
    def connection_string(self) -> str:
        """Database URL with the password from ``password_file`` applied, if configured."""
        from sqlalchemy.engine import make_url

        if not self.password_file:
            return self.url

        try:
            with open(self.password_file) as f:
                password = f.read().strip()
        except OSError as e:
            raise ValueError("Failed to read database password from file.") from e

        url_obj = make_url(self.url).set(password=password)
        return url_obj.render_as_string(hide_password=False)


class AppConfig(BaseModel):
    """Application configuration model."""

    environment: Literal["development", "production", "test"] = Field(
        default="development", description="Application environment"
    )
    host: str = Field(default="localhost", description="Application host")
    port: int = Field(default=8000, description="Application port")
    session_secret: str | None = Field(
        default=None,
        description="Secret for signing session cookies; required outside development/test",
    )
    cors: CORSConfig = Field(
        default_factory=CORSConfig, description="CORS configuration"
    )


class SessionConfig(BaseModel):
    """Server-side session and login flow settings."""

    cookie_name: str = Field(default="sid", description="Session cookie name")
    ttl_seconds: int = Field(
        default=7 * 24 * 3600, description="Session lifetime in seconds (7 days)"
    )
    flow_cookie_name: str = Field(
        default="gh_flow", description="Cookie binding a browser to its in-progress login"
    )
    flow_ttl_seconds: int = Field(
        default=600, description="Login flow state lifetime (10 minutes)"
    )
    bind_flow_to_client: bool = Field(
        default=True,
        description="Require the callback to come from the client that started the login",
    )


class BaseProviderConfig(BaseModel):
    """Settings shared by every identity provider adapter."""

    enabled: bool = Field(default=True, description="Register this provider at startup")
    is_default: bool = Field(default=False, description="Use when no provider hint is given")
    auto_provision: bool = Field(
        default=False,
        description="Create an account on first login when no account matches the email",
    )
    display_name: str | None = Field(default=None, description="Human readable name")


class OidcProviderConfig(BaseProviderConfig):
    """OpenID Connect provider configured through discovery."""

    type: Literal["oidc"] = "oidc"
    issuer: str = Field(description="Issuer URL; discovery document lives under it")
    client_id: str = Field(description="Client ID registered with the provider")
    client_secret: str | None = Field(default=None, description="Client secret")
    scopes: list[str] = Field(
        default_factory=lambda: ["openid", "email", "profile", "offline_access"],
        description="Scopes requested during login",
    )
    use_pkce: bool = Field(default=True, description="Send a PKCE S256 challenge")
    allowed_algorithms: list[str] = Field(
        default_factory=lambda: ["RS256", "RS512", "ES256", "ES384", "HS256"],
        description="ID token signing algorithms accepted",
    )
    clock_skew_seconds: int = Field(default=60, description="Clock skew tolerance")


class OktaProviderConfig(OidcProviderConfig):
    """Okta tenant; an OIDC provider with its own type tag."""

    type: Literal["okta"] = "okta"


class OAuth2ProviderConfig(BaseProviderConfig):
    """Plain OAuth2 authorization-code provider with explicit endpoints."""

    type: Literal["oauth"] = "oauth"
    client_id: str = Field(description="Client ID registered with the provider")
    client_secret: str | None = Field(default=None, description="Client secret")
    authorization_endpoint: str = Field(description="Authorization endpoint URL")
    token_endpoint: str = Field(description="Token endpoint URL")
    userinfo_endpoint: str = Field(description="Userinfo endpoint URL")
    logout_url: str | None = Field(
        default=None, description="Centralized logout URL (client_id and logout_uri appended)"
    )
    scopes: list[str] = Field(
        default_factory=lambda: ["openid", "email", "profile"],
        description="Scopes requested during login",
    )
    use_pkce: bool = Field(default=True, description="Send a PKCE S256 challenge")


class SamlProviderConfig(BaseProviderConfig):
    """SAML 2.0 identity provider (HTTP-Redirect request, HTTP-POST response)."""

    type: Literal["saml"] = "saml"
    entry_point: str = Field(description="IdP single sign-on URL")
    idp_issuer: str | None = Field(default=None, description="Expected IdP entity ID")
    idp_cert: str = Field(description="IdP signing certificate (PEM)")
    sp_entity_id: str = Field(description="Our service provider entity ID / audience")
    name_id_format: str = Field(
        default="urn:oasis:names:tc:SAML:1.1:nameid-format:emailAddress",
        description="Requested NameID format",
    )
    clock_skew_seconds: int = Field(default=120, description="Clock skew tolerance")


ProviderConfig = Annotated[
    OidcProviderConfig | OktaProviderConfig | OAuth2ProviderConfig | SamlProviderConfig,
    Field(discriminator="type"),
]


class IdentityConfig(BaseModel):
    """External identity provider configuration."""

    providers: list[ProviderConfig] = Field(
        default_factory=list, description="Configured identity providers"
    )
    default_provider: ProviderType | None = Field(
        default=None, description="Provider used when a request carries no hint"
    )
    callback_path: str = Field(default="/callback", description="Callback route path")
    force_https_callbacks: bool = Field(
        default=True, description="Build callback URLs as https://{host}{callback_path}"
    )
    error_redirect: str = Field(
        default="/auth-error", description="Where every failed login lands"
    )
    allowed_redirect_hosts: list[str] = Field(
        default_factory=list,
        description="Allowed hosts for absolute return URLs (empty = relative only)",
    )
    discovery_ttl_seconds: int = Field(
        default=3600, description="How long a discovery document is reused"
    )
    http_timeout_seconds: float = Field(
        default=10.0, description="Timeout for every call to an identity provider"
    )

    @model_validator(mode="after")
    def _one_entry_per_type(self) -> IdentityConfig:
        seen: set[ProviderType] = set()
        for provider in self.providers:
            if provider.type in seen:
                raise ValueError(f"Provider type '{provider.type}' configured more than once")
            seen.add(provider.type)
        return self

    def enabled_providers(self) -> list[ProviderConfig]:
        return [p for p in self.providers if p.enabled]


class WebserviceConfig(BaseModel):
    """Machine-to-machine credential settings."""

    key_header: str = Field(default="X-Ws-Client-Key", description="Client key header")
    secret_header: str = Field(
        default="X-Ws-Client-Secret", description="Client secret header"
    )
    argon2_time_cost: int = Field(default=2, description="Argon2 time cost for secrets")
    argon2_memory_cost: int = Field(
        default=19456, description="Argon2 memory cost in KiB"
    )
    argon2_parallelism: int = Field(default=1, description="Argon2 parallelism")


class ConfigData(BaseModel):
    """Root configuration model that matches the config.yaml structure."""

    app: AppConfig = Field(
        default_factory=AppConfig, description="Application configuration"
    )
    session: SessionConfig = Field(
        default_factory=SessionConfig, description="Session configuration"
    )
    identity: IdentityConfig = Field(
        default_factory=IdentityConfig, description="Identity provider configuration"
    )
    webservice: WebserviceConfig = Field(
        default_factory=WebserviceConfig, description="Webservice credential configuration"
    )
    redis: RedisConfig = Field(
        default_factory=RedisConfig, description="Redis configuration"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    database: DatabaseConfig = Field(
        default_factory=DatabaseConfig, description="Database configuration"
    )

    @model_validator(mode="after")
    def _session_secret_outside_development(self) -> ConfigData:
        if self.app.environment == "production" and not self.app.session_secret:
            raise ValueError("app.session_secret is required in production")
        return self
