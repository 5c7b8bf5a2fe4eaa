"""Integration tests for application lifecycle and startup behavior."""

import pytest

import src.gatehouse.api.http.app as application
from src.gatehouse.core.exceptions import ConfigurationError
from src.gatehouse.runtime.config.config_data import AppConfig, ConfigData, CORSConfig
from src.gatehouse.runtime.context import with_context
from tests.fixtures.core import build_test_config, oidc_config
from tests.fixtures.services import passthrough_verifier


class TestApplicationStartup:
    """Test application startup and configuration validation."""

    @pytest.mark.asyncio
    async def test_startup_wires_dependencies(
        self, monkeypatch, test_config, database_service, session_storage, fake_idp
    ):
        """Startup should build every service and register the configured providers."""
        build = application.build_dependencies

        async def fake_build(config):
            return await build(
                config,
                database_service=database_service,
                session_storage=session_storage,
                http_transport=fake_idp.transport,
                saml_signature_verifier=passthrough_verifier,
            )

        monkeypatch.setattr(application, "build_dependencies", fake_build)
        app = application.create_app()

        await application.startup(app)
        deps = app.state.app_dependencies

        assert deps.provider_registry.get_default().provider_type == "oidc"
        assert len(deps.provider_registry.get_all()) == 4
        assert deps.database_service.health_check() is True

        await application.shutdown(app)

    @pytest.mark.asyncio
    async def test_startup_fails_without_enabled_providers(self, database_service, session_storage):
        """Building dependencies with every provider disabled is a configuration error."""
        config = build_test_config(providers=[oidc_config(enabled=False)])

        with pytest.raises(ConfigurationError):
            await application.build_dependencies(
                config, database_service=database_service, session_storage=session_storage
            )

    def test_wildcard_cors_rejected_in_production(self, test_config):
        """Production must not combine credentialed CORS with a wildcard origin."""
        override = ConfigData(
            app=AppConfig(
                environment="production",
                session_secret="s3cret",
                cors=CORSConfig(origins=["*"]),
            )
        )

        with pytest.raises(ConfigurationError, match="CORS"):
            with with_context(override):
                application.create_app()

    def test_docs_hidden_in_production(self, test_config):
        override = ConfigData(app=AppConfig(environment="production", session_secret="s3cret"))

        with with_context(override):
            app = application.create_app()

        assert app.docs_url is None
        assert app.redoc_url is None
