"""Application-wide context: the active configuration.

The configuration sits in a ``ContextVar`` so tests and tools can swap it for
the duration of a block without touching module globals.
"""

from contextlib import contextmanager
from contextvars import ContextVar, Token
from dataclasses import dataclass, replace
from pathlib import Path

from loguru import logger
from pydantic import BaseModel

from src.gatehouse.runtime.config.config_data import ConfigData
from src.gatehouse.runtime.config.config_template import load_templated_yaml
from src.gatehouse.runtime.settings import EnvironmentVariables


@dataclass
class AppContext:
    """Application context containing configuration and other app-wide state."""

    config: ConfigData


def load_default_config() -> ConfigData:
    """Load config.yaml (or ``APP_CONFIG_PATH``); fall back to defaults when absent."""
    env = EnvironmentVariables()
    path = Path(env.config_path)
    if not path.exists():
        logger.warning("Configuration file {} not found; using defaults", path)
        return ConfigData.model_validate({"app": {"environment": env.environment}})
    return load_templated_yaml(path)


_app_context: ContextVar[AppContext] = ContextVar(
    "app_context", default=AppContext(config=load_default_config())
)


def get_context() -> AppContext:
    """Get the current application context."""
    return _app_context.get()


def set_context(context: AppContext) -> Token[AppContext]:
    """Set the current application context."""
    return _app_context.set(context)


def _explicit_fields(model: BaseModel) -> dict:
    """Dump only the fields that were explicitly set, at every nesting level."""
    result = {}
    for field_name in model.model_fields_set:
        value = getattr(model, field_name)
        if isinstance(value, BaseModel):
            result[field_name] = _explicit_fields(value)
        elif isinstance(value, list):
            result[field_name] = [
                item.model_dump() if isinstance(item, BaseModel) else item for item in value
            ]
        else:
            result[field_name] = value
    return result


def _deep_merge(base: dict, override: dict) -> dict:
    merged = base.copy()
    for key, value in override.items():
        if isinstance(merged.get(key), dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def merge_configs(base_config: ConfigData, override_config: ConfigData) -> ConfigData:
    """Overlay the explicitly set parts of ``override_config`` on ``base_config``.

    Lists (such as the provider list) are replaced, not merged.
    """
    merged = _deep_merge(base_config.model_dump(), _explicit_fields(override_config))
    return ConfigData.model_validate(merged)


@contextmanager
def with_context(config_override: ConfigData | None = None):
    """Temporarily override the application configuration.

    Only the fields explicitly set on ``config_override`` replace the current
    values; everything else is inherited from the active context.

    Example:
        override = ConfigData(session=SessionConfig(ttl_seconds=60))
        with with_context(override):
            assert get_config().session.ttl_seconds == 60
    """
    if config_override is None:
        yield
        return

    if not isinstance(config_override, ConfigData):
        raise ValueError(
            f"config_override must be ConfigData, or None, got {type(config_override)}"
        )

    merged_config = merge_configs(get_context().config, config_override)
    token = set_context(replace(get_context(), config=merged_config))
    try:
        yield
    finally:
        _app_context.reset(token)


def set_config(config: ConfigData) -> None:
    """Replace the entire current configuration."""
    set_context(replace(get_context(), config=config))


def get_config() -> ConfigData:
    """Convenience function to get the current configuration."""
    return get_context().config
