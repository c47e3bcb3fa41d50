"""Configuration package: settings, logging and proxy options."""

from .logging import (
    configure_logging,
    configure_logging_from_settings,
    get_logger,
    process_output_logger,
)
from .proxy_config import (
    APIKeyEntry,
    ModelAlias,
    OpenAICompatibilityEntry,
    OpenAICompatibilityKey,
    PayloadConfig,
    PayloadModelMatch,
    PayloadRule,
    ProxyConfig,
    QuotaExceededConfig,
    RemoteManagementConfig,
    render_config,
)
from .settings import LoggingConfig, SupervisorSettings, get_settings

__all__ = [
    "APIKeyEntry",
    "LoggingConfig",
    "ModelAlias",
    "OpenAICompatibilityEntry",
    "OpenAICompatibilityKey",
    "PayloadConfig",
    "PayloadModelMatch",
    "PayloadRule",
    "ProxyConfig",
    "QuotaExceededConfig",
    "RemoteManagementConfig",
    "SupervisorSettings",
    "configure_logging",
    "configure_logging_from_settings",
    "get_logger",
    "get_settings",
    "process_output_logger",
    "render_config",
]
