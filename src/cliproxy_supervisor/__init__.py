"""Supervisor for the CLIProxyAPI binary: download, configure, start and stop."""

from .__version__ import __version__
from .config import (
    ProxyConfig,
    SupervisorSettings,
    configure_logging,
    configure_logging_from_settings,
    render_config,
)
from .exceptions import (
    BinaryDownloadError,
    LoginFailedError,
    PortAllocationError,
    PrematureExitError,
    ReadinessTimeoutError,
    SpawnError,
    SupervisorError,
)
from .installation import ensure_binary
from .management import (
    EventChannel,
    HealthCheck,
    LifecycleState,
    LogLine,
    LoginProvider,
    LoginRequest,
    SupervisedProcess,
    SupervisionRequest,
    perform_login,
    start_proxy,
)

__all__ = [
    "BinaryDownloadError",
    "EventChannel",
    "HealthCheck",
    "LifecycleState",
    "LogLine",
    "LoginFailedError",
    "LoginProvider",
    "LoginRequest",
    "PortAllocationError",
    "PrematureExitError",
    "ProxyConfig",
    "ReadinessTimeoutError",
    "SpawnError",
    "SupervisedProcess",
    "SupervisionRequest",
    "SupervisorError",
    "SupervisorSettings",
    "__version__",
    "configure_logging",
    "configure_logging_from_settings",
    "ensure_binary",
    "perform_login",
    "render_config",
    "start_proxy",
]
