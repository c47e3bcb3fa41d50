"""Process management package for CLIProxyAPI lifecycle control."""

from .events import EventChannel, LifecycleState, LogLine, StatusEvent
from .launcher import ProcessHandle, launch
from .lifecycle import ProxyRunner, SupervisedProcess, SupervisionRequest, start_proxy
from .log_stream import pipe_lines
from .login import LoginProvider, LoginRequest, build_login_args, perform_login
from .ports import allocate_port, is_port_available
from .readiness import HealthCheck, ReadinessProber, is_ready, wait_until_ready

__all__ = [
    "EventChannel",
    "HealthCheck",
    "LifecycleState",
    "LogLine",
    "LoginProvider",
    "LoginRequest",
    "ProcessHandle",
    "ProxyRunner",
    "ReadinessProber",
    "StatusEvent",
    "SupervisedProcess",
    "SupervisionRequest",
    "allocate_port",
    "build_login_args",
    "is_port_available",
    "is_ready",
    "launch",
    "perform_login",
    "pipe_lines",
    "start_proxy",
    "wait_until_ready",
]
