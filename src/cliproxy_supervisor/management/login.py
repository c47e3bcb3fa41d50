"""Interactive provider login using the proxy binary's login modes."""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Union

import structlog

from ..config.proxy_config import ProxyConfig, render_config
from ..config.settings import SupervisorSettings, get_settings
from ..exceptions import LoginFailedError, SpawnError
from ..installation.manager import BinaryManager
from .events import EventChannel, LifecycleState, LogConsumer
from .launcher import UNKNOWN_EXIT_CODE, launch
from .log_stream import drain, pipe_lines
from .temp_config import LOGIN_PREFIX, cleanup_temp_config, write_temp_config

logger = structlog.get_logger(__name__)


class LoginProvider(str, Enum):
    """Credential providers the proxy can log in to."""

    GEMINI = "gemini"
    CODEX = "codex"
    CLAUDE = "claude"
    QWEN = "qwen"
    IFLOW = "iflow"
    IFLOW_COOKIE = "iflow-cookie"

    @property
    def flag(self) -> str:
        """Command line flag selecting this provider's login mode."""
        return _LOGIN_FLAGS[self]


_LOGIN_FLAGS = {
    LoginProvider.GEMINI: "--login",
    LoginProvider.CODEX: "--codex-login",
    LoginProvider.CLAUDE: "--claude-login",
    LoginProvider.QWEN: "--qwen-login",
    LoginProvider.IFLOW: "--iflow-login",
    LoginProvider.IFLOW_COOKIE: "--iflow-cookie",
}


@dataclass(frozen=True)
class LoginRequest:
    """Parameters of one login run."""

    auth_dir: Union[str, Path]
    provider: LoginProvider = LoginProvider.GEMINI
    no_browser: bool = False
    project_id: Optional[str] = None
    binary_path: Optional[Union[str, Path]] = None
    version: Optional[str] = None
    env: Dict[str, str] = field(default_factory=dict)
    log_consumer: Optional[LogConsumer] = None
    events: Optional[EventChannel] = None


def build_login_args(
    provider: LoginProvider,
    config_path: Union[str, Path],
    no_browser: bool = False,
    project_id: Optional[str] = None,
) -> List[str]:
    args = [LoginProvider(provider).flag, "--config", str(config_path)]
    if no_browser:
        args.append("--no-browser")
    if project_id:
        args.extend(["--project_id", project_id])
    return args


async def perform_login(
    request: LoginRequest, settings: Optional[SupervisorSettings] = None
) -> None:
    """Run the binary in login mode and wait for it to finish.

    The credentials end up in ``request.auth_dir``, which is created if
    missing. Output is streamed to the request's log consumer while the flow
    runs; no readiness probe is involved.

    Args:
        request: Login parameters
        settings: Supervisor settings used to resolve the binary

    Raises:
        SpawnError: If the binary cannot be started
        LoginFailedError: If the login process exits with a non-zero code
    """
    provider = LoginProvider(request.provider)
    auth_dir = Path(request.auth_dir).expanduser()
    auth_dir.mkdir(parents=True, exist_ok=True)

    settings = settings or get_settings()
    if request.binary_path:
        binary = Path(request.binary_path)
    else:
        binary = await BinaryManager(settings).ensure(request.version)

    events = request.events or EventChannel(
        history_limit=settings.event_history_limit
    )
    if request.log_consumer is not None:
        events.add_log_listener(request.log_consumer)

    # Login mode never listens, so any port will do.
    content = render_config(ProxyConfig(auth_dir=str(auth_dir)), 0)
    config_path = await write_temp_config(content, LOGIN_PREFIX)
    args = build_login_args(provider, config_path, request.no_browser, request.project_id)

    code = UNKNOWN_EXIT_CODE
    try:
        events.publish_status(LifecycleState.STARTING)
        try:
            handle = await launch(binary, args, env=request.env)
        except SpawnError:
            events.publish_status(LifecycleState.EXITED, UNKNOWN_EXIT_CODE)
            raise

        logger.info("Login flow started", provider=provider.value, pid=handle.pid)
        pumps = [
            asyncio.create_task(pipe_lines(handle.stdout, "stdout", events.publish_log)),
            asyncio.create_task(pipe_lines(handle.stderr, "stderr", events.publish_log)),
        ]
        try:
            code = await handle.wait()
        except asyncio.CancelledError:
            handle.kill()
            for task in pumps:
                task.cancel()
            await handle.wait()
            events.publish_status(LifecycleState.EXITED, UNKNOWN_EXIT_CODE)
            raise

        await drain(pumps)
        events.publish_status(LifecycleState.EXITED, code)
    finally:
        events.close()
        await cleanup_temp_config(config_path)

    if code != 0:
        logger.error("Login flow failed", provider=provider.value, exit_code=code)
        raise LoginFailedError(code, provider.value)

    logger.info("Login completed", provider=provider.value, auth_dir=str(auth_dir))
