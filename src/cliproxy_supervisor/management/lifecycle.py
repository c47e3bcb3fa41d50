"""Start, watch and stop a CLIProxyAPI server process."""

import asyncio
import dataclasses
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import structlog

from ..config.logging import log_performance
from ..config.proxy_config import ProxyConfig, render_config
from ..config.settings import SupervisorSettings, get_settings
from ..exceptions import PrematureExitError, ReadinessTimeoutError, SpawnError
from ..installation.manager import BinaryManager
from .events import EventChannel, LifecycleState, LogConsumer, StatusCallback
from .launcher import UNKNOWN_EXIT_CODE, ProcessHandle, launch
from .log_stream import drain, pipe_lines
from .ports import allocate_port
from .readiness import PROBE_HOST, HealthCheck, wait_until_ready
from .temp_config import SERVER_PREFIX, cleanup_temp_config, write_temp_config

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SupervisionRequest:
    """Everything needed to start one proxy run."""

    config: ProxyConfig = field(default_factory=ProxyConfig)
    port: Optional[int] = None
    binary_path: Optional[Union[str, Path]] = None
    version: Optional[str] = None
    env: Dict[str, str] = field(default_factory=dict)
    health_check: Optional[HealthCheck] = None
    ready_timeout: Optional[float] = None
    stop_timeout: Optional[float] = None
    on_status: Optional[StatusCallback] = None
    log_consumer: Optional[LogConsumer] = None
    events: Optional[EventChannel] = None
    config_renderer: Callable[[ProxyConfig, int], str] = render_config


class SupervisedProcess:
    """A running proxy together with its port, config file and event channel.

    The exit watcher stays attached for the whole life of the process, so a
    crash after readiness is still reported as a single EXITED event.
    """

    def __init__(
        self,
        process: ProcessHandle,
        port: int,
        config_path: Path,
        events: EventChannel,
        stop_timeout: float = 5.0,
    ):
        self.process = process
        self.port = port
        self.config_path = config_path
        self.events = events
        self.stop_timeout = stop_timeout
        self.state = LifecycleState.STARTING
        self.exit_code: Optional[int] = None

        self._pumps: List["asyncio.Task[int]"] = []
        self._exit_task: Optional["asyncio.Task[int]"] = None
        self._stop_task: Optional["asyncio.Task[int]"] = None

    @property
    def url(self) -> str:
        return f"http://{PROBE_HOST}:{self.port}"

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def exit_task(self) -> "asyncio.Task[int]":
        """Task resolving to the exit code once the process is gone."""
        if self._exit_task is None:
            raise RuntimeError("Process output is not attached")
        return self._exit_task

    def _attach(self) -> None:
        sink = self.events.publish_log
        self._pumps = [
            asyncio.create_task(pipe_lines(self.process.stdout, "stdout", sink)),
            asyncio.create_task(pipe_lines(self.process.stderr, "stderr", sink)),
        ]
        self._exit_task = asyncio.create_task(self._watch_exit())

    async def _watch_exit(self) -> int:
        code = await self.process.wait()
        await drain(self._pumps)
        self._mark_exited(code)
        return code

    def _mark_ready(self) -> None:
        if self.state is not LifecycleState.STARTING:
            return
        self.state = LifecycleState.READY
        self.events.publish_status(LifecycleState.READY)

    def _mark_exited(self, code: int) -> None:
        if self.state is LifecycleState.EXITED:
            return
        self.state = LifecycleState.EXITED
        self.exit_code = code
        self.events.publish_status(LifecycleState.EXITED, code)
        self.events.close()
        logger.info("Proxy exited", pid=self.pid, port=self.port, exit_code=code)

    async def wait(self) -> int:
        """Wait for the process to exit on its own and return the exit code."""
        return await asyncio.shield(self.exit_task)

    async def stop(self, timeout: Optional[float] = None) -> int:
        """Terminate the process and remove its config directory.

        SIGTERM is sent first; if the process is still alive after the grace
        period it is killed. Calling stop() again returns the same exit code
        without signalling anything.

        Args:
            timeout: Grace period in seconds (default: self.stop_timeout)

        Returns:
            int: Exit code of the process
        """
        if self._stop_task is None:
            self._stop_task = asyncio.ensure_future(self._stop(timeout))
        return await asyncio.shield(self._stop_task)

    async def _stop(self, timeout: Optional[float]) -> int:
        grace = self.stop_timeout if timeout is None else timeout
        exit_task = self.exit_task

        try:
            if not exit_task.done():
                logger.info("Stopping proxy", pid=self.pid, grace=grace)
                self.process.terminate()
                done, _ = await asyncio.wait({exit_task}, timeout=grace)
                if not done:
                    logger.warning(
                        "Proxy did not exit after SIGTERM, killing", pid=self.pid
                    )
                    self.process.kill()
            code = await asyncio.shield(exit_task)
        except Exception as e:
            logger.warning("Error while stopping proxy", pid=self.pid, error=str(e))
            code = UNKNOWN_EXIT_CODE
            self._mark_exited(code)

        await cleanup_temp_config(self.config_path)
        return code

    async def __aenter__(self) -> "SupervisedProcess":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()


class ProxyRunner:
    """Starts proxy processes and resolves once each is ready or has exited."""

    def __init__(
        self,
        settings: Optional[SupervisorSettings] = None,
        binary_manager: Optional[BinaryManager] = None,
    ):
        """Initialize the runner.

        Args:
            settings: Supervisor settings (default: loaded from environment)
            binary_manager: Binary resolver used when no binary path is given
        """
        self.settings = settings or get_settings()
        self._binary_manager = binary_manager

    @property
    def binary_manager(self) -> BinaryManager:
        if self._binary_manager is None:
            self._binary_manager = BinaryManager(self.settings)
        return self._binary_manager

    async def start(self, request: SupervisionRequest) -> SupervisedProcess:
        """Start a proxy and wait until it is ready.

        Args:
            request: Run parameters

        Returns:
            SupervisedProcess: The ready process; the caller must stop() it

        Raises:
            SpawnError: If the binary cannot be started
            PrematureExitError: If the process exits before it is ready
            ReadinessTimeoutError: If readiness is not observed in time; the
                still-running process is available as ``error.process``
        """
        start_time = time.time()
        events = request.events or EventChannel(
            history_limit=self.settings.event_history_limit
        )
        if request.on_status is not None:
            events.add_status_listener(request.on_status)
        if request.log_consumer is not None:
            events.add_log_listener(request.log_consumer)

        binary = await self._resolve_binary(request)
        port = await allocate_port(request.port or request.config.port)
        content = request.config_renderer(request.config, port)
        config_path = await write_temp_config(content, SERVER_PREFIX)

        events.publish_status(LifecycleState.STARTING)
        try:
            handle = await launch(binary, ["--config", str(config_path)], env=request.env)
        except (SpawnError, asyncio.CancelledError):
            events.publish_status(LifecycleState.EXITED, UNKNOWN_EXIT_CODE)
            events.close()
            await cleanup_temp_config(config_path)
            raise

        stop_timeout = (
            request.stop_timeout
            if request.stop_timeout is not None
            else self.settings.stop_timeout
        )
        supervised = SupervisedProcess(handle, port, config_path, events, stop_timeout)
        supervised._attach()

        ready_task = asyncio.create_task(
            wait_until_ready(port, self._health_check(request), request.ready_timeout)
        )
        try:
            done, _ = await asyncio.wait(
                {ready_task, supervised.exit_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            ready_task.cancel()
            await asyncio.gather(ready_task, return_exceptions=True)
            await supervised.stop()
            raise

        if supervised.exit_task in done:
            ready_task.cancel()
            await asyncio.gather(ready_task, return_exceptions=True)
            code = supervised.exit_task.result()
            await cleanup_temp_config(config_path)
            logger.error(
                "Proxy exited before ready", pid=handle.pid, port=port, exit_code=code
            )
            raise PrematureExitError(code, port=port, config_path=str(config_path))

        try:
            ready_task.result()
        except ReadinessTimeoutError as e:
            e.process = supervised
            logger.warning("Proxy readiness timed out", pid=handle.pid, **e.details)
            raise
        except Exception:
            await supervised.stop()
            raise

        supervised._mark_ready()
        log_performance(
            logger,
            "proxy_start",
            round((time.time() - start_time) * 1000, 1),
            pid=handle.pid,
            port=port,
        )
        return supervised

    async def _resolve_binary(self, request: SupervisionRequest) -> Path:
        if request.binary_path:
            return Path(request.binary_path)
        return await self.binary_manager.ensure(request.version)

    def _health_check(self, request: SupervisionRequest) -> HealthCheck:
        health = request.health_check or HealthCheck.from_settings(self.settings)
        if health.api_key is None and request.config.first_api_key:
            health = dataclasses.replace(health, api_key=request.config.first_api_key)
        return health


async def start_proxy(
    request: SupervisionRequest, settings: Optional[SupervisorSettings] = None
) -> SupervisedProcess:
    """Start a proxy and wait until it is ready. See ProxyRunner.start."""
    return await ProxyRunner(settings).start(request)
