"""HTTP readiness probing for a freshly started proxy."""

import asyncio
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Optional

import aiohttp
import structlog

from ..config.logging import sanitize_log_data
from ..exceptions import ReadinessTimeoutError

if TYPE_CHECKING:
    from ..config.settings import SupervisorSettings

logger = structlog.get_logger(__name__)

PROBE_HOST = "127.0.0.1"
DEFAULT_HEALTH_PATH = "/v1/models"
DEFAULT_INTERVAL = 0.2
DEFAULT_RETRIES = 60
DEFAULT_REQUEST_TIMEOUT = 5.0


def is_ready(status: int) -> bool:
    """Decide readiness from an HTTP status.

    Any status below 500 means the server is listening and dispatching, even
    if the probe itself is rejected (e.g. missing auth). 101 counts as well.
    """
    return 200 <= status < 500 or status == 101


@dataclass(frozen=True)
class HealthCheck:
    """Readiness probe parameters."""

    path: str = DEFAULT_HEALTH_PATH
    api_key: Optional[str] = None
    interval: float = DEFAULT_INTERVAL
    retries: int = DEFAULT_RETRIES
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    @classmethod
    def from_settings(cls, settings: "SupervisorSettings") -> "HealthCheck":
        """Build probe parameters from supervisor settings."""
        return cls(
            path=settings.health_path,
            interval=settings.health_interval,
            retries=settings.health_retries,
        )


def build_probe_url(port: int, path: str = DEFAULT_HEALTH_PATH) -> str:
    if not path.startswith("/"):
        path = "/" + path
    return f"http://{PROBE_HOST}:{port}{path}"


def build_auth_headers(api_key: Optional[str]) -> Dict[str, str]:
    """Send the key under both conventions the proxy may check."""
    if not api_key:
        return {}
    return {"Authorization": f"Bearer {api_key}", "x-api-key": api_key}


@dataclass
class ProbeProgress:
    """Running tally of a readiness wait, used for error reporting."""

    started: float
    attempts: int = 0
    last_status: Optional[int] = None
    last_error: Optional[str] = None

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started


class ReadinessProber:
    """Polls the proxy's HTTP endpoint until it answers."""

    def __init__(self, session: Optional[aiohttp.ClientSession] = None):
        self.session = session
        self._owns_session = session is None

    async def __aenter__(self):
        """Async context manager entry."""
        if self.session is None:
            self.session = aiohttp.ClientSession()
            self._owns_session = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self.session and self._owns_session:
            await self.session.close()
            self.session = None

    async def wait_until_ready(
        self,
        port: int,
        health_check: Optional[HealthCheck] = None,
        timeout: Optional[float] = None,
    ) -> int:
        """Poll until the proxy answers, retries run out or timeout elapses.

        Network failures and 5xx answers are retried silently. Cancelling the
        calling task interrupts both the in-flight request and the sleep
        between attempts.

        Args:
            port: Port the proxy listens on
            health_check: Probe parameters (defaults apply when None)
            timeout: Overall limit in seconds, None for no limit

        Returns:
            int: Number of attempts it took

        Raises:
            ReadinessTimeoutError: If the proxy never reported ready
        """
        health = health_check or HealthCheck()
        url = build_probe_url(port, health.path)
        headers = build_auth_headers(health.api_key)
        progress = ProbeProgress(started=time.monotonic())

        logger.debug(
            "Waiting for proxy readiness",
            url=url,
            headers=sanitize_log_data(headers),
            retries=health.retries,
            interval=health.interval,
            timeout=timeout,
        )

        session = self.session
        owns_session = session is None
        if owns_session:
            session = aiohttp.ClientSession()

        try:
            poll = self._poll(session, url, headers, health, progress)
            if timeout is None:
                await poll
            else:
                await asyncio.wait_for(poll, timeout)
        except asyncio.TimeoutError:
            last_error = f"overall timeout of {timeout}s elapsed"
            if progress.last_error:
                last_error += f" (last error: {progress.last_error})"
            raise ReadinessTimeoutError(
                url,
                progress.attempts,
                progress.elapsed,
                last_status=progress.last_status,
                last_error=last_error,
            ) from None
        finally:
            if owns_session:
                await session.close()

        logger.info(
            "Proxy is ready",
            url=url,
            attempts=progress.attempts,
            elapsed_ms=round(progress.elapsed * 1000, 1),
        )
        return progress.attempts

    async def _poll(
        self,
        session: aiohttp.ClientSession,
        url: str,
        headers: Dict[str, str],
        health: HealthCheck,
        progress: ProbeProgress,
    ) -> None:
        request_timeout = aiohttp.ClientTimeout(total=health.request_timeout)

        for attempt in range(1, health.retries + 1):
            progress.attempts = attempt
            try:
                async with session.get(
                    url,
                    headers=headers,
                    timeout=request_timeout,
                    allow_redirects=False,
                ) as response:
                    progress.last_status = response.status
                    if is_ready(response.status):
                        return
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                progress.last_error = f"{type(e).__name__}: {e}"

            if attempt < health.retries:
                await asyncio.sleep(health.interval)

        raise ReadinessTimeoutError(
            url,
            progress.attempts,
            progress.elapsed,
            last_status=progress.last_status,
            last_error=progress.last_error,
        )


async def wait_until_ready(
    port: int,
    health_check: Optional[HealthCheck] = None,
    timeout: Optional[float] = None,
) -> int:
    """Poll a proxy on ``port`` with a private HTTP session.

    See ReadinessProber.wait_until_ready.
    """
    async with ReadinessProber() as prober:
        return await prober.wait_until_ready(port, health_check, timeout)
