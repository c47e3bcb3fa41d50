"""Tests for HTTP readiness probing."""

import asyncio
import socket
import time

import pytest
from aiohttp import web

from cliproxy_supervisor.config.settings import SupervisorSettings
from cliproxy_supervisor.exceptions import ReadinessTimeoutError
from cliproxy_supervisor.management.readiness import (
    HealthCheck,
    ReadinessProber,
    build_auth_headers,
    build_probe_url,
    is_ready,
    wait_until_ready,
)


def _unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class TestReadinessPredicate:
    """Test cases for is_ready."""

    @pytest.mark.parametrize("status", [101, 200, 204, 301, 401, 404, 499])
    def test_ready_statuses(self, status):
        assert is_ready(status) is True

    @pytest.mark.parametrize("status", [100, 199, 500, 502, 503])
    def test_not_ready_statuses(self, status):
        assert is_ready(status) is False


class TestProbeHelpers:
    """Test cases for URL, header and parameter helpers."""

    def test_probe_url(self):
        assert build_probe_url(8317) == "http://127.0.0.1:8317/v1/models"
        assert build_probe_url(8317, "healthz") == "http://127.0.0.1:8317/healthz"

    def test_auth_headers(self):
        assert build_auth_headers(None) == {}
        assert build_auth_headers("sk-1") == {
            "Authorization": "Bearer sk-1",
            "x-api-key": "sk-1",
        }

    def test_health_check_from_settings(self):
        settings = SupervisorSettings(
            health_path="/ping", health_interval=0.5, health_retries=7
        )

        health = HealthCheck.from_settings(settings)

        assert health.path == "/ping"
        assert health.interval == 0.5
        assert health.retries == 7
        assert health.api_key is None


class TestWaitUntilReady:
    """Test cases for wait_until_ready."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [200, 401])
    async def test_ready_on_first_answer(self, http_server, status):
        async def handler(request):
            return web.Response(status=status)

        async with http_server(handler) as port:
            attempts = await wait_until_ready(port, HealthCheck(retries=3, interval=0.01))

        assert attempts == 1

    @pytest.mark.asyncio
    async def test_server_errors_are_retried(self, http_server):
        calls = []

        async def handler(request):
            calls.append(request.path)
            return web.Response(status=503 if len(calls) < 3 else 200)

        async with http_server(handler) as port:
            attempts = await wait_until_ready(port, HealthCheck(retries=5, interval=0.01))

        assert attempts == 3
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, http_server):
        calls = []

        async def handler(request):
            calls.append(request.path)
            return web.Response(status=503)

        async with http_server(handler) as port:
            started = time.monotonic()
            with pytest.raises(ReadinessTimeoutError) as exc_info:
                await wait_until_ready(port, HealthCheck(retries=3, interval=0.01))
            elapsed = time.monotonic() - started

        assert len(calls) == 3
        assert 0.02 <= elapsed < 2.0
        assert exc_info.value.attempts == 3
        assert exc_info.value.last_status == 503
        assert exc_info.value.process is None

    @pytest.mark.asyncio
    async def test_connection_refused_is_retried(self):
        port = _unused_port()

        with pytest.raises(ReadinessTimeoutError) as exc_info:
            await wait_until_ready(port, HealthCheck(retries=2, interval=0.01))

        assert exc_info.value.attempts == 2
        assert exc_info.value.last_status is None
        assert exc_info.value.last_error

    @pytest.mark.asyncio
    async def test_api_key_headers_are_sent(self, http_server):
        seen = {}

        async def handler(request):
            seen["authorization"] = request.headers.get("Authorization")
            seen["x-api-key"] = request.headers.get("x-api-key")
            return web.Response(status=200)

        async with http_server(handler) as port:
            await wait_until_ready(port, HealthCheck(api_key="sk-test", retries=1))

        assert seen["authorization"] == "Bearer sk-test"
        assert seen["x-api-key"] == "sk-test"

    @pytest.mark.asyncio
    async def test_custom_path(self, http_server):
        async def handler(request):
            return web.Response(status=200)

        async with http_server(handler, path="/healthz") as port:
            attempts = await wait_until_ready(port, HealthCheck(path="/healthz", retries=1))

        assert attempts == 1

    @pytest.mark.asyncio
    async def test_overall_timeout_interrupts_slow_request(self, http_server):
        async def handler(request):
            await asyncio.sleep(2)
            return web.Response(status=200)

        async with http_server(handler) as port:
            started = time.monotonic()
            with pytest.raises(ReadinessTimeoutError) as exc_info:
                await wait_until_ready(
                    port, HealthCheck(retries=10, request_timeout=10.0), timeout=0.2
                )
            elapsed = time.monotonic() - started

        assert elapsed < 2.0
        assert exc_info.value.details["last_error"] == "overall timeout of 0.2s elapsed"

    @pytest.mark.asyncio
    async def test_per_attempt_timeout_is_retried(self, http_server):
        calls = []

        async def handler(request):
            calls.append(request.path)
            if len(calls) == 1:
                await asyncio.sleep(1)
            return web.Response(status=200)

        async with http_server(handler) as port:
            attempts = await wait_until_ready(
                port, HealthCheck(retries=3, interval=0.01, request_timeout=0.1)
            )

        assert attempts == 2

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self):
        port = _unused_port()
        task = asyncio.create_task(
            wait_until_ready(port, HealthCheck(retries=1000, interval=0.05))
        )
        await asyncio.sleep(0.1)

        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_prober_reuses_session(self, http_server):
        async def handler(request):
            return web.Response(status=200)

        async with http_server(handler) as port:
            async with ReadinessProber() as prober:
                session = prober.session
                await prober.wait_until_ready(port, HealthCheck(retries=1))
                await prober.wait_until_ready(port, HealthCheck(retries=1))
                assert prober.session is session

        assert session.closed
