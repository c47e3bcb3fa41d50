"""Pytest configuration and shared fixtures."""

import os
import sys
import tempfile
import textwrap
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable

import pytest
from aiohttp import web

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from cliproxy_supervisor.config.settings import SupervisorSettings


# Stub proxy: reads the port from the --config file and answers every GET.
READY_SERVER_SCRIPT = """
import http.server
import re
import sys

args = sys.argv[1:]
config_path = args[args.index("--config") + 1]
with open(config_path, encoding="utf-8") as f:
    port = int(re.search(r"^port: (\\d+)$", f.read(), re.M).group(1))


class Handler(http.server.BaseHTTPRequestHandler):
    def do_GET(self):
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.end_headers()
        self.wfile.write(b'{"data": []}')

    def log_message(self, *args):
        pass


server = http.server.HTTPServer(("127.0.0.1", port), Handler)
print("listening on", port, flush=True)
print("config", config_path, file=sys.stderr, flush=True)
server.serve_forever()
"""

CRASHING_SCRIPT = """
import sys

print("loading config", flush=True)
print("fatal: bad config", file=sys.stderr, flush=True)
sys.exit(1)
"""

SILENT_SCRIPT = """
import time

while True:
    time.sleep(1)
"""

STUBBORN_SCRIPT = """
import signal
import time

signal.signal(signal.SIGTERM, signal.SIG_IGN)
print("ignoring SIGTERM", flush=True)
while True:
    time.sleep(1)
"""

STUB_SCRIPTS = {
    "ready": READY_SERVER_SCRIPT,
    "crash": CRASHING_SCRIPT,
    "silent": SILENT_SCRIPT,
    "stubborn": STUBBORN_SCRIPT,
}


@pytest.fixture
def stub_binary(tmp_path) -> Callable[..., Path]:
    """Factory writing an executable Python script that stands in for the proxy.

    Pass one of the STUB_SCRIPTS names or a script body.
    """

    def make(script: str, name: str = "cliproxyapi") -> Path:
        body = STUB_SCRIPTS.get(script, script)
        path = tmp_path / "bin" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"#!{sys.executable}\n" + textwrap.dedent(body), encoding="utf-8")
        os.chmod(path, 0o755)
        return path

    return make


@asynccontextmanager
async def _serve(
    handler: Callable[[web.Request], Awaitable[web.StreamResponse]],
    path: str = "/v1/models",
) -> AsyncIterator[int]:
    app = web.Application()
    app.router.add_get(path, handler)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    try:
        yield runner.addresses[0][1]
    finally:
        await runner.cleanup()


@pytest.fixture
def http_server():
    """Async context manager serving one GET route; yields the bound port."""
    return _serve


@pytest.fixture
def settings(tmp_path) -> SupervisorSettings:
    """Settings isolated to a temporary cache directory."""
    return SupervisorSettings(
        cache_dir=str(tmp_path / "cache"),
        release_base_url="http://127.0.0.1:9/releases",
        health_interval=0.05,
        health_retries=100,
        stop_timeout=2.0,
    )


@pytest.fixture
def isolated_tempdir(tmp_path, monkeypatch) -> Path:
    """Redirect tempfile.mkdtemp so temporary config dirs can be inspected."""
    root = tmp_path / "tmp"
    root.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(root))
    return root


@pytest.fixture
def stub_scripts():
    """Named stub proxy script bodies, for composing custom stubs."""
    return STUB_SCRIPTS
