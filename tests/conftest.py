"""Pytest configuration and fixtures."""

import asyncio
import sys
import time
from pathlib import Path

import pytest

# Add src directory to Python path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from greact.config import ClientConfig, DevConfig, GreactConfig, ServerConfig  # noqa: E402

# A stand-in server: logs start/SIGTERM to events.log, then idles
SERVER_SCRIPT = """\
import os, signal, sys, time

def log(line):
    with open("events.log", "a") as f:
        f.write(line + "\\n")

def stop(*_):
    log(f"term {os.getpid()}")
    sys.exit(0)

signal.signal(signal.SIGTERM, stop)
log(f"start {os.getpid()}")
while True:
    time.sleep(0.05)
"""

BUILD_OK = [sys.executable, "-c", "open('app', 'w').write('built')"]
BUILD_FAIL = [sys.executable, "-c", "import sys; sys.stderr.write('syntax error\\n'); sys.exit(2)"]


def event_lines(server_dir: Path) -> list[str]:
    log = server_dir / "events.log"
    return log.read_text().splitlines() if log.exists() else []


@pytest.fixture
def wait_until():
    """Poll a predicate until it is true or the timeout expires."""

    async def _wait(predicate, timeout: float = 5.0, interval: float = 0.02) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            await asyncio.sleep(interval)
        return predicate()

    return _wait


@pytest.fixture
def server_dir(tmp_path):
    """Server source directory with a runnable stand-in server."""
    path = tmp_path / "server"
    path.mkdir()
    (path / "server.py").write_text(SERVER_SCRIPT)
    (path / "main.go").write_text("package main\n")
    return path


@pytest.fixture
def project(tmp_path, server_dir):
    """Config for a project laid out under tmp_path."""
    client = tmp_path / "client"
    (client / "pages").mkdir(parents=True)
    (client / "static").mkdir()
    (client / "node_modules").mkdir()
    (client / "pages" / "index.js").write_text("export default () => null;\n")

    return GreactConfig(
        client=ClientConfig(path=client),
        server=ServerConfig(
            source_dir=server_dir,
            extensions=[".go"],
            build_command=list(BUILD_OK),
            run_command=[sys.executable, "server.py"],
            artifact="app",
            kill_timeout=5.0,
        ),
        dev=DevConfig(reload_host="127.0.0.1", reload_port=0, debounce_ms=200),
    )
