"""Shared pytest fixtures for the template harness test suite.

Provides reusable fixtures for:
- Harness configuration rooted in a temporary fixtures directory
- Throw-away Python scripts standing in for the scaffolder, installer,
  dev server and build tool
- Generated project trees
- Mock subprocess helpers
- Free TCP ports
"""

from __future__ import annotations

import socket
import sys
import textwrap
from pathlib import Path
from typing import Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from template_harness.config import ChecklistConfig, CommandConfig, HarnessConfig


# ---------------------------------------------------------------------------
# Scripts
# ---------------------------------------------------------------------------

@pytest.fixture
def write_script(tmp_path: Path) -> Callable[[str, str], list[str]]:
    """Write a Python script into ``tmp_path/bin`` and return its argv.

    Usage:
        def test_something(write_script):
            argv = write_script("dev.py", "print('Server started')")
    """
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(exist_ok=True)

    def factory(name: str, source: str) -> list[str]:
        path = bin_dir / name
        path.write_text(textwrap.dedent(source).lstrip(), encoding="utf-8")
        return [sys.executable, str(path)]

    return factory


# Scaffolder stand-in: mirrors the CLI contract and logs every invocation.
FAKE_SCAFFOLDER = """
    import json
    import os
    import sys
    from pathlib import Path

    name = sys.argv[1]
    args = sys.argv[2:]
    log = Path(os.environ.get("FAKE_SCAFFOLD_LOG", "scaffold.log"))
    with log.open("a", encoding="utf-8") as fh:
        fh.write(json.dumps([name, *args]) + "\\n")

    if name.startswith("broken"):
        sys.stderr.write("template not found: " + name + "\\n")
        sys.exit(2)

    root = Path.cwd() / name
    (root / "public").mkdir(parents=True, exist_ok=True)
    (root / "src" / "pages").mkdir(parents=True, exist_ok=True)
    (root / "package.json").write_text(json.dumps({"name": name}), encoding="utf-8")
    (root / ".gitignore").write_text("node_modules/\\ndist/\\n", encoding="utf-8")
    (root / "src" / "pages" / "index.astro").write_text("<h1>" + name + "</h1>", encoding="utf-8")
"""

FAKE_INSTALLER = """
    from pathlib import Path

    (Path.cwd() / "node_modules").mkdir(exist_ok=True)
"""

FAKE_DEV_SERVER = """
    import http.server
    import sys

    port = int(sys.argv[sys.argv.index("--port") + 1])


    class Handler(http.server.BaseHTTPRequestHandler):
        def do_GET(self):
            body = b"<!doctype html><title>ok</title>"
            self.send_response(200)
            self.send_header("Content-Type", "text/html")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, *args):
            pass


    server = http.server.HTTPServer(("127.0.0.1", port), Handler)
    print(f"Server started on port {port}", flush=True)
    server.serve_forever()
"""

FAKE_BUILD = """
    from pathlib import Path

    dist = Path.cwd() / "dist"
    (dist / "_astro").mkdir(parents=True, exist_ok=True)
    (dist / "_astro" / "index.abc123.css").write_text("body{}", encoding="utf-8")
    (dist / "index.html").write_text("<!doctype html>", encoding="utf-8")
"""


@pytest.fixture
def fake_toolchain(write_script) -> CommandConfig:
    """Commands backed by scripts that honour the external contracts."""
    return CommandConfig(
        scaffold=write_script("scaffold.py", FAKE_SCAFFOLDER),
        install=write_script("install.py", FAKE_INSTALLER),
        dev=write_script("dev.py", FAKE_DEV_SERVER),
        build=write_script("build.py", FAKE_BUILD),
    )


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@pytest.fixture
def fixtures_dir(tmp_path: Path) -> Path:
    path = tmp_path / "fixtures"
    path.mkdir()
    return path


@pytest.fixture
def harness_config(fixtures_dir: Path, fake_toolchain: CommandConfig, free_port: int, monkeypatch) -> HarnessConfig:
    """Configuration wired to the fake toolchain with short timeouts."""
    monkeypatch.setenv("FAKE_SCAFFOLD_LOG", str(fixtures_dir.parent / "scaffold.log"))
    return HarnessConfig(
        fixtures_dir=fixtures_dir,
        commit="abc1234",
        base_port=free_port,
        idle_timeout=5.0,
        probe_timeout=5.0,
        setup_timeout=60.0,
        build_timeout=60.0,
        terminate_timeout=3.0,
        commands=fake_toolchain,
        checklist=ChecklistConfig(),
    )


# ---------------------------------------------------------------------------
# Generated project structure
# ---------------------------------------------------------------------------

@pytest.fixture
def generated_project(fixtures_dir: Path) -> Path:
    """A project tree that satisfies the default structure checklist."""
    root = fixtures_dir / "minimal"
    (root / "public").mkdir(parents=True)
    (root / "src").mkdir()
    (root / "package.json").write_text('{"name": "minimal"}', encoding="utf-8")
    (root / ".gitignore").write_text("dist/\n", encoding="utf-8")
    return root


# ---------------------------------------------------------------------------
# Ports
# ---------------------------------------------------------------------------

@pytest.fixture
def free_port() -> int:
    """A TCP port that had no listener a moment ago."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]
    finally:
        sock.close()


# ---------------------------------------------------------------------------
# Mock Subprocess (generic)
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_subprocess():
    """Mock asyncio subprocess for testing command execution.

    Returns a factory that creates mock subprocess instances with configurable
    stdout, stderr, and return codes.

    Usage:
        def test_command(mock_subprocess):
            proc = mock_subprocess(stdout="output", returncode=0)
            with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
                ...
    """
    def factory(
        stdout: str = "",
        stderr: str = "",
        returncode: int = 0,
    ) -> AsyncMock:
        mock_proc = AsyncMock()
        mock_proc.communicate = AsyncMock(
            return_value=(stdout.encode("utf-8"), stderr.encode("utf-8"))
        )
        mock_proc.returncode = returncode
        mock_proc.pid = 99999
        mock_proc.kill = MagicMock()
        mock_proc.wait = AsyncMock(return_value=returncode)
        return mock_proc

    return factory
