"""Unit tests for utility functions (template_harness.utils).

Tests cover:
- run_command (success, failure, timeout incl. grandchildren, cwd, missing cwd,
  env vars, missing binary)
- resolve_revision (explicit, env vars, git fallback, failure)
- allocate_port
- check_port_available / check_ports_available
- format_duration
- Rich output helpers
"""

from __future__ import annotations

import asyncio
import os
import socket
import sys
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from template_harness.errors import ConfigError
from template_harness.utils import (
    allocate_port,
    check_port_available,
    check_ports_available,
    format_command,
    format_duration,
    print_error,
    print_success,
    print_summary_table,
    print_warning,
    resolve_revision,
    run_command,
)


# ---------------------------------------------------------------------------
# run_command
# ---------------------------------------------------------------------------


class TestRunCommand:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_successful_command(self):
        returncode, stdout, stderr = await run_command([sys.executable, "-c", "print('hello')"])
        assert returncode == 0
        assert stdout == "hello"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failed_command(self):
        returncode, _, stderr = await run_command(
            [sys.executable, "-c", "import sys; sys.stderr.write('bad'); sys.exit(3)"]
        )
        assert returncode == 3
        assert stderr == "bad"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_command_with_cwd(self, tmp_path: Path):
        returncode, stdout, _ = await run_command(
            [sys.executable, "-c", "import os; print(os.getcwd())"], cwd=tmp_path
        )
        assert returncode == 0
        assert Path(stdout).resolve() == tmp_path.resolve()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_command_timeout(self):
        returncode, _, stderr = await run_command(
            [sys.executable, "-c", "import time; time.sleep(10)"], timeout=0.5
        )
        assert returncode == -1
        assert "timed out" in stderr

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_command_with_env(self):
        returncode, stdout, _ = await run_command(
            [sys.executable, "-c", "import os; print(os.environ['HARNESS_TEST_VAR'])"],
            env={"HARNESS_TEST_VAR": "value"},
        )
        assert returncode == 0
        assert stdout == "value"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_binary(self):
        returncode, _, stderr = await run_command(["nonexistent-binary-12345-xyz"])
        assert returncode == 127
        assert "not found" in stderr

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_cwd_is_not_reported_as_missing_binary(self, tmp_path: Path):
        missing = tmp_path / "gone"
        returncode, _, stderr = await run_command([sys.executable, "-c", "pass"], cwd=missing)
        assert returncode == 1
        assert stderr == f"Working directory does not exist: {missing}"
        assert "Command not found" not in stderr

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.skipif(os.name != "posix", reason="process groups are POSIX-only")
    async def test_timeout_kills_grandchildren(self, tmp_path: Path):
        marker = tmp_path / "late-write"
        grandchild = f"import time; time.sleep(1.5); open({str(marker)!r}, 'w').write('x')"
        parent = (
            "import subprocess, sys, time; "
            f"subprocess.Popen([sys.executable, '-c', {grandchild!r}]); "
            "time.sleep(10)"
        )
        returncode, _, _ = await run_command([sys.executable, "-c", parent], timeout=0.5)
        assert returncode == -1

        await asyncio.sleep(2.0)
        assert not marker.exists()

    @pytest.mark.unit
    def test_format_command(self):
        assert format_command(["npm", "run", "build"]) == "npm run build"


# ---------------------------------------------------------------------------
# resolve_revision
# ---------------------------------------------------------------------------


class TestResolveRevision:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_explicit_wins(self, monkeypatch):
        monkeypatch.setenv("HARNESS_COMMIT", "from-env")
        assert await resolve_revision("explicit") == "explicit"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_harness_commit_env(self, monkeypatch):
        monkeypatch.setenv("HARNESS_COMMIT", "harness-sha")
        monkeypatch.setenv("GITHUB_SHA", "github-sha")
        assert await resolve_revision() == "harness-sha"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_github_sha_env(self, monkeypatch):
        monkeypatch.delenv("HARNESS_COMMIT", raising=False)
        monkeypatch.setenv("GITHUB_SHA", "github-sha")
        assert await resolve_revision() == "github-sha"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_git_fallback(self, monkeypatch):
        monkeypatch.delenv("HARNESS_COMMIT", raising=False)
        monkeypatch.delenv("GITHUB_SHA", raising=False)
        mock_run = AsyncMock(return_value=(0, "deadbeef\n", ""))
        with patch("template_harness.utils.run_command", mock_run):
            assert await resolve_revision() == "deadbeef"
        assert mock_run.call_args.args[0] == ["git", "rev-parse", "HEAD"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_git_failure_raises(self, monkeypatch):
        monkeypatch.delenv("HARNESS_COMMIT", raising=False)
        monkeypatch.delenv("GITHUB_SHA", raising=False)
        mock_run = AsyncMock(return_value=(128, "", "fatal: not a git repository"))
        with patch("template_harness.utils.run_command", mock_run):
            with pytest.raises(ConfigError, match="not a git repository"):
                await resolve_revision()


# ---------------------------------------------------------------------------
# Ports
# ---------------------------------------------------------------------------


class TestPorts:
    @pytest.mark.unit
    def test_allocate_port_is_base_plus_index(self):
        assert allocate_port(0) == 3000
        assert allocate_port(5) == 3005
        assert allocate_port(2, base_port=4000) == 4002

    @pytest.mark.unit
    def test_allocated_ports_are_distinct(self):
        ports = [allocate_port(i, base_port=23000) for i in range(50)]
        assert len(set(ports)) == 50

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_free_port_is_available(self, free_port: int):
        assert await check_port_available(free_port) is True

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_listening_port_is_not_available(self):
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        listener.bind(("127.0.0.1", 0))
        listener.listen(1)
        port = listener.getsockname()[1]
        try:
            assert await check_port_available(port) is False
            result = await check_ports_available([port])
            assert result == {port: False}
        finally:
            listener.close()


# ---------------------------------------------------------------------------
# Formatting / output
# ---------------------------------------------------------------------------


class TestFormatDuration:
    @pytest.mark.unit
    def test_seconds(self):
        assert format_duration(3.7) == "3.7s"

    @pytest.mark.unit
    def test_minutes(self):
        assert format_duration(65.2) == "1m 5s"

    @pytest.mark.unit
    def test_negative(self):
        assert format_duration(-1) == "0.0s"


class TestOutputHelpers:
    @pytest.mark.unit
    def test_helpers_do_not_raise(self):
        print_success("ok")
        print_error("bad")
        print_warning("careful")
        print_summary_table([("minimal", "dev", "pass", "")], title="Results")
