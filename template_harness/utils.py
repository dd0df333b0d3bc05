"""Shared utility functions for the template harness.

Provides async command execution, revision resolution, port allocation and
availability probing, duration formatting, and Rich-based console output.
"""

from __future__ import annotations

import asyncio
import os
import signal
import socket
from pathlib import Path

from rich.console import Console
from rich.table import Table

from .errors import ConfigError

console = Console()

DEFAULT_BASE_PORT = 3000

_POSIX = os.name == "posix"

# ---------------------------------------------------------------------------
# Async command execution
# ---------------------------------------------------------------------------


async def run_command(
    cmd: list[str],
    cwd: str | Path | None = None,
    timeout: float = 120,
    env: dict[str, str] | None = None,
) -> tuple[int, str, str]:
    """Run a command asynchronously and capture its output.

    Args:
        cmd: Program and arguments.
        cwd: Working directory for the child process.
        timeout: Maximum wall-clock seconds before the process is killed.
        env: Optional extra environment variables merged on top of ``os.environ``.

    Returns:
        A ``(returncode, stdout, stderr)`` tuple.  A timed-out command
        reports ``-1`` and a descriptive stderr; its whole process group is
        killed.  A missing *cwd* reports ``1`` without spawning anything.
    """
    merged_env: dict[str, str] | None = None
    if env:
        merged_env = {**os.environ, **env}

    if cwd and not Path(cwd).is_dir():
        return (1, "", f"Working directory does not exist: {cwd}")

    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd else None,
            env=merged_env,
            start_new_session=_POSIX,
        )
    except FileNotFoundError as exc:
        return (127, "", f"Command not found: {cmd[0]} ({exc})")

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            process.communicate(), timeout=timeout
        )
    except asyncio.TimeoutError:
        _kill_group(process)
        await process.wait()
        return (-1, "", f"Command timed out after {timeout}s: {format_command(cmd)}")

    stdout_str = (stdout_bytes or b"").decode("utf-8", errors="replace").strip()
    stderr_str = (stderr_bytes or b"").decode("utf-8", errors="replace").strip()
    return (process.returncode or 0, stdout_str, stderr_str)


def _kill_group(process: asyncio.subprocess.Process) -> None:
    """SIGKILL the process and, on POSIX, everything in its session."""
    try:
        if _POSIX:
            os.killpg(process.pid, signal.SIGKILL)
        else:
            process.kill()
    except ProcessLookupError:
        pass


def format_command(cmd: list[str]) -> str:
    """Render an argv list as a single display string."""
    return " ".join(str(part) for part in cmd)


async def resolve_revision(explicit: str | None = None, cwd: str | Path | None = None) -> str:
    """Return the source revision the templates are pinned to.

    Lookup order: *explicit*, ``HARNESS_COMMIT``, ``GITHUB_SHA`` (set in CI),
    then ``git rev-parse HEAD`` in *cwd*.

    Raises:
        ConfigError: If no revision can be determined.
    """
    for candidate in (explicit, os.environ.get("HARNESS_COMMIT"), os.environ.get("GITHUB_SHA")):
        if candidate:
            return candidate

    returncode, stdout, stderr = await run_command(["git", "rev-parse", "HEAD"], cwd=cwd, timeout=30)
    if returncode != 0 or not stdout:
        raise ConfigError(f"Could not resolve the current revision: {stderr or 'git rev-parse HEAD failed'}")
    return stdout.splitlines()[0].strip()


# ---------------------------------------------------------------------------
# Port helpers
# ---------------------------------------------------------------------------


def allocate_port(index: int, base_port: int = DEFAULT_BASE_PORT) -> int:
    """Return the dev-server port for the template registered at *index*."""
    return base_port + index


async def check_port_available(port: int) -> bool:
    """Check whether a TCP port on localhost has no listener.

    Attempts a ``connect`` to localhost:port.  A refused connection means the
    port is free.
    """
    loop = asyncio.get_running_loop()

    def _probe() -> bool:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.settimeout(1)
        try:
            return sock.connect_ex(("127.0.0.1", port)) != 0
        finally:
            sock.close()

    return await loop.run_in_executor(None, _probe)


async def check_ports_available(ports: list[int]) -> dict[int, bool]:
    """Check multiple ports concurrently.

    Returns:
        Mapping of ``{port: is_available}``.
    """
    results = await asyncio.gather(*(check_port_available(p) for p in ports))
    return dict(zip(ports, results))


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string.

    Examples::

        format_duration(3.7)    -> "3.7s"
        format_duration(65.2)   -> "1m 5s"
    """
    if seconds < 0:
        return "0.0s"

    minutes = int(seconds // 60)
    secs = seconds % 60
    if minutes > 0:
        return f"{minutes}m {int(secs)}s"
    return f"{secs:.1f}s"


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------


def print_success(message: str) -> None:
    """Print a green success message."""
    console.print(f"[bold green]{message}[/bold green]")


def print_error(message: str) -> None:
    """Print a red error message."""
    console.print(f"[bold red]{message}[/bold red]")


def print_warning(message: str) -> None:
    """Print a yellow warning message."""
    console.print(f"[bold yellow]{message}[/bold yellow]")


def print_summary_table(rows: list[tuple[str, str, str, str]], title: str = "Summary") -> None:
    """Print a template / check / status / detail table."""
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Template", style="dim", no_wrap=True)
    table.add_column("Check", no_wrap=True)
    table.add_column("Status", no_wrap=True)
    table.add_column("Detail")

    for template, check, status, detail in rows:
        table.add_row(template, check, status, detail)

    console.print(table)
    console.print()
