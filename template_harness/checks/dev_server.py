"""Dev-server check.

Spawns the template's dev server, watches its output until it reports that
it is listening, probes it once over HTTP, and always terminates it before
returning.

Readiness is tracked by :class:`LivenessMonitor`, a small state machine fed
by three event sources:

- **stdout chunks** -- each one is a heartbeat that re-arms the idle timer;
  a chunk containing a readiness marker moves the monitor to ``READY``.
- **the idle timer** -- fires only after a full idle period without stdout
  output and moves the monitor to ``TIMED_OUT``.
- **stderr chunks / process exit** -- any stderr output (or an exit) before
  readiness moves the monitor to ``FAILED`` straight away.

Typical usage::

    result = await check_dev_server(
        project_dir,
        3005,
        command=["npm", "run", "start", "--"],
        markers=["Server started"],
    )
    print(result.status_code)
"""

from __future__ import annotations

import asyncio
import codecs
import os
import signal
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import httpx
from rich.console import Console

from ..errors import HarnessError, ProbeError, ServerStartTimeoutError, ServerStartupError
from ..results import ProbeResult
from ..utils import format_command

console = Console()

_READ_CHUNK = 4096
_POSIX = os.name == "posix"


# ---------------------------------------------------------------------------
# Liveness state machine
# ---------------------------------------------------------------------------


class LivenessState(str, Enum):
    WAITING = "waiting"
    READY = "ready"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


class LivenessMonitor:
    """Readiness state of one dev server.

    ``WAITING`` moves to exactly one terminal state; events arriving after
    that are ignored.  :attr:`error` holds the exception to raise for the
    ``TIMED_OUT`` and ``FAILED`` states.
    """

    def __init__(self, markers: list[str]) -> None:
        if not markers:
            raise ValueError("at least one readiness marker is required")
        self.markers = list(markers)
        self.state = LivenessState.WAITING
        self.error: HarnessError | None = None
        # Enough trailing text to catch a marker split across two chunks.
        self._keep = max(len(marker) for marker in self.markers) - 1
        self._tail = ""

    @property
    def finished(self) -> bool:
        return self.state is not LivenessState.WAITING

    def on_stdout(self, text: str) -> bool:
        """Feed a stdout chunk.

        Returns:
            ``True`` if the chunk counted as a heartbeat (the monitor was
            still waiting when it arrived).
        """
        if self.finished:
            return False
        window = self._tail + text
        if any(marker in window for marker in self.markers):
            self.state = LivenessState.READY
            self._tail = ""
        else:
            self._tail = window[-self._keep:] if self._keep else ""
        return True

    def on_stderr(self, text: str) -> None:
        if self.finished:
            return
        self.state = LivenessState.FAILED
        self.error = ServerStartupError(text if text.strip() else repr(text))

    def on_timeout(self) -> None:
        if self.finished:
            return
        self.state = LivenessState.TIMED_OUT
        self.error = ServerStartTimeoutError()

    def on_exit(self, returncode: int | None) -> None:
        if self.finished:
            return
        self.state = LivenessState.FAILED
        self.error = ServerStartupError(
            f"dev server exited with code {returncode} before it was ready",
            returncode=returncode,
        )


# ---------------------------------------------------------------------------
# Process handle and lifetime
# ---------------------------------------------------------------------------


@dataclass
class ServerProcessHandle:
    """A running dev server owned by exactly one check."""

    port: int
    process: asyncio.subprocess.Process
    monitor: LivenessMonitor
    timer: asyncio.TimerHandle | None = None
    tasks: list[asyncio.Task] = field(default_factory=list)

    @property
    def running(self) -> bool:
        return self.process.returncode is None

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


def _signal_group(process: asyncio.subprocess.Process, force: bool) -> None:
    """Signal the process (its whole group on POSIX) if it is still around."""
    try:
        if _POSIX:
            os.killpg(process.pid, signal.SIGKILL if force else signal.SIGTERM)
        elif force:
            process.kill()
        else:
            process.terminate()
    except ProcessLookupError:
        pass


async def terminate_process(process: asyncio.subprocess.Process, timeout: float = 5.0) -> None:
    """Stop *process* and reap it.

    Sends SIGTERM, waits up to *timeout* seconds, then escalates to SIGKILL.
    On POSIX the whole process group is signalled so children spawned by a
    wrapper (``npm run``) go down with it.
    """
    _signal_group(process, force=False)
    try:
        await asyncio.wait_for(process.wait(), timeout=timeout)
    except asyncio.TimeoutError:
        console.print(f"[yellow]dev server pid {process.pid} ignored SIGTERM, killing it[/yellow]")
        _signal_group(process, force=True)
        await process.wait()
    else:
        if _POSIX:
            # leader is gone; take down anything it left in the group
            _signal_group(process, force=True)


@asynccontextmanager
async def spawn_dev_server(
    command: list[str],
    cwd: str | Path,
    port: int,
    *,
    markers: list[str],
    terminate_timeout: float = 5.0,
) -> AsyncIterator[ServerProcessHandle]:
    """Start the dev server and guarantee its termination on exit.

    The server runs as ``<command...> --port <port>`` in *cwd*, in its own
    process group on POSIX.

    Raises:
        ServerStartupError: The command could not be executed at all.
    """
    cmd = [*command, "--port", str(port)]
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=str(cwd),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=_POSIX,
        )
    except OSError as exc:
        raise ServerStartupError(f"could not start dev server ({format_command(cmd)}): {exc}") from exc

    handle = ServerProcessHandle(port=port, process=process, monitor=LivenessMonitor(markers))
    try:
        yield handle
    finally:
        handle.cancel_timer()
        await terminate_process(process, timeout=terminate_timeout)
        for task in handle.tasks:
            task.cancel()
        await asyncio.gather(*handle.tasks, return_exceptions=True)


# ---------------------------------------------------------------------------
# Readiness wait
# ---------------------------------------------------------------------------


async def _pump(
    stream: asyncio.StreamReader,
    decode: Callable[[bytes], str],
    on_text: Callable[[str], None],
) -> None:
    """Read *stream* until EOF, passing decoded chunks to *on_text*."""
    while True:
        data = await stream.read(_READ_CHUNK)
        if not data:
            return
        text = decode(data)
        if text:
            on_text(text)


async def wait_until_ready(handle: ServerProcessHandle, idle_timeout: float) -> None:
    """Block until the dev server reports readiness.

    The idle timer is cancelled and rescheduled on every stdout chunk, so a
    slow but chatty server never times out; only silence does.  Output keeps
    being drained after readiness so the server never stalls on a full pipe.

    Raises:
        ServerStartTimeoutError: No stdout output for *idle_timeout* seconds.
        ServerStartupError: Output on stderr, or the process exited early.
    """
    loop = asyncio.get_running_loop()
    monitor = handle.monitor
    changed = asyncio.Event()

    def fire() -> None:
        handle.timer = None
        monitor.on_timeout()
        changed.set()

    def arm() -> None:
        handle.cancel_timer()
        handle.timer = loop.call_later(idle_timeout, fire)

    def on_stdout(text: str) -> None:
        if monitor.on_stdout(text):
            arm()
            changed.set()

    def on_stderr(text: str) -> None:
        monitor.on_stderr(text)
        changed.set()

    async def watch_exit(pumps: list[asyncio.Task]) -> None:
        returncode = await handle.process.wait()
        await asyncio.wait(pumps)
        monitor.on_exit(returncode)
        changed.set()

    assert handle.process.stdout is not None and handle.process.stderr is not None
    stdout_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    arm()
    pumps = [
        asyncio.create_task(_pump(handle.process.stdout, stdout_decoder.decode, on_stdout)),
        asyncio.create_task(
            _pump(handle.process.stderr, lambda data: data.decode("utf-8", errors="replace"), on_stderr)
        ),
    ]
    handle.tasks.extend(pumps)
    handle.tasks.append(asyncio.create_task(watch_exit(pumps)))

    try:
        while not monitor.finished:
            await changed.wait()
            changed.clear()
    finally:
        handle.cancel_timer()

    if monitor.state is not LivenessState.READY:
        assert monitor.error is not None
        raise monitor.error


# ---------------------------------------------------------------------------
# HTTP probe
# ---------------------------------------------------------------------------


async def probe_http(url: str, timeout: float = 10.0) -> ProbeResult:
    """Issue a single GET and require a 200 with a non-empty body.

    Raises:
        ProbeError: Network failure, non-200 status, or empty body.
    """
    try:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=min(timeout, 5.0)),
            trust_env=False,
        ) as client:
            response = await client.get(url)
    except httpx.HTTPError as exc:
        raise ProbeError(f"request to {url} failed: {exc!r}", url=url) from exc

    if response.status_code != 200:
        raise ProbeError(
            f"didn't respond with 200 (got {response.status_code})",
            url=url,
            status_code=response.status_code,
        )
    if not response.content:
        raise ProbeError("returned empty response", url=url, status_code=response.status_code)
    return ProbeResult(status_code=response.status_code, body=response.text)


async def check_dev_server(
    project_dir: str | Path,
    port: int,
    *,
    command: list[str],
    markers: list[str],
    idle_timeout: float = 10.0,
    probe_timeout: float = 10.0,
    terminate_timeout: float = 5.0,
) -> ProbeResult:
    """Start the dev server, wait for readiness, probe ``/`` and shut it down.

    The server is terminated before this coroutine returns, whichever way it
    returns.
    """
    async with spawn_dev_server(
        command,
        project_dir,
        port,
        markers=markers,
        terminate_timeout=terminate_timeout,
    ) as handle:
        await wait_until_ready(handle, idle_timeout)
        console.print(f"[dim]{Path(project_dir).name}: dev server ready on port {port}[/dim]")
        return await probe_http(f"http://localhost:{port}/", timeout=probe_timeout)
